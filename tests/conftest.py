# tests/conftest.py
import os

# the db module needs a URL at import time; tests build their own engines
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker

import listing_pipeline.models  # noqa: F401
from listing_pipeline.config import PipelineSettings
from listing_pipeline.db import Base, make_engine


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'listings.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return PipelineSettings(
        batch_size=8,
        poll_interval=0,
        job_timeout=5,
        target_total=10000,
        continuation_delay=300,
        reconcile_min_seen=50,
    )
