# listing_pipeline/pipeline.py
"""The pipeline context: one object owning the orchestrator, its run log,
the continuation controller and the scheduler they share.

Nothing here is module-global except the lazily built instance handed to
the admin API by `get_pipeline`.
"""
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler

from . import crud
from .classifier import Classifier, default_detector
from .config import APIFY_TOKEN, PipelineSettings
from .continuation import ContinuationController
from .orchestrator import Orchestrator, RunLog
from .provider import ApifyProvider, ScrapeProvider
from .schemas import ImportResult, RunRecord, ZoneSpec
from .scheduler import maintenance_tick
from .services import ingest_items, run_cleanup
from .utils import geo_key, logger
from .zones import DAILY_ZONES, FULL_CATALOG, validate_catalog

STATUS_CITIES = ("Madrid", "Málaga")


class Pipeline:
    def __init__(
        self,
        provider: Optional[ScrapeProvider],
        session_factory,
        settings: Optional[PipelineSettings] = None,
        classifier: Optional[Classifier] = None,
        scheduler=None,
        daily_zones: Sequence[ZoneSpec] = DAILY_ZONES,
        catalog: Sequence[ZoneSpec] = FULL_CATALOG,
    ):
        self.settings = settings or PipelineSettings.from_env()
        self.provider = provider
        self.session_factory = session_factory
        self.classifier = classifier or Classifier(max_age_days=self.settings.max_listing_age_days)
        self.scheduler = scheduler or BackgroundScheduler()
        self.daily_zones = list(daily_zones)
        self.catalog = list(catalog)
        self.run_log = RunLog()
        self.orchestrator = Orchestrator(provider, session_factory, self.classifier, self.settings, self.run_log)
        self.loop = ContinuationController(
            self.orchestrator,
            self.scheduler,
            self.catalog,
            corpus_size=self.corpus_size,
            target=self.settings.target_total,
            delay=self.settings.continuation_delay,
        )
        self.last_cleanup = None
        self.last_import = None
        validate_catalog(self.daily_zones + self.catalog)

    @property
    def provider_configured(self) -> bool:
        return self.provider is not None

    def corpus_size(self) -> int:
        db = self.session_factory()
        try:
            return crud.count_active(db)
        finally:
            db.close()

    def run_maintenance(self, zones: Optional[Sequence[ZoneSpec]] = None) -> RunRecord:
        """Daily cycle: scrape the maintenance zones, then re-run cleanup."""
        run = self.orchestrator.run_cycle(zones or self.daily_zones)
        self.cleanup()
        return run

    def start_maintenance(self, zones: Optional[Sequence[ZoneSpec]] = None):
        """Queue a maintenance cycle to run on the scheduler's worker pool."""
        self.scheduler.add_job(
            maintenance_tick, "date", args=[self, zones],
            run_date=datetime.now(timezone.utc), misfire_grace_time=None,
        )

    def cleanup(self):
        db = self.session_factory()
        try:
            self.last_cleanup = run_cleanup(db, self.classifier.detector)
        finally:
            db.close()
        return self.last_cleanup

    def import_dataset(self, dataset_id: str) -> ImportResult:
        """Ingest an existing provider dataset; no reconciliation is done."""
        items = self.provider.fetch_dataset(dataset_id)
        db = self.session_factory()
        try:
            out = ingest_items(db, items, self.classifier, datetime.now(timezone.utc))
        finally:
            db.close()
        self.last_import = ImportResult(
            dataset_id=dataset_id,
            total=out.total,
            private_count=out.private_count,
            agency_count=out.agency_count,
            new_count=out.new_count,
            updated_count=out.updated_count,
            skipped_count=out.skipped_count,
        )
        return self.last_import

    def status(self, db) -> dict:
        total = crud.count_active(db)
        counts = {
            "total": total,
            "sale": crud.count_active(db, operation="sale"),
            "rent": crud.count_active(db, operation="rent"),
        }
        for city in STATUS_CITIES:
            counts[geo_key(city)] = crud.count_active(db, city_key=geo_key(city))
        target = self.settings.target_total
        return {
            "running": self.orchestrator.running,
            "loop": self.loop.snapshot(),
            "last_run": self.run_log.last(completed=True),
            "last_cleanup": self.last_cleanup,
            "last_import": self.last_import,
            "provider_configured": self.provider_configured,
            "counts": counts,
            "by_city": crud.counts_by_city(db),
            "target": {"total": target, "remaining": max(0, target - total)},
            "last_scrape_date": crud.latest_scrape(db),
        }


@lru_cache(maxsize=1)
def get_pipeline() -> Pipeline:
    from .db import SessionLocal

    settings = PipelineSettings.from_env()
    provider = None
    if APIFY_TOKEN:
        provider = ApifyProvider(page_size=settings.page_size)
    else:
        logger.warning("APIFY_TOKEN not set; scrape cycles are disabled")
    return Pipeline(provider, SessionLocal, settings=settings, classifier=Classifier(
        default_detector(), max_age_days=settings.max_listing_age_days,
    ))
