from fastapi import FastAPI
from listing_pipeline.db import Base, engine
import listing_pipeline.models  # noqa: F401 ensure models are imported so tables are known
from listing_pipeline.api.routes import router as api_router
from listing_pipeline.pipeline import get_pipeline
from listing_pipeline.scheduler import start_scheduler
from listing_pipeline.utils import logger

# create FastAPI instance
app = FastAPI(title="listing-pipeline")
app.include_router(api_router)


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    pipeline = get_pipeline()
    if pipeline.provider_configured:
        start_scheduler(pipeline)
    else:
        logger.warning("Scheduler not started: no scrape provider configured")


@app.on_event("shutdown")
def on_shutdown():
    pipeline = get_pipeline()
    if pipeline.scheduler.running:
        pipeline.scheduler.shutdown(wait=False)
