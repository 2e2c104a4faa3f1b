# listing_pipeline/scheduler.py
from datetime import datetime, timedelta, timezone

from .config import SCRAPE_INTERVAL_HOURS, SCRAPE_ON_START
from .orchestrator import CycleAlreadyRunning
from .utils import logger

MAINTENANCE_JOB_ID = "daily-maintenance"


def maintenance_tick(pipeline, zones=None):
    logger.info("Scheduled maintenance scrape starting...")
    try:
        pipeline.run_maintenance(zones)
    except CycleAlreadyRunning:
        logger.warning("Scheduled maintenance skipped: a cycle is already running")


def start_scheduler(pipeline, interval_hours: int = SCRAPE_INTERVAL_HOURS, run_on_start: bool = SCRAPE_ON_START):
    scheduler = pipeline.scheduler
    kwargs = {}
    if run_on_start:
        kwargs["next_run_time"] = datetime.now(timezone.utc) + timedelta(seconds=5)
    scheduler.add_job(
        maintenance_tick, "interval", hours=interval_hours, args=[pipeline],
        id=MAINTENANCE_JOB_ID, replace_existing=True, **kwargs,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info("Scheduler started: maintenance every %sh", interval_hours)
    return scheduler
