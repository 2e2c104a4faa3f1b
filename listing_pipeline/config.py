# listing_pipeline/config.py
"""Environment-driven settings for the ingestion pipeline."""
import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

APIFY_TOKEN = os.getenv("APIFY_TOKEN", "")
APIFY_ACTOR_ID = os.getenv("APIFY_ACTOR_ID", "REcGj6dyoIJ9Z7aE6")
APIFY_BASE_URL = os.getenv("APIFY_BASE_URL", "https://api.apify.com/v2")

SCRAPE_INTERVAL_HOURS = int(os.getenv("SCRAPE_INTERVAL_HOURS", "24"))
SCRAPE_ON_START = os.getenv("SCRAPE_ON_START", "false").lower() == "true"
AGENCY_KEYWORDS_FILE = os.getenv("AGENCY_KEYWORDS_FILE")


@dataclass(frozen=True)
class PipelineSettings:
    batch_size: int = 8
    poll_interval: float = 15.0
    job_timeout: float = 30 * 60.0
    page_size: int = 1000
    target_total: int = 10000
    continuation_delay: float = 5 * 60.0
    reconcile_min_seen: int = 50
    max_listing_age_days: int = 90

    @classmethod
    def from_env(cls):
        return cls(
            batch_size=int(os.getenv("BATCH_SIZE", 8)),
            poll_interval=float(os.getenv("POLL_INTERVAL_SECONDS", 15)),
            job_timeout=float(os.getenv("JOB_TIMEOUT_MINUTES", 30)) * 60,
            page_size=int(os.getenv("DATASET_PAGE_SIZE", 1000)),
            target_total=int(os.getenv("TARGET_TOTAL", 10000)),
            continuation_delay=float(os.getenv("CONTINUATION_DELAY_SECONDS", 300)),
            reconcile_min_seen=int(os.getenv("RECONCILE_MIN_SEEN", 50)),
            max_listing_age_days=int(os.getenv("MAX_LISTING_AGE_DAYS", 90)),
        )
