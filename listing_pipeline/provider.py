# listing_pipeline/provider.py
"""Client for the external scrape provider (Apify actor runs + datasets)."""
import enum
from typing import Any, Dict, List, Optional, Protocol

import requests

from .config import APIFY_ACTOR_ID, APIFY_BASE_URL, APIFY_TOKEN
from .schemas import ZoneSpec
from .utils import logger, retry


class ProviderError(RuntimeError):
    """The provider rejected a request or answered with something unusable."""


class ProviderUnavailable(ProviderError):
    """Transient provider trouble (5xx, rate limit); worth retrying."""


class JobFailed(ProviderError):
    pass


class JobTimeout(ProviderError):
    pass


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ScrapeProvider(Protocol):
    def submit_job(self, zone: ZoneSpec) -> str:
        ...

    def get_job_status(self, job_id: str) -> JobStatus:
        ...

    def fetch_results(self, job_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        ...


_FAILED_RUN_STATES = {"FAILED", "ABORTED", "TIMED-OUT", "TIMING-OUT", "ABORTING"}


def job_input(zone: ZoneSpec) -> Dict[str, Any]:
    """Actor input for a zone.

    Asks for one item more than `max_items` so a capped result can be told
    apart from a zone that has exactly `max_items` listings.
    """
    if zone.start_url:
        return {"startUrls": [{"url": zone.start_url}], "maxItems": zone.max_items + 1}
    return {
        "locationName": zone.location_name or zone.name,
        "country": "es",
        "operation": zone.operation.value,
        "maxItems": zone.max_items + 1,
        "userType": "private",
    }


class ApifyProvider:
    def __init__(self, token: str = APIFY_TOKEN, actor_id: str = APIFY_ACTOR_ID,
                 base_url: str = APIFY_BASE_URL, page_size: int = 1000, session=None):
        if not token:
            raise ProviderError("APIFY_TOKEN not set")
        self.actor_id = actor_id
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})
        self._datasets: Dict[str, str] = {}

    @retry((requests.ConnectionError, requests.Timeout, ProviderUnavailable), tries=3, delay=2, backoff=2)
    def _request(self, method, path, **kwargs):
        resp = self.session.request(method, f"{self.base_url}{path}", timeout=kwargs.pop("timeout", 60), **kwargs)
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            code = e.response.status_code if e.response is not None else None
            if code is not None and (code == 429 or code >= 500):
                raise ProviderUnavailable(f"{method} {path}: {e}") from e
            # any other 4xx fails the same way on every attempt
            raise ProviderError(f"{method} {path} rejected: {e}") from e
        return resp.json()

    def submit_job(self, zone: ZoneSpec) -> str:
        payload = self._request("POST", f"/acts/{self.actor_id}/runs", json=job_input(zone), timeout=30)
        run = payload.get("data") or {}
        if not run.get("id"):
            raise ProviderError(f"actor run for {zone.label()} returned no id")
        if run.get("defaultDatasetId"):
            self._datasets[run["id"]] = run["defaultDatasetId"]
        logger.info("Submitted %s as run %s", zone.label(), run["id"])
        return run["id"]

    def get_job_status(self, job_id: str) -> JobStatus:
        run = self._request("GET", f"/acts/{self.actor_id}/runs/{job_id}").get("data") or {}
        if run.get("defaultDatasetId"):
            self._datasets[job_id] = run["defaultDatasetId"]
        state = str(run.get("status", "")).upper()
        if state == "SUCCEEDED":
            return JobStatus.SUCCEEDED
        if state in _FAILED_RUN_STATES:
            return JobStatus.FAILED
        return JobStatus.PENDING

    def fetch_results(self, job_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        dataset_id = self._datasets.get(job_id)
        if dataset_id is None:
            run = self._request("GET", f"/acts/{self.actor_id}/runs/{job_id}").get("data") or {}
            dataset_id = run.get("defaultDatasetId")
            if not dataset_id:
                raise ProviderError(f"run {job_id} has no dataset")
        return self.fetch_dataset(dataset_id, limit=limit)

    def fetch_dataset(self, dataset_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Drain every page of a dataset, stopping early at `limit` items."""
        items: List[Dict[str, Any]] = []
        offset = 0
        while limit is None or len(items) < limit:
            page_size = self.page_size if limit is None else min(self.page_size, limit - len(items))
            page = self._request(
                "GET", f"/datasets/{dataset_id}/items",
                params={"format": "json", "clean": 1, "offset": offset, "limit": page_size},
            )
            if not isinstance(page, list):
                raise ProviderError(f"dataset {dataset_id} returned {type(page).__name__}, expected list")
            items.extend(page)
            offset += len(page)
            if len(page) < page_size:
                break
        logger.info("Fetched %d items from dataset %s", len(items), dataset_id)
        return items
