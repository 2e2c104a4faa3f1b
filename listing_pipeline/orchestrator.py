# listing_pipeline/orchestrator.py
"""Runs scrape cycles: submit, poll, fetch, ingest and reconcile each zone.

Zones are processed in fixed-size batches; batches run one after another and
the zones of a batch run concurrently, each on its own worker thread and its
own database session. A zone that fails is recorded in the cycle's
`RunRecord` and never stops the rest of the cycle.
"""
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

import requests

from .classifier import Classifier
from .config import PipelineSettings
from .provider import JobFailed, JobStatus, JobTimeout, ProviderError, ScrapeProvider
from .reconcile import reconcile
from .schemas import RunRecord, RunStatus, ZoneResult, ZoneSpec
from .services import ingest_items
from .utils import chunked, logger

RUN_LOG_SIZE = 20


class CycleAlreadyRunning(RuntimeError):
    pass


class RunLog:
    """Most-recent-first, bounded history of cycles."""

    def __init__(self, size: int = RUN_LOG_SIZE):
        self.lock = threading.RLock()
        self._runs = deque(maxlen=size)

    def add(self, run: RunRecord):
        with self.lock:
            self._runs.appendleft(run)

    def list(self) -> List[RunRecord]:
        with self.lock:
            return [r.model_copy(deep=True) for r in self._runs]

    def last(self, completed: bool = False) -> Optional[RunRecord]:
        with self.lock:
            for r in self._runs:
                if not completed or r.status is RunStatus.COMPLETED:
                    return r.model_copy(deep=True)
        return None

    def __len__(self):
        with self.lock:
            return len(self._runs)


class Orchestrator:
    def __init__(
        self,
        provider: Optional[ScrapeProvider],
        session_factory,
        classifier: Classifier,
        settings: PipelineSettings,
        run_log: Optional[RunLog] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.session_factory = session_factory
        self.classifier = classifier
        self.settings = settings
        self.run_log = run_log if run_log is not None else RunLog()
        self.sleep = sleep
        self._cycle_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._cycle_lock.locked()

    def run_cycle(self, zones: Sequence[ZoneSpec],
                  on_complete: Optional[Callable[[RunRecord], None]] = None) -> RunRecord:
        if not self._cycle_lock.acquire(blocking=False):
            raise CycleAlreadyRunning("a scrape cycle is already running")
        try:
            zones = list(zones)
            run = RunRecord(zones=[z.label() for z in zones])
            self.run_log.add(run)
            logger.info("Cycle %s started with %d zones", run.id, len(zones))
            for n, batch in enumerate(chunked(zones, self.settings.batch_size), 1):
                logger.info("Batch %d: %s", n, ", ".join(z.label() for z in batch))
                results = self._run_batch(batch, run.started_at)
                with self.run_log.lock:
                    run.per_zone_results.extend(results)
            with self.run_log.lock:
                run.status = RunStatus.COMPLETED
                run.finished_at = datetime.now(timezone.utc)
            failed = sum(1 for r in run.per_zone_results if r.error)
            logger.info("Cycle %s complete: %d zones, %d failed, %d new", run.id, len(zones), failed, run.new_total)
        finally:
            self._cycle_lock.release()
        if on_complete is not None:
            try:
                on_complete(run)
            except Exception:
                logger.exception("Completion handler for cycle %s failed", run.id)
        return run

    def _run_batch(self, batch: List[ZoneSpec], as_of: datetime) -> List[ZoneResult]:
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="zone") as executor:
            futures = [executor.submit(self.run_zone, zone, as_of) for zone in batch]
            return [f.result() for f in futures]

    def run_zone(self, zone: ZoneSpec, as_of: datetime) -> ZoneResult:
        try:
            items, truncated = self.scrape(zone)
            db = self.session_factory()
            try:
                outcome = ingest_items(db, items, self.classifier, as_of, zone)
                deactivated = reconcile(
                    db, zone, outcome.seen_ids, outcome.agency_ids, outcome.new_count,
                    min_seen=self.settings.reconcile_min_seen, truncated=truncated,
                )
            finally:
                db.close()
        except (ProviderError, requests.RequestException) as e:
            logger.error("%s failed: %s", zone.label(), e)
            return ZoneResult(zone=zone.label(), error=str(e))
        except Exception as e:
            logger.exception("%s failed unexpectedly", zone.label())
            return ZoneResult(zone=zone.label(), error=f"{type(e).__name__}: {e}")
        return ZoneResult(
            zone=zone.label(),
            total=outcome.total,
            private_count=outcome.private_count,
            agency_count=outcome.agency_count,
            new_count=outcome.new_count,
            updated_count=outcome.updated_count,
            deactivated_count=deactivated,
            skipped_count=outcome.skipped_count,
        )

    def scrape(self, zone: ZoneSpec) -> Tuple[list, bool]:
        """Run one provider job; returns (items capped at max_items, truncated?)."""
        if self.provider is None:
            raise ProviderError("scrape provider not configured")
        job_id = self.provider.submit_job(zone)
        self.wait_for_job(job_id)
        # one item past the cap tells a truncated result from a complete one
        items = self.provider.fetch_results(job_id, limit=zone.max_items + 1)
        truncated = len(items) > zone.max_items
        return items[:zone.max_items], truncated

    def wait_for_job(self, job_id: str):
        deadline = time.monotonic() + self.settings.job_timeout
        while time.monotonic() < deadline:
            self.sleep(self.settings.poll_interval)
            status = self.provider.get_job_status(job_id)
            if status is JobStatus.SUCCEEDED:
                return
            if status is JobStatus.FAILED:
                raise JobFailed(f"job {job_id} failed")
        minutes = self.settings.job_timeout / 60
        raise JobTimeout(f"job {job_id} timed out after {minutes:g}min")
