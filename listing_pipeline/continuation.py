# listing_pipeline/continuation.py
"""Continuation loop: keep re-running the full catalog until a stop condition.

IDLE -> RUNNING -> SCHEDULED -> RUNNING ... -> STOPPED

Every completed cycle is checked by `decide`; anything other than CONTINUE
ends the loop, so the loop cannot run forever by omission. The pending
cycle is a one-shot scheduler job that `stop()` removes.
"""
import enum
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from apscheduler.jobstores.base import JobLookupError

from .orchestrator import CycleAlreadyRunning, Orchestrator
from .schemas import RunRecord, ZoneSpec
from .utils import logger


class LoopState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SCHEDULED = "scheduled"
    STOPPED = "stopped"


class StartOutcome(str, enum.Enum):
    STARTED = "started"
    ALREADY_ACTIVE = "already_active"


class StopReason(str, enum.Enum):
    ALL_FAILED = "all_failed"
    TARGET_REACHED = "target_reached"
    SATURATED = "saturated"
    OPERATOR = "stopped_by_operator"
    BUSY = "cycle_already_running"
    ERROR = "error"


@dataclass(frozen=True)
class Decision:
    proceed: bool
    reason: Optional[StopReason] = None


def decide(run: RunRecord, corpus_size: int, target: int) -> Decision:
    if run.all_failed:
        return Decision(False, StopReason.ALL_FAILED)
    if corpus_size >= target:
        return Decision(False, StopReason.TARGET_REACHED)
    if run.new_total == 0:
        return Decision(False, StopReason.SATURATED)
    return Decision(True)


class ContinuationController:
    JOB_ID = "continuation-cycle"

    def __init__(
        self,
        orchestrator: Orchestrator,
        scheduler,
        zones: Sequence[ZoneSpec],
        corpus_size: Callable[[], int],
        target: int,
        delay: float,
    ):
        self.orchestrator = orchestrator
        self.scheduler = scheduler
        self.zones = list(zones)
        self.corpus_size = corpus_size
        self.target = target
        self.delay = delay
        self.state = LoopState.IDLE
        self.stop_reason: Optional[StopReason] = None
        self.next_run_at: Optional[datetime] = None
        self.cycles = 0
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        return self.state in (LoopState.RUNNING, LoopState.SCHEDULED)

    def start(self) -> StartOutcome:
        with self._lock:
            if self.active:
                return StartOutcome.ALREADY_ACTIVE
            self.state = LoopState.RUNNING
            self.stop_reason = None
            self.cycles = 0
            self._arm(datetime.now(timezone.utc))
        logger.info("Continuation loop started over %d zones (target %d)", len(self.zones), self.target)
        return StartOutcome.STARTED

    def stop(self, reason: StopReason = StopReason.OPERATOR) -> LoopState:
        with self._lock:
            previous = self.state
            try:
                self.scheduler.remove_job(self.JOB_ID)
            except JobLookupError:
                pass
            self.state = LoopState.STOPPED
            self.stop_reason = reason
            self.next_run_at = None
        logger.info("Continuation loop stopped (%s) from %s", reason.value, previous.value)
        return previous

    def _arm(self, run_at: datetime):
        self.next_run_at = run_at
        self.scheduler.add_job(
            self.run_next, "date", run_date=run_at, id=self.JOB_ID,
            replace_existing=True, misfire_grace_time=None,
        )

    def run_next(self):
        """Scheduler entry point: run one full-catalog cycle."""
        with self._lock:
            if not self.active:
                return
            self.state = LoopState.RUNNING
            self.next_run_at = None
        try:
            self.orchestrator.run_cycle(self.zones, on_complete=self.on_cycle_complete)
        except CycleAlreadyRunning:
            logger.warning("Continuation cycle could not start: another cycle is running")
            self._halt(StopReason.BUSY)

    def on_cycle_complete(self, run: RunRecord):
        with self._lock:
            if self.state is not LoopState.RUNNING:
                logger.info("Cycle %s finished after the loop was stopped; not continuing", run.id)
                return
            self.cycles += 1
            try:
                corpus = self.corpus_size()
            except Exception:
                logger.exception("Could not read corpus size; stopping continuation loop")
                self._halt(StopReason.ERROR)
                return
            decision = decide(run, corpus, self.target)
            logger.info(
                "Continuation check: %d/%d | new %d | all failed %s",
                corpus, self.target, run.new_total, run.all_failed,
            )
            if not decision.proceed:
                self._halt(decision.reason)
                return
            self.state = LoopState.SCHEDULED
            self._arm(datetime.now(timezone.utc) + timedelta(seconds=self.delay))
            logger.info("%d new listings; next cycle at %s", run.new_total, self.next_run_at.isoformat())

    def _halt(self, reason: StopReason):
        with self._lock:
            self.state = LoopState.STOPPED
            self.stop_reason = reason
            self.next_run_at = None
        logger.info("Continuation loop stopped: %s", reason.value)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "state": self.state.value,
                "stop_reason": self.stop_reason.value if self.stop_reason else None,
                "next_run_at": self.next_run_at,
                "cycles": self.cycles,
            }
