# backend/portfolio_tracker/services/snapshots/orchestrator.py
"""
Recompute orchestrator: replays snapshots forward from a trigger date.

recalculate_from(db, start)
    Values every calendar day from ``start`` through today that is a
    trading day or carries at least one trade. Past days use HISTORICAL
    mode, today uses LIVE. Each day is persisted. A failing day is logged
    and skipped; the call itself never raises for valuation failures.

submit(start)
    Runs recalculate_from on a background thread with its own session.
    One job slot per orchestrator:

    - idle slot                -> the job starts immediately
    - job running              -> the trigger joins a single pending job
                                  whose start date is the minimum of all
                                  coalesced triggers
    - trigger earlier than the -> the running job is also cancelled; the
      running job's progress      pending job replays from the earlier date

    The pending job starts when the running one finishes.

rebuild_all()
    Wipes every snapshot and replays from the earliest trade, in the
    calling thread, while holding the job slot.

Progress is published on each job's ``progress`` queue and via
``RecomputeJob.status()``. A job runs under its own WorkContext
(correlation ID ``recompute-<n>``) that names the request which submitted
it, and submit() records the job ID on the submitting request's context.
"""

from __future__ import annotations

import enum
import itertools
import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from portfolio_tracker.services.exceptions import RecomputeInProgressError
from portfolio_tracker.services.ledger.queries import TransactionLog
from portfolio_tracker.services.valuation.types import ValuationMode
from portfolio_tracker.utils.context import (
    WorkContext,
    bind_context,
    get_correlation_id,
    record_recompute_job,
)
from portfolio_tracker.utils.date_utils import is_business_day, iter_days, today_in_market

if TYPE_CHECKING:
    from portfolio_tracker.services.protocols import (
        SnapshotWriter,
        TransactionSource,
        ValuationProvider,
    )

logger = logging.getLogger(__name__)


class JobState(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


_FINAL_STATES = frozenset({JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED})


@dataclass(frozen=True)
class RecomputeProgress:
    """One progress message of a recompute job."""

    job_id: int
    state: JobState
    start_date: date
    current_date: date | None = None
    days_done: int = 0
    days_total: int = 0
    message: str | None = None


@dataclass(frozen=True)
class RecomputeReport:
    """
    Outcome of one recalculate_from run.

    Attributes:
        start_date: First date considered
        end_date: Last date considered (today at run time)
        days_processed: Days valued and persisted
        days_failed: Days whose valuation raised
        cancelled: Stopped early by cancel()
        failed_dates: The dates counted in days_failed
    """

    start_date: date
    end_date: date
    days_processed: int = 0
    days_failed: int = 0
    cancelled: bool = False
    failed_dates: tuple[date, ...] = field(default_factory=tuple)


class RecomputeJob:
    """
    Handle on a background recompute.

    Progress messages are pushed onto ``progress`` (a thread-safe queue);
    ``status()`` always returns the latest one. ``triggered_by`` is the
    correlation ID of the request that created the job, if any.
    """

    def __init__(self, job_id: int, start_date: date, triggered_by: str | None = None) -> None:
        self.job_id = job_id
        self.triggered_by = triggered_by
        self.progress: queue.Queue[RecomputeProgress] = queue.Queue()
        self._lock = threading.Lock()
        self._start_date = start_date
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._report: RecomputeReport | None = None
        self._status = RecomputeProgress(job_id=job_id, state=JobState.PENDING, start_date=start_date)

    @property
    def start_date(self) -> date:
        with self._lock:
            return self._start_date

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    @property
    def report(self) -> RecomputeReport | None:
        with self._lock:
            return self._report

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def status(self) -> RecomputeProgress:
        with self._lock:
            return self._status

    def cancel(self) -> None:
        """Stop before the next day. Already persisted days stay."""
        if not self._done.is_set():
            logger.info(f"Cancellation requested for recompute job {self.job_id}")
        self._cancel.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job ends. Returns False on timeout."""
        return self._done.wait(timeout)

    def _lower_start(self, start_date: date) -> None:
        with self._lock:
            if start_date < self._start_date:
                self._start_date = start_date
                self._status = RecomputeProgress(
                    job_id=self.job_id, state=self._status.state, start_date=start_date,
                )

    def _publish(self, state: JobState, **fields) -> None:
        with self._lock:
            self._status = RecomputeProgress(
                job_id=self.job_id, state=state, start_date=self._start_date, **fields,
            )
            message = self._status
        self.progress.put(message)

    def _finish(self, state: JobState, report: RecomputeReport | None, message: str | None = None) -> None:
        with self._lock:
            self._report = report
            done = report.days_processed + report.days_failed if report else self._status.days_done
            self._status = RecomputeProgress(
                job_id=self.job_id,
                state=state,
                start_date=self._start_date,
                current_date=self._status.current_date,
                days_done=done,
                days_total=self._status.days_total,
                message=message,
            )
            final = self._status
        self.progress.put(final)
        self._done.set()


@dataclass(frozen=True)
class OrchestratorStatus:
    """Snapshot of the job slot for status endpoints."""

    running: RecomputeProgress | None
    pending_start: date | None
    last_report: RecomputeReport | None


class RecomputeOrchestrator:
    """
    Serialises snapshot recomputation for the portfolio.

    Args:
        engine: Valuation provider used for every day
        session_factory: Opens a new Session for each background job
        snapshot_writer: Needed by rebuild_all to wipe snapshots
        transaction_source: Trade log reader
        throttle_seconds: Pause between valued days
        today: Returns the trading-calendar "today" (injectable for tests)
        sleep: Sleep function (injectable for tests)
    """

    def __init__(
            self,
            engine: ValuationProvider,
            session_factory: Callable[[], Session],
            snapshot_writer: SnapshotWriter | None = None,
            transaction_source: TransactionSource | None = None,
            throttle_seconds: float = 0.2,
            today: Callable[[], date] = today_in_market,
            sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._engine = engine
        self._session_factory = session_factory
        self._writer = snapshot_writer
        self._source = transaction_source or TransactionLog()
        self._throttle = throttle_seconds
        self._today = today
        self._sleep = sleep

        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._running: RecomputeJob | None = None
        self._pending: RecomputeJob | None = None
        self._last_report: RecomputeReport | None = None
        self._threads: list[threading.Thread] = []

    # =========================================================================
    # SYNCHRONOUS REPLAY
    # =========================================================================

    def recalculate_from(
            self,
            db: Session,
            start_date: date,
            job: RecomputeJob | None = None,
    ) -> RecomputeReport:
        """
        Value and persist every relevant day from ``start_date`` to today.

        Never raises for a failing day; see RecomputeReport.days_failed.
        """
        today = self._today()
        if start_date > today:
            logger.debug(f"Recompute start {start_date} is after today ({today}); nothing to do")
            return RecomputeReport(start_date=start_date, end_date=today)

        trade_dates = self._source.trade_dates_between(db, start_date, today)
        days = [d for d in iter_days(start_date, today) if is_business_day(d) or d in trade_dates]

        logger.info(f"Recomputing snapshots {start_date} -> {today}: {len(days)} days")

        processed = 0
        failed: list[date] = []
        cancelled = False

        for index, day in enumerate(days):
            if job is not None:
                if job.cancel_requested:
                    cancelled = True
                    logger.info(f"Recompute job {job.job_id} cancelled before {day}")
                    break
                job._publish(JobState.RUNNING, current_date=day, days_done=index, days_total=len(days))

            mode = ValuationMode.LIVE if day == today else ValuationMode.HISTORICAL
            try:
                self._engine.compute_valuation(db, day, mode, persist=True)
                processed += 1
            except Exception:
                logger.error(f"Snapshot recompute failed for {day}", exc_info=True)
                db.rollback()
                failed.append(day)

            if self._throttle > 0 and index < len(days) - 1:
                self._sleep(self._throttle)

        report = RecomputeReport(
            start_date=start_date,
            end_date=today,
            days_processed=processed,
            days_failed=len(failed),
            cancelled=cancelled,
            failed_dates=tuple(failed),
        )
        logger.info(
            f"Recompute {start_date} -> {today} finished: processed={processed}, "
            f"failed={len(failed)}, cancelled={cancelled}"
        )
        return report

    # =========================================================================
    # BACKGROUND JOBS
    # =========================================================================

    def submit(self, start_date: date) -> RecomputeJob:
        """
        Schedule a recompute from ``start_date``.

        Returns the job that will cover the request: a new running job, or
        the shared pending job when one is already running.
        """
        with self._lock:
            running = self._running
            if running is None:
                job = RecomputeJob(next(self._ids), start_date, get_correlation_id())
                self._start(job)
                record_recompute_job(job.job_id)
                return job

            if self._pending is None:
                self._pending = RecomputeJob(next(self._ids), start_date, get_correlation_id())
                logger.info(f"Recompute from {start_date} queued behind job {running.job_id}")
            else:
                self._pending._lower_start(start_date)
                logger.info(
                    f"Recompute from {start_date} coalesced into pending job {self._pending.job_id} "
                    f"(start {self._pending.start_date})"
                )

            progress = running.status().current_date or running.start_date
            if start_date < progress:
                logger.info(
                    f"Trigger {start_date} is behind running job {running.job_id} "
                    f"(at {progress}); superseding it"
                )
                running.cancel()

            record_recompute_job(self._pending.job_id)
            return self._pending

    def status(self) -> OrchestratorStatus:
        with self._lock:
            return OrchestratorStatus(
                running=self._running.status() if self._running else None,
                pending_start=self._pending.start_date if self._pending else None,
                last_report=self._last_report,
            )

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """Drop the pending job, cancel the running one and wait for it."""
        with self._lock:
            pending, self._pending = self._pending, None
            running = self._running
        if pending is not None:
            pending.cancel()
            pending._finish(JobState.CANCELLED, None, "Shut down before start")
        if running is not None:
            running.cancel()
            running.wait(timeout)

    def _start(self, job: RecomputeJob) -> None:
        """Occupy the slot and start the worker thread. Caller holds _lock."""
        self._running = job
        thread = threading.Thread(
            target=self._run_job,
            args=(job,),
            name=f"recompute-{job.job_id}",
            daemon=True,
        )
        self._threads = [t for t in self._threads if t.is_alive()] + [thread]
        thread.start()

    def _run_job(self, job: RecomputeJob) -> None:
        with bind_context(WorkContext.for_recompute_job(job.job_id, job.triggered_by)):
            job._publish(JobState.RUNNING)
            db = self._session_factory()
            report: RecomputeReport | None = None
            try:
                report = self.recalculate_from(db, job.start_date, job=job)
                state = JobState.CANCELLED if report.cancelled else JobState.COMPLETED
                job._finish(state, report)
            except Exception as e:
                logger.error(f"Recompute job {job.job_id} crashed", exc_info=True)
                job._finish(JobState.FAILED, report, str(e))
            finally:
                db.close()
                self._release(job)

    def _release(self, job: RecomputeJob) -> None:
        """Free the slot and start the pending job, if any."""
        with self._lock:
            if self._running is job:
                self._running = None
            if job.report is not None:
                self._last_report = job.report
            if self._pending is not None and self._running is None:
                pending, self._pending = self._pending, None
                if pending.cancel_requested:
                    pending._finish(JobState.CANCELLED, None, "Cancelled before start")
                    return
                logger.info(f"Starting pending recompute job {pending.job_id} from {pending.start_date}")
                self._start(pending)

    # =========================================================================
    # FULL REBUILD
    # =========================================================================

    def rebuild_all(self) -> RecomputeReport:
        """
        Wipe all snapshots and replay from the earliest trade.

        Runs in the calling thread while holding the job slot.

        Raises:
            RecomputeInProgressError: A recompute job is running
        """
        if self._writer is None:
            raise RuntimeError("rebuild_all needs a snapshot writer")

        db = self._session_factory()
        try:
            first = self._source.first_trade_date(db)
            today = self._today()

            with self._lock:
                if self._running is not None:
                    raise RecomputeInProgressError(self._running.start_date)
                job = RecomputeJob(next(self._ids), first or today)
                self._running = job

            try:
                logger.warning(f"Rebuilding all snapshots (earliest trade: {first})")
                job._publish(JobState.RUNNING)
                self._writer.delete_all(db)

                if first is None:
                    report = RecomputeReport(start_date=today, end_date=today)
                else:
                    report = self.recalculate_from(db, first, job=job)

                job._finish(JobState.CANCELLED if report.cancelled else JobState.COMPLETED, report)
                return report
            except Exception as e:
                job._finish(JobState.FAILED, None, str(e))
                raise
            finally:
                self._release(job)
        finally:
            db.close()
