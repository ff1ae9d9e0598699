# tests/services/test_orchestrator.py
"""
Tests for RecomputeOrchestrator.

Most tests replace the valuation engine with a recorder so they only
cover day selection, failure handling and the job slot. TestIdempotence
runs the real engine and snapshot store over the mock provider.
"""

import threading
import time
from datetime import date
from decimal import Decimal

import pytest

from portfolio_tracker.models import DailySnapshot, RawSnapshot, SnapshotSource, TransactionType
from portfolio_tracker.services.exceptions import RecomputeInProgressError
from portfolio_tracker.services.ledger import TransactionDraft
from portfolio_tracker.services.snapshots import JobState, RecomputeJob, RecomputeOrchestrator
from portfolio_tracker.services.valuation import ValuationMode
from portfolio_tracker.utils.context import WorkContext, bind_context, get_context
from tests.conftest import TODAY, create_transaction, fixed_today

WAIT = 5


class RecordingEngine:
    """Records (date, mode) per call; optionally fails or blocks on chosen days."""

    def __init__(self, fail_on: set[date] | None = None, block_first: bool = False):
        self.calls: list[tuple[date, ValuationMode]] = []
        self.contexts: list[WorkContext | None] = []
        self._fail_on = fail_on or set()
        self._block_first = block_first
        self.entered = threading.Event()
        self.release = threading.Event()
        self._lock = threading.Lock()

    def compute_valuation(self, db, target_date, mode, account_ids=None, persist=True, source=None):
        with self._lock:
            first = not self.calls
            self.calls.append((target_date, mode))
            self.contexts.append(get_context())
        if first and self._block_first:
            self.entered.set()
            self.release.wait(WAIT)
        if target_date in self._fail_on:
            raise RuntimeError(f"boom on {target_date}")

    @property
    def dates(self) -> list[date]:
        return [d for d, _ in self.calls]


class StaticTradeLog:
    """Trade source without a database."""

    def __init__(self, trade_dates: set[date] | None = None, first: date | None = None):
        self._trade_dates = trade_dates or set()
        self._first = first

    def trade_dates_between(self, db, start_date, end_date):
        return {d for d in self._trade_dates if start_date <= d <= end_date}

    def first_trade_date(self, db, account_ids=None):
        return self._first

    def transactions_up_to(self, db, target_date, account_ids=None):
        return []


class NullSession:
    def rollback(self):
        pass

    def close(self):
        pass


def make_orchestrator(engine, source=None, **kwargs) -> RecomputeOrchestrator:
    kwargs.setdefault("session_factory", NullSession)
    return RecomputeOrchestrator(
        engine=engine,
        transaction_source=source or StaticTradeLog(),
        throttle_seconds=0,
        today=fixed_today,
        **kwargs,
    )


def wait_until_idle(orchestrator: RecomputeOrchestrator) -> None:
    """The slot is released just after a job reports done."""
    deadline = time.monotonic() + WAIT
    while orchestrator.status().running is not None and time.monotonic() < deadline:
        time.sleep(0.01)


# =============================================================================
# RECALCULATE_FROM
# =============================================================================

class TestRecalculateFrom:
    """Tests for the synchronous forward replay."""

    def test_business_days_plus_trade_dates(self):
        """Should value weekdays and weekend days that carry a trade."""
        engine = RecordingEngine()
        saturday = date(2024, 3, 9)
        orchestrator = make_orchestrator(engine, StaticTradeLog({saturday}))

        report = orchestrator.recalculate_from(NullSession(), date(2024, 3, 8))

        assert engine.dates == [
            date(2024, 3, 8), saturday,
            date(2024, 3, 11), date(2024, 3, 12), date(2024, 3, 13), date(2024, 3, 14), TODAY,
        ]
        assert report.days_processed == 7
        assert report.end_date == TODAY

    def test_today_is_live_past_is_historical(self):
        engine = RecordingEngine()
        orchestrator = make_orchestrator(engine)

        orchestrator.recalculate_from(NullSession(), date(2024, 3, 14))

        assert engine.calls == [
            (date(2024, 3, 14), ValuationMode.HISTORICAL),
            (TODAY, ValuationMode.LIVE),
        ]

    def test_failing_day_is_skipped(self):
        """Should count a failing day and carry on with the next one."""
        engine = RecordingEngine(fail_on={date(2024, 3, 13)})
        orchestrator = make_orchestrator(engine)

        report = orchestrator.recalculate_from(NullSession(), date(2024, 3, 12))

        assert report.days_processed == 3
        assert report.days_failed == 1
        assert report.failed_dates == (date(2024, 3, 13),)
        assert engine.dates[-1] == TODAY

    def test_future_start_does_nothing(self):
        engine = RecordingEngine()
        orchestrator = make_orchestrator(engine)

        report = orchestrator.recalculate_from(NullSession(), date(2024, 3, 20))

        assert engine.calls == []
        assert report.days_processed == 0

    def test_cancelled_job_stops(self):
        engine = RecordingEngine()
        orchestrator = make_orchestrator(engine)
        job = RecomputeJob(1, date(2024, 3, 11))
        job.cancel()

        report = orchestrator.recalculate_from(NullSession(), date(2024, 3, 11), job=job)

        assert report.cancelled is True
        assert engine.calls == []

    def test_throttle_sleeps_between_days(self):
        engine = RecordingEngine()
        sleeps: list[float] = []
        orchestrator = RecomputeOrchestrator(
            engine=engine,
            session_factory=NullSession,
            transaction_source=StaticTradeLog(),
            throttle_seconds=0.5,
            today=fixed_today,
            sleep=sleeps.append,
        )

        orchestrator.recalculate_from(NullSession(), date(2024, 3, 13))

        assert sleeps == [0.5, 0.5]

    def test_progress_published(self):
        engine = RecordingEngine()
        orchestrator = make_orchestrator(engine)
        job = RecomputeJob(7, date(2024, 3, 14))

        orchestrator.recalculate_from(NullSession(), date(2024, 3, 14), job=job)

        messages = []
        while not job.progress.empty():
            messages.append(job.progress.get_nowait())
        assert [m.current_date for m in messages] == [date(2024, 3, 14), TODAY]
        assert messages[-1].days_total == 2


# =============================================================================
# BACKGROUND JOBS
# =============================================================================

class TestSubmit:
    """Tests for the single job slot and trigger coalescing."""

    def test_submit_runs_in_background(self):
        engine = RecordingEngine()
        orchestrator = make_orchestrator(engine)

        job = orchestrator.submit(date(2024, 3, 14))

        assert job.wait(WAIT)
        wait_until_idle(orchestrator)
        assert job.status().state == JobState.COMPLETED
        assert job.report.days_processed == 2
        assert orchestrator.status().last_report == job.report
        assert orchestrator.status().running is None

    def test_triggers_coalesce_into_one_pending_job(self):
        """Should queue one pending job at the earliest requested date."""
        engine = RecordingEngine(block_first=True)
        orchestrator = make_orchestrator(engine)

        running = orchestrator.submit(date(2024, 3, 13))
        assert engine.entered.wait(WAIT)

        pending = orchestrator.submit(date(2024, 3, 15))
        same = orchestrator.submit(date(2024, 3, 14))

        assert same is pending
        assert pending is not running
        status = orchestrator.status()
        assert status.running.job_id == running.job_id
        assert status.pending_start == date(2024, 3, 14)
        assert not running.cancel_requested

        engine.release.set()
        assert pending.wait(WAIT)

        assert running.status().state == JobState.COMPLETED
        assert pending.report.start_date == date(2024, 3, 14)
        assert pending.status().state == JobState.COMPLETED

    def test_earlier_trigger_supersedes_running_job(self):
        """Should cancel the running job when a trigger lands behind its progress."""
        engine = RecordingEngine(block_first=True)
        orchestrator = make_orchestrator(engine)

        running = orchestrator.submit(date(2024, 3, 13))
        assert engine.entered.wait(WAIT)

        pending = orchestrator.submit(date(2024, 3, 12))
        assert running.cancel_requested

        engine.release.set()
        assert pending.wait(WAIT)

        assert running.status().state == JobState.CANCELLED
        assert running.report.days_processed == 1
        assert pending.report.start_date == date(2024, 3, 12)
        assert pending.report.days_processed == 4

    def test_shutdown_drops_pending(self):
        """Should cancel the pending job and stop the running one after its current day."""
        engine = RecordingEngine(block_first=True)
        orchestrator = make_orchestrator(engine)

        running = orchestrator.submit(date(2024, 3, 14))
        assert engine.entered.wait(WAIT)
        pending = orchestrator.submit(date(2024, 3, 15))

        stopper = threading.Thread(target=orchestrator.shutdown, kwargs={"timeout": WAIT})
        stopper.start()
        assert pending.wait(WAIT)
        engine.release.set()
        stopper.join(WAIT)

        assert pending.status().state == JobState.CANCELLED
        assert running.done
        assert running.status().state == JobState.CANCELLED
        assert orchestrator.status().pending_start is None
        assert engine.dates == [date(2024, 3, 14)]

    def test_cancelled_pending_job_finishes_without_running(self):
        """Should finish a pending job cancelled before it started, so waiters return."""
        engine = RecordingEngine(block_first=True)
        orchestrator = make_orchestrator(engine)

        running = orchestrator.submit(date(2024, 3, 14))
        assert engine.entered.wait(WAIT)
        pending = orchestrator.submit(date(2024, 3, 15))
        pending.cancel()

        engine.release.set()

        assert pending.wait(WAIT)
        assert pending.status().state == JobState.CANCELLED
        assert pending.report is None
        assert running.status().state == JobState.COMPLETED
        wait_until_idle(orchestrator)
        assert orchestrator.status().pending_start is None
        assert engine.dates == [date(2024, 3, 14), TODAY]


class TestJobContext:
    """Tests that jobs are linked to the request that submitted them."""

    def test_job_runs_under_its_own_context(self):
        engine = RecordingEngine()
        orchestrator = make_orchestrator(engine)

        with bind_context(WorkContext(correlation_id="req-1")) as request_context:
            job = orchestrator.submit(date(2024, 3, 15))

        assert job.wait(WAIT)
        assert request_context.submitted_jobs == [job.job_id]
        assert job.triggered_by == "req-1"
        job_context = engine.contexts[0]
        assert job_context.correlation_id == f"recompute-{job.job_id}"
        assert job_context.recompute_job_id == job.job_id
        assert job_context.triggered_by == "req-1"

    def test_coalesced_trigger_records_pending_job(self):
        engine = RecordingEngine(block_first=True)
        orchestrator = make_orchestrator(engine)

        running = orchestrator.submit(date(2024, 3, 14))
        assert engine.entered.wait(WAIT)
        with bind_context(WorkContext(correlation_id="req-2")) as request_context:
            pending = orchestrator.submit(date(2024, 3, 15))

        engine.release.set()
        assert pending.wait(WAIT)

        assert request_context.submitted_jobs == [pending.job_id]
        assert running.triggered_by is None


# =============================================================================
# IDEMPOTENCE
# =============================================================================

class TestIdempotence:
    """Replaying the same range twice over unchanged trades and prices."""

    @pytest.fixture
    def replay(self, db, session_factory, ledger, valuation_engine, store, mock_provider, sample_account):
        ledger.create_transaction(db, TransactionDraft(
            account_id=sample_account.id,
            symbol="AAPL",
            transaction_type=TransactionType.BUY,
            price=Decimal("100"),
            quantity=Decimal("10"),
            trade_date=date(2024, 3, 11),
        ))
        for day, close in [
            (date(2024, 3, 11), "101"),
            (date(2024, 3, 12), "104"),
            (date(2024, 3, 13), "103"),
            (date(2024, 3, 14), "110"),
        ]:
            mock_provider.set_bar("AAPL", day, "100", close)
        mock_provider.set_quote("AAPL", "120")

        orchestrator = RecomputeOrchestrator(
            engine=valuation_engine,
            session_factory=session_factory,
            snapshot_writer=store,
            throttle_seconds=0,
            today=fixed_today,
        )

        def run() -> list[tuple]:
            report = orchestrator.recalculate_from(db, date(2024, 3, 11))
            assert report.days_failed == 0
            return [
                (s.date, s.total_market_value, s.cash_balance, s.currency)
                for s in store.get_daily_range(db, date(2024, 3, 11), TODAY)
            ]

        return run

    def test_second_replay_leaves_daily_rows_unchanged(self, db, replay):
        first = replay()
        second = replay()

        assert len(first) == 5
        assert second == first
        assert [row[0] for row in first] == [
            date(2024, 3, 11), date(2024, 3, 12), date(2024, 3, 13), date(2024, 3, 14), TODAY,
        ]

    def test_one_daily_row_per_day(self, db, replay):
        replay()
        replay()

        assert db.query(DailySnapshot).count() == 5


# =============================================================================
# FULL REBUILD
# =============================================================================

class TestRebuildAll:
    """Tests for wiping and replaying every snapshot."""

    def test_wipes_and_replays_from_first_trade(self, db, session_factory, store, sample_account):
        create_transaction(db, sample_account, trade_date=date(2024, 3, 13))
        store.record(db, date(2024, 1, 2), Decimal("1"), Decimal("0"), "USD", SnapshotSource.LIVE)
        engine = RecordingEngine()
        orchestrator = RecomputeOrchestrator(
            engine=engine,
            session_factory=session_factory,
            snapshot_writer=store,
            throttle_seconds=0,
            today=fixed_today,
        )

        report = orchestrator.rebuild_all()

        assert engine.dates == [date(2024, 3, 13), date(2024, 3, 14), TODAY]
        assert report.days_processed == 3
        assert db.query(RawSnapshot).count() == 0

    def test_no_trades(self, session_factory, store):
        engine = RecordingEngine()
        orchestrator = RecomputeOrchestrator(
            engine=engine,
            session_factory=session_factory,
            snapshot_writer=store,
            throttle_seconds=0,
            today=fixed_today,
        )

        report = orchestrator.rebuild_all()

        assert engine.calls == []
        assert report.days_processed == 0

    def test_refused_while_job_running(self, store):
        engine = RecordingEngine(block_first=True)
        orchestrator = make_orchestrator(engine, snapshot_writer=store)

        running = orchestrator.submit(date(2024, 3, 14))
        assert engine.entered.wait(WAIT)

        try:
            with pytest.raises(RecomputeInProgressError):
                orchestrator.rebuild_all()
        finally:
            engine.release.set()
            running.wait(WAIT)

    def test_needs_writer(self):
        with pytest.raises(RuntimeError):
            make_orchestrator(RecordingEngine()).rebuild_all()
