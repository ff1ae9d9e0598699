# backend/portfolio_tracker/services/snapshots/scheduler.py
"""
Scheduled live captures at market open and close.

A daemon thread wakes every ``poll_seconds``. On a trading day it takes
one LIVE capture tagged OPEN once the market has opened, and one tagged
CLOSE once it has closed, then prunes raw snapshots older than the
retention window. A failed capture is logged and retried on the next
wake-up.

Started and stopped by the FastAPI lifespan when
ENABLE_SCHEDULED_SNAPSHOTS is set.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from portfolio_tracker.config import settings
from portfolio_tracker.models import SnapshotSource
from portfolio_tracker.services.snapshots.store import SnapshotStore
from portfolio_tracker.services.valuation.types import ValuationMode
from portfolio_tracker.utils.context import WorkContext, bind_context
from portfolio_tracker.utils.date_utils import is_business_day, now_in_market

if TYPE_CHECKING:
    from portfolio_tracker.services.protocols import ValuationProvider

logger = logging.getLogger(__name__)


class SnapshotScheduler:
    """
    Background open/close capture loop.

    Args:
        engine: Valuation provider used for LIVE captures
        store: Snapshot store, used for pruning
        session_factory: Opens a Session per capture
        poll_seconds: Wake-up interval
        retention_days: Raw snapshots older than this are pruned
        clock: Returns the current time in the trading timezone
    """

    def __init__(
            self,
            engine: ValuationProvider,
            store: SnapshotStore,
            session_factory: Callable[[], Session],
            poll_seconds: float = 30.0,
            retention_days: int = 7,
            clock: Callable[[], datetime] = now_in_market,
    ) -> None:
        self._engine = engine
        self._store = store
        self._session_factory = session_factory
        self._poll_seconds = poll_seconds
        self._retention_days = retention_days
        self._clock = clock

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._captured: set[tuple[date, SnapshotSource]] = set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="snapshot-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Snapshot scheduler started (poll every {self._poll_seconds}s)")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Snapshot scheduler stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.error("Snapshot scheduler tick failed", exc_info=True)
            self._stop.wait(self._poll_seconds)

    def tick(self) -> list[SnapshotSource]:
        """
        Run whatever capture is due now.

        Returns:
            Sources captured during this tick
        """
        now = self._clock()
        today = now.date()
        if not is_business_day(today):
            return []

        due: list[SnapshotSource] = []
        current = now.time()
        if settings.market_open <= current < settings.market_close:
            due.append(SnapshotSource.OPEN)
        elif current >= settings.market_close:
            due.append(SnapshotSource.CLOSE)

        captured = []
        for source in due:
            if (today, source) in self._captured:
                continue
            if self._capture(today, source):
                self._captured.add((today, source))
                captured.append(source)

        # Forget earlier days so the set stays small
        self._captured = {key for key in self._captured if key[0] == today}
        return captured

    def _capture(self, today: date, source: SnapshotSource) -> bool:
        context = WorkContext(correlation_id=f"capture-{source.value.lower()}-{today.isoformat()}")
        with bind_context(context):
            db = self._session_factory()
            try:
                result = self._engine.compute_valuation(db, today, ValuationMode.LIVE, persist=True, source=source)
                logger.info(f"{source.value} capture for {today}: total={result.total_value}")
                self._store.prune_expired(db, today, self._retention_days)
                return True
            except Exception:
                logger.error(f"{source.value} capture for {today} failed; will retry", exc_info=True)
                db.rollback()
                return False
            finally:
                db.close()
