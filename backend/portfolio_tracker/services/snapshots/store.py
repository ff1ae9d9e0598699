# backend/portfolio_tracker/services/snapshots/store.py
"""
Snapshot store: raw captures and the daily mean derived from them.

RawSnapshot rows are append-only. Each ``record()`` inserts one and then
rewrites that date's DailySnapshot as the arithmetic mean of every raw
row sharing the date. Both writes happen in a single commit, so a reader
never sees a raw row without its updated daily mean.

Raw rows older than the retention window are pruned by ``prune_raw``.
Daily rows are kept; a later recompute of a pruned date simply averages
over the fresh raw row(s).
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, delete, and_
from sqlalchemy.orm import Session

from portfolio_tracker.models import DailySnapshot, RawSnapshot, SnapshotSource
from portfolio_tracker.services.constants import SHARE_PRECISION, ZERO

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Implements the SnapshotWriter protocol plus the read side used by analytics."""

    # =========================================================================
    # WRITES
    # =========================================================================

    def record(
            self,
            db: Session,
            snapshot_date: date,
            total_market_value: Decimal,
            cash_balance: Decimal,
            currency: str,
            source: SnapshotSource,
            timestamp: datetime | None = None,
    ) -> RawSnapshot:
        """Insert a raw snapshot and refresh the daily mean, atomically."""
        raw = RawSnapshot(
            date=snapshot_date,
            total_market_value=total_market_value,
            cash_balance=cash_balance,
            currency=currency,
            source=source,
        )
        if timestamp is not None:
            raw.timestamp = timestamp

        try:
            db.add(raw)
            db.flush()
            daily = self._upsert_daily(db, snapshot_date)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(raw)
        logger.debug(
            f"Recorded {source.value} snapshot for {snapshot_date}: "
            f"stocks={total_market_value}, cash={cash_balance}; daily mean={daily.total_market_value}"
        )
        return raw

    def rebuild_daily(self, db: Session, snapshot_date: date) -> DailySnapshot | None:
        """Recompute one date's mean from its raw rows and commit."""
        daily = self._upsert_daily(db, snapshot_date)
        db.commit()
        return daily

    def _upsert_daily(self, db: Session, snapshot_date: date) -> DailySnapshot | None:
        raws = self.get_raw_for_date(db, snapshot_date)
        if not raws:
            return db.get(DailySnapshot, snapshot_date)

        count = Decimal(len(raws))
        mean_value = (sum((r.total_market_value for r in raws), ZERO) / count).quantize(SHARE_PRECISION)
        mean_cash = (sum((r.cash_balance for r in raws), ZERO) / count).quantize(SHARE_PRECISION)

        daily = db.get(DailySnapshot, snapshot_date)
        if daily is None:
            daily = DailySnapshot(date=snapshot_date)
            db.add(daily)

        daily.total_market_value = mean_value
        daily.cash_balance = mean_cash
        daily.currency = raws[-1].currency
        db.flush()
        return daily

    def prune_raw(self, db: Session, before_date: date) -> int:
        """Delete raw snapshots dated strictly before ``before_date``."""
        result = db.execute(delete(RawSnapshot).where(RawSnapshot.date < before_date))
        db.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Pruned {removed} raw snapshots dated before {before_date}")
        return removed

    def prune_expired(self, db: Session, today: date, retention_days: int) -> int:
        """Keep the last ``retention_days`` days of raw snapshots."""
        return self.prune_raw(db, today - timedelta(days=retention_days))

    def delete_all(self, db: Session) -> tuple[int, int]:
        """Wipe every raw and daily snapshot. Returns (raw_deleted, daily_deleted)."""
        raw_count = db.execute(delete(RawSnapshot)).rowcount or 0
        daily_count = db.execute(delete(DailySnapshot)).rowcount or 0
        db.commit()
        logger.warning(f"Deleted all snapshots: {raw_count} raw, {daily_count} daily")
        return raw_count, daily_count

    # =========================================================================
    # READS
    # =========================================================================

    def get_raw_for_date(self, db: Session, snapshot_date: date) -> list[RawSnapshot]:
        query = (
            select(RawSnapshot)
            .where(RawSnapshot.date == snapshot_date)
            .order_by(RawSnapshot.timestamp, RawSnapshot.id)
        )
        return list(db.scalars(query).all())

    def get_first_raw(
            self,
            db: Session,
            snapshot_date: date,
            source: SnapshotSource | None = None,
    ) -> RawSnapshot | None:
        """Earliest raw snapshot of a date, optionally of one source."""
        query = select(RawSnapshot).where(RawSnapshot.date == snapshot_date)
        if source is not None:
            query = query.where(RawSnapshot.source == source)
        return db.scalars(query.order_by(RawSnapshot.timestamp, RawSnapshot.id).limit(1)).first()

    def get_last_raw(
            self,
            db: Session,
            snapshot_date: date,
            source: SnapshotSource | None = None,
    ) -> RawSnapshot | None:
        query = select(RawSnapshot).where(RawSnapshot.date == snapshot_date)
        if source is not None:
            query = query.where(RawSnapshot.source == source)
        return db.scalars(query.order_by(RawSnapshot.timestamp.desc(), RawSnapshot.id.desc()).limit(1)).first()

    def get_daily(self, db: Session, snapshot_date: date) -> DailySnapshot | None:
        return db.get(DailySnapshot, snapshot_date)

    def get_daily_range(self, db: Session, start_date: date, end_date: date) -> list[DailySnapshot]:
        query = (
            select(DailySnapshot)
            .where(
                and_(
                    DailySnapshot.date >= start_date,
                    DailySnapshot.date <= end_date,
                )
            )
            .order_by(DailySnapshot.date)
        )
        return list(db.scalars(query).all())

    def latest_daily_before(self, db: Session, before_date: date) -> DailySnapshot | None:
        query = (
            select(DailySnapshot)
            .where(DailySnapshot.date < before_date)
            .order_by(DailySnapshot.date.desc())
            .limit(1)
        )
        return db.scalars(query).first()
