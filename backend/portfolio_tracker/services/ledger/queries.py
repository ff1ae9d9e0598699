# backend/portfolio_tracker/services/ledger/queries.py
"""
Read-only queries over the trade log.

TransactionLog implements the TransactionSource protocol consumed by the
valuation engine, the recompute orchestrator and the analytics service.
Writes go through LedgerService only.
"""

from datetime import date

from sqlalchemy import select, and_, func
from sqlalchemy.orm import Session

from portfolio_tracker.models import Transaction


class TransactionLog:
    """Query helper for transactions; stateless, safe to share."""

    def transactions_up_to(
            self,
            db: Session,
            target_date: date,
            account_ids: list[int] | None = None,
    ) -> list[Transaction]:
        """All transactions with trade_date <= target_date, in replay order."""
        query = select(Transaction).where(Transaction.trade_date <= target_date)
        if account_ids:
            query = query.where(Transaction.account_id.in_(account_ids))
        query = query.order_by(Transaction.trade_date, Transaction.id)
        return list(db.scalars(query).all())

    def transactions_for_pair(self, db: Session, symbol: str, account_id: int) -> list[Transaction]:
        """Every transaction of one (symbol, account) pair, in replay order."""
        query = (
            select(Transaction)
            .where(
                and_(
                    Transaction.symbol == symbol,
                    Transaction.account_id == account_id,
                )
            )
            .order_by(Transaction.trade_date, Transaction.id)
        )
        return list(db.scalars(query).all())

    def first_trade_date(self, db: Session, account_ids: list[int] | None = None) -> date | None:
        query = select(func.min(Transaction.trade_date))
        if account_ids:
            query = query.where(Transaction.account_id.in_(account_ids))
        return db.scalar(query)

    def trade_dates_between(self, db: Session, start_date: date, end_date: date) -> set[date]:
        """Distinct trade dates in [start_date, end_date]."""
        query = (
            select(Transaction.trade_date)
            .where(
                and_(
                    Transaction.trade_date >= start_date,
                    Transaction.trade_date <= end_date,
                )
            )
            .distinct()
        )
        return set(db.scalars(query).all())
