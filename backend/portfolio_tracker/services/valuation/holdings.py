# backend/portfolio_tracker/services/valuation/holdings.py
"""
Holdings and cash as of a date.

- HoldingsReconstructor: point-in-time positions by replaying the trade
  log up to a date, merged per symbol across accounts
- persisted_holdings(): the current Holding rows (live valuation)
- cash_as_of(): cash counted for a date under a CashPolicy
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_tracker.models import CashAccount, Holding
from portfolio_tracker.services.constants import SHARE_PRECISION, ZERO
from portfolio_tracker.services.ledger.aggregator import HoldingAggregator
from portfolio_tracker.services.valuation.types import CashPolicy, Position
from portfolio_tracker.utils.date_utils import market_date_of

if TYPE_CHECKING:
    from portfolio_tracker.services.protocols import TransactionSource

logger = logging.getLogger(__name__)


class HoldingsReconstructor:
    """
    Rebuilds positions for a past date from the trade log.

    Example:
        positions = HoldingsReconstructor(TransactionLog()).positions_as_of(db, date(2024, 3, 1))
    """

    def __init__(
            self,
            transaction_source: TransactionSource,
            aggregator: HoldingAggregator | None = None,
    ) -> None:
        self._source = transaction_source
        self._aggregator = aggregator or HoldingAggregator()

    def positions_as_of(
            self,
            db: Session,
            target_date: date,
            account_ids: list[int] | None = None,
    ) -> list[Position]:
        """Open positions after every trade dated on or before ``target_date``."""
        transactions = self._source.transactions_up_to(db, target_date, account_ids)
        if not transactions:
            return []

        states = self._aggregator.replay_grouped(transactions)

        names: dict[str, str] = {}
        currencies: dict[str, str] = {}
        for txn in transactions:
            if txn.name:
                names[txn.symbol] = txn.name
            currencies[txn.symbol] = txn.currency

        quantity: dict[str, Decimal] = defaultdict(lambda: ZERO)
        cost: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for (symbol, _account_id), state in states.items():
            if state.has_position:
                quantity[symbol] += state.quantity
                cost[symbol] += state.cost_basis

        return [
            Position(
                symbol=symbol,
                quantity=qty,
                avg_cost=(cost[symbol] / qty).quantize(SHARE_PRECISION),
                name=names.get(symbol),
                currency=currencies.get(symbol, "USD"),
            )
            for symbol, qty in sorted(quantity.items())
        ]


def persisted_holdings(db: Session, account_ids: list[int] | None = None) -> list[Holding]:
    """Current Holding rows with a positive quantity."""
    query = select(Holding).where(Holding.quantity > 0)
    if account_ids:
        query = query.where(Holding.account_id.in_(account_ids))
    return list(db.scalars(query.order_by(Holding.symbol, Holding.account_id)).all())


def load_cash_accounts(db: Session, account_ids: list[int] | None = None) -> list[CashAccount]:
    query = select(CashAccount)
    if account_ids:
        query = query.where(CashAccount.account_id.in_(account_ids))
    return list(db.scalars(query).all())


def cash_as_of(
        cash_accounts: Iterable[CashAccount],
        target_date: date,
        policy: CashPolicy = CashPolicy.CURRENT_BALANCE_IF_OPEN,
) -> Decimal:
    """Cash counted for ``target_date``."""
    if policy is not CashPolicy.CURRENT_BALANCE_IF_OPEN:
        raise ValueError(f"Unsupported cash policy: {policy}")

    total = ZERO
    for cash in cash_accounts:
        if cash.created_at is None or market_date_of(cash.created_at) <= target_date:
            total += cash.amount
    return total


def first_cash_date(cash_accounts: Iterable[CashAccount]) -> date | None:
    """Trading-calendar date of the earliest cash account creation."""
    dates = [market_date_of(c.created_at) for c in cash_accounts if c.created_at is not None]
    return min(dates) if dates else None
