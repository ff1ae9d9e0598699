# backend/portfolio_tracker/services/overview.py
"""
Portfolio overview: current holdings merged per symbol, totals,
today's profit and loss, and the holdings distribution.

Holdings in several accounts are merged into one row per symbol:
quantities are summed and the average cost is quantity-weighted.

Today's P&L is the current total (stocks + cash) minus a baseline:
    1. The previous trading day's DailySnapshot total
    2. Today's first raw snapshot (usually the market-open capture)
Without either, today's P&L is 0. Snapshots are portfolio-wide, so a
request for a subset of accounts reports no today's P&L.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from portfolio_tracker.models import RawSnapshot, SnapshotSource
from portfolio_tracker.services.constants import (
    DISPLAY_PERCENTAGE_PRECISION,
    SHARE_PRECISION,
    ZERO,
)
from portfolio_tracker.services.valuation.holdings import persisted_holdings
from portfolio_tracker.services.valuation.types import ValuationMode
from portfolio_tracker.utils.date_utils import previous_business_day

if TYPE_CHECKING:
    from portfolio_tracker.services.protocols import ValuationProvider
    from portfolio_tracker.services.snapshots.store import SnapshotStore

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class HoldingSummary:
    """One symbol across the requested accounts."""
    symbol: str
    name: str | None
    quantity: Decimal
    avg_cost: Decimal
    last_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    weight_pct: Decimal
    account_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class PortfolioOverview:
    """
    Current state of the portfolio.

    Attributes:
        date: Trading-calendar today
        currency: Reporting currency
        holdings: Merged holdings, largest market value first
        total_market_value: Stocks
        cash_balance: Cash
        total_assets: Stocks plus cash
        total_cost: Cost basis of open positions
        total_pnl: total_market_value - total_cost
        total_pnl_pct: total_pnl / total_cost * 100
        today_pnl: total_assets - baseline
        today_pnl_pct: today_pnl / baseline * 100
        today_baseline: Baseline used for today's P&L, if any
        today_baseline_source: "previous_close" or "market_open"
        market_open_snapshot: Today's market-open capture, if taken
        market_close_snapshot: Today's market-close capture, if taken
    """
    date: date
    currency: str
    holdings: list[HoldingSummary]
    total_market_value: Decimal
    cash_balance: Decimal
    total_assets: Decimal
    total_cost: Decimal
    total_pnl: Decimal
    total_pnl_pct: Decimal
    today_pnl: Decimal = ZERO
    today_pnl_pct: Decimal = ZERO
    today_baseline: Decimal | None = None
    today_baseline_source: str | None = None
    market_open_snapshot: RawSnapshot | None = None
    market_close_snapshot: RawSnapshot | None = None


@dataclass(frozen=True)
class HoldingWeight:
    """One slice of the holdings distribution."""
    symbol: str
    name: str
    value: Decimal
    weight_pct: Decimal


# =============================================================================
# SERVICE
# =============================================================================

class OverviewService:
    """
    Builds the portfolio overview from a live (non-persisted) valuation.

    Args:
        engine: Valuation provider; its live mode refreshes last prices
        store: Snapshot store for today's P&L baseline
    """

    def __init__(
            self,
            engine: ValuationProvider,
            store: SnapshotStore,
    ) -> None:
        self._engine = engine
        self._store = store

    def get_overview(self, db: Session, account_ids: list[int] | None = None) -> PortfolioOverview:
        valuation = self._engine.compute_valuation(
            db, None, ValuationMode.LIVE, account_ids=account_ids, persist=False,
        )
        today = valuation.date

        names: dict[str, str | None] = {}
        accounts: dict[str, set[int]] = defaultdict(set)
        for holding in persisted_holdings(db, account_ids):
            names[holding.symbol] = names.get(holding.symbol) or holding.name
            accounts[holding.symbol].add(holding.account_id)

        quantity: dict[str, Decimal] = defaultdict(lambda: ZERO)
        cost: dict[str, Decimal] = defaultdict(lambda: ZERO)
        value: dict[str, Decimal] = defaultdict(lambda: ZERO)
        price: dict[str, Decimal] = {}
        for position in valuation.positions:
            quantity[position.symbol] += position.quantity
            cost[position.symbol] += position.quantity * position.avg_cost
            value[position.symbol] += position.market_value
            price[position.symbol] = position.price

        total_market_value = valuation.total_market_value
        cash = valuation.cash_balance
        total_assets = total_market_value + cash
        total_cost = sum(cost.values(), ZERO)

        holdings = []
        for symbol, qty in quantity.items():
            if qty <= ZERO:
                continue
            pnl = value[symbol] - cost[symbol]
            holdings.append(HoldingSummary(
                symbol=symbol,
                name=names.get(symbol),
                quantity=qty,
                avg_cost=(cost[symbol] / qty).quantize(SHARE_PRECISION),
                last_price=price[symbol],
                market_value=value[symbol],
                cost_basis=cost[symbol],
                unrealized_pnl=pnl,
                unrealized_pnl_pct=_pct(pnl, cost[symbol]),
                weight_pct=_pct(value[symbol], total_assets),
                account_ids=sorted(accounts.get(symbol, ())),
            ))
        holdings.sort(key=lambda h: h.market_value, reverse=True)

        total_pnl = total_market_value - total_cost
        overview = PortfolioOverview(
            date=today,
            currency=valuation.currency,
            holdings=holdings,
            total_market_value=total_market_value,
            cash_balance=cash,
            total_assets=total_assets,
            total_cost=total_cost,
            total_pnl=total_pnl,
            total_pnl_pct=_pct(total_pnl, total_cost),
            market_open_snapshot=self._store.get_first_raw(db, today, SnapshotSource.OPEN),
            market_close_snapshot=self._store.get_last_raw(db, today, SnapshotSource.CLOSE),
        )

        if account_ids:
            return overview
        return self._with_today_pnl(db, overview)

    def get_distribution(self, db: Session, account_ids: list[int] | None = None) -> list[HoldingWeight]:
        """
        Market value per symbol and its share of the stock value, largest first.

        Cash is not a slice. A symbol without a name is labelled with its ticker.
        """
        holdings = self.get_overview(db, account_ids).holdings
        stock_value = sum((h.market_value for h in holdings), ZERO)
        return [
            HoldingWeight(
                symbol=h.symbol,
                name=h.name or h.symbol,
                value=h.market_value,
                weight_pct=_pct(h.market_value, stock_value),
            )
            for h in holdings
        ]

    def _with_today_pnl(self, db: Session, overview: PortfolioOverview) -> PortfolioOverview:
        baseline, source = self.today_baseline(db, overview.date)
        if baseline is None:
            logger.debug(f"No baseline for today's P&L on {overview.date}")
            return overview

        change = overview.total_assets - baseline
        return replace(
            overview,
            today_pnl=change,
            today_pnl_pct=_pct(change, baseline),
            today_baseline=baseline,
            today_baseline_source=source,
        )

    def today_baseline(self, db: Session, today: date) -> tuple[Decimal | None, str | None]:
        """Previous trading day's daily total, else today's first raw capture."""
        previous = self._store.get_daily(db, previous_business_day(today))
        if previous is not None:
            return previous.total_market_value + previous.cash_balance, "previous_close"

        first_raw = self._store.get_first_raw(db, today)
        if first_raw is not None:
            return first_raw.total_market_value + first_raw.cash_balance, "market_open"

        return None, None


def _pct(amount: Decimal, base: Decimal) -> Decimal:
    if base <= ZERO:
        return ZERO
    return (amount / base * 100).quantize(DISPLAY_PERCENTAGE_PRECISION)
