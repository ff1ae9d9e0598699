# backend/portfolio_tracker/services/analytics/service.py
"""
Analytics Service: net value curve, summary statistics, daily P&L,
benchmark comparison.

Architecture:
    AnalyticsService
        ├── reads  → SnapshotStore (DailySnapshot range)
        ├── uses   → ValuationProvider (today's live point)
        ├── uses   → PriceGateway (close series for account subsets and indexes)
        ├── uses   → TransactionSource + HoldingAggregator (cost per point)
        ├── uses   → risk.py (returns, volatility, Sharpe, drawdown)
        └── uses   → benchmark.py (index series, beta, tracking error)

The curve is built from persisted daily snapshots when the whole
portfolio is requested. Daily snapshots are portfolio-wide, so a request
for a subset of accounts replays those accounts' trades and prices each
day from one close series per symbol (fetched once for the whole range),
carrying the last close forward. The request therefore costs one gateway
call per symbol, not one per symbol per day.

Today's point always comes from a fresh live valuation, never from the
(possibly stale) persisted snapshot.

Usage:
    service = AnalyticsService(engine, store, gateway)
    points = service.get_net_value_curve(db, date(2024, 1, 1), date(2024, 6, 30))
    stats = service.calculate_stats(points)
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from portfolio_tracker.config import settings
from portfolio_tracker.services.analytics.benchmark import BenchmarkCalculator, build_index_points
from portfolio_tracker.services.analytics.risk import (
    calculate_daily_returns,
    calculate_max_drawdown,
    calculate_sharpe_ratio,
    calculate_volatility,
)
from portfolio_tracker.services.analytics.types import (
    ComparisonResult,
    DailyPnL,
    NetValuePoint,
    PortfolioStats,
)
from portfolio_tracker.services.constants import (
    CURRENCY_PRECISION,
    DISPLAY_PERCENTAGE_PRECISION,
    MAX_PLAUSIBLE_VALUE,
    PERCENTAGE_PRECISION,
    PRICE_FALLBACK_DAYS,
    ZERO,
)
from portfolio_tracker.services.exceptions import MarketDataError
from portfolio_tracker.services.ledger.aggregator import (
    HoldingAggregator,
    HoldingState,
    net_invested,
    sort_trades,
)
from portfolio_tracker.services.ledger.queries import TransactionLog
from portfolio_tracker.services.valuation.holdings import cash_as_of, first_cash_date, load_cash_accounts
from portfolio_tracker.services.valuation.types import CashPolicy, ValuationMode
from portfolio_tracker.utils.date_utils import get_business_days, is_business_day, today_in_market

if TYPE_CHECKING:
    from collections.abc import Callable
    from portfolio_tracker.services.protocols import PriceGateway, TransactionSource, ValuationProvider
    from portfolio_tracker.services.snapshots.store import SnapshotStore

logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Read-side analytics over snapshots and the trade log.

    Args:
        engine: Valuation provider for the live point
        store: Snapshot store (daily snapshot reads)
        gateway: Market data access for account-subset curves and benchmarks
        transaction_source: Trade log reader
        aggregator: Weighted-average-cost replay
        risk_free_rate: Annual rate for the Sharpe ratio
        cash_policy: How cash is counted on past dates
        today: Returns the trading-calendar "today" (injectable for tests)
    """

    def __init__(
            self,
            engine: ValuationProvider,
            store: SnapshotStore,
            gateway: PriceGateway,
            transaction_source: TransactionSource | None = None,
            aggregator: HoldingAggregator | None = None,
            risk_free_rate: Decimal | None = None,
            cash_policy: CashPolicy = CashPolicy.CURRENT_BALANCE_IF_OPEN,
            today: Callable[[], date] = today_in_market,
    ) -> None:
        self._engine = engine
        self._store = store
        self._gateway = gateway
        self._source = transaction_source or TransactionLog()
        self._aggregator = aggregator or HoldingAggregator()
        self._risk_free_rate = risk_free_rate if risk_free_rate is not None else settings.risk_free_rate
        self._cash_policy = cash_policy
        self._today = today

    # =========================================================================
    # NET VALUE CURVE
    # =========================================================================

    def first_record_date(self, db: Session, account_ids: list[int] | None = None) -> date | None:
        """Earlier of the first trade date and the first cash-account creation date."""
        candidates = [
            self._source.first_trade_date(db, account_ids),
            first_cash_date(load_cash_accounts(db, account_ids)),
        ]
        candidates = [d for d in candidates if d is not None]
        return min(candidates) if candidates else None

    def get_net_value_curve(
            self,
            db: Session,
            start_date: date,
            end_date: date,
            account_ids: list[int] | None = None,
    ) -> list[NetValuePoint]:
        """
        Net value series for ``[start_date, end_date]``.

        Weekdays before the first record date are zero-valued points.
        Snapshots that are not trading days, or whose values are not
        plausible, are dropped.

        Returns:
            Points ordered by date
        """
        if start_date > end_date:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")

        first = self.first_record_date(db, account_ids)
        if first is None:
            logger.info("No transactions or cash accounts; net value curve is empty")
            return []

        today = self._today()
        lower = max(start_date, first)
        upper = min(end_date, today)

        # (date, stock_value, cash_value, is_live)
        rows: list[tuple[date, Decimal, Decimal, bool]] = []
        if lower <= upper:
            if account_ids:
                rows = self._rows_from_closes(db, lower, upper, today, account_ids)
            else:
                rows = self._rows_from_snapshots(db, lower, upper, today)

        if lower <= today <= upper and is_business_day(today):
            live = self._engine.compute_valuation(
                db, today, ValuationMode.LIVE, account_ids=account_ids, persist=False,
            )
            rows.append((today, live.total_market_value, live.cash_balance, True))

        points = self._with_costs(db, rows, account_ids)

        if start_date < first:
            padding_end = min(first - timedelta(days=1), end_date)
            padding = [_zero_point(d) for d in get_business_days(start_date, padding_end)]
            points = padding + points

        logger.debug(
            f"Net value curve {start_date}..{end_date} "
            f"(accounts={account_ids or 'all'}): {len(points)} points"
        )
        return points

    def _rows_from_snapshots(
            self,
            db: Session,
            lower: date,
            upper: date,
            today: date,
    ) -> list[tuple[date, Decimal, Decimal, bool]]:
        rows = []
        for snapshot in self._store.get_daily_range(db, lower, upper):
            if snapshot.date == today or not is_business_day(snapshot.date):
                continue
            if not is_plausible_snapshot(snapshot.total_market_value, snapshot.cash_balance):
                logger.warning(
                    f"Skipping implausible snapshot {snapshot.date}: "
                    f"market={snapshot.total_market_value}, cash={snapshot.cash_balance}"
                )
                continue
            rows.append((snapshot.date, snapshot.total_market_value, snapshot.cash_balance, False))
        return rows

    def _rows_from_closes(
            self,
            db: Session,
            lower: date,
            upper: date,
            today: date,
            account_ids: list[int],
    ) -> list[tuple[date, Decimal, Decimal, bool]]:
        """
        Value each weekday of an account subset from per-symbol close series.

        A position with no close on or before the day (within the range
        fetched) is valued at its average cost.
        """
        days = [d for d in get_business_days(lower, upper) if d != today]
        if not days:
            return []

        transactions = sort_trades(self._source.transactions_up_to(db, days[-1], account_ids))
        series_start = lower - timedelta(days=PRICE_FALLBACK_DAYS)
        closes = {
            symbol: self._close_series(symbol, series_start, days[-1])
            for symbol in sorted({t.symbol for t in transactions})
        }
        cash_accounts = load_cash_accounts(db, account_ids)

        states: dict[tuple[str, int], HoldingState] = {}
        cursor = 0
        rows = []
        for day in days:
            while cursor < len(transactions) and transactions[cursor].trade_date <= day:
                txn = transactions[cursor]
                key = (txn.symbol, txn.account_id)
                states[key] = self._aggregator.apply(
                    states.get(key, HoldingState()),
                    txn.transaction_type,
                    txn.price,
                    txn.quantity,
                    txn.fee,
                )
                cursor += 1

            stock_value = sum(
                (
                    state.quantity * _close_on(closes[symbol], day, state.avg_cost)
                    for (symbol, _), state in states.items()
                    if state.has_position
                ),
                ZERO,
            )
            cash_value = cash_as_of(cash_accounts, day, self._cash_policy)
            if not is_plausible_snapshot(stock_value, cash_value):
                continue
            rows.append((day, stock_value, cash_value, False))
        return rows

    def _close_series(self, symbol: str, start: date, end: date) -> tuple[list[date], list[Decimal]]:
        try:
            closes = self._gateway.get_historical_price_range(symbol, start, end)
        except MarketDataError as e:
            logger.warning(f"{symbol}: close series {start}..{end} unavailable, using avg cost: {e}")
            closes = []
        ordered = sorted(closes, key=lambda c: c.date)
        return [c.date for c in ordered], [c.close for c in ordered]

    def _with_costs(
            self,
            db: Session,
            rows: list[tuple[date, Decimal, Decimal, bool]],
            account_ids: list[int] | None,
    ) -> list[NetValuePoint]:
        """Attach cost basis, stock cost and P&L % by walking the trade log once."""
        if not rows:
            return []

        rows = sorted(rows, key=lambda r: r[0])
        transactions = sort_trades(self._source.transactions_up_to(db, rows[-1][0], account_ids))
        cash_accounts = load_cash_accounts(db, account_ids)

        states: dict[tuple[str, int], HoldingState] = {}
        invested = ZERO
        cursor = 0

        costed: list[tuple[date, Decimal, Decimal, bool, Decimal, Decimal]] = []
        for day, stock_value, cash_value, is_live in rows:
            batch = []
            while cursor < len(transactions) and transactions[cursor].trade_date <= day:
                batch.append(transactions[cursor])
                cursor += 1
            for txn in batch:
                key = (txn.symbol, txn.account_id)
                states[key] = self._aggregator.apply(
                    states.get(key, HoldingState()),
                    txn.transaction_type,
                    txn.price,
                    txn.quantity,
                    txn.fee,
                )
            invested += net_invested(batch)

            stock_cost = sum((s.cost_basis for s in states.values() if s.has_position), ZERO)
            cost_basis = invested + cash_as_of(cash_accounts, day, self._cash_policy)
            costed.append((day, stock_value, cash_value, is_live, stock_cost, cost_basis))

        base_cost = next((c[4] for c in costed if c[4] > ZERO), ZERO)

        return [
            NetValuePoint(
                date=day,
                total_value=stock_value + cash_value,
                cost_basis=cost_basis,
                stock_value=stock_value,
                cash_value=cash_value,
                stock_cost=stock_cost,
                pnl_pct=_percent_of(stock_value - stock_cost, base_cost, PERCENTAGE_PRECISION),
                is_live=is_live,
            )
            for day, stock_value, cash_value, is_live, stock_cost, cost_basis in costed
        ]

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def get_stats(
            self,
            db: Session,
            start_date: date,
            end_date: date,
            account_ids: list[int] | None = None,
    ) -> PortfolioStats:
        return self.calculate_stats(self.get_net_value_curve(db, start_date, end_date, account_ids))

    def calculate_stats(self, points: list[NetValuePoint]) -> PortfolioStats:
        """
        Summary statistics over a net value curve.

        Drawdown and returns use the stock-value series only, so cash
        deposits and withdrawals do not move them.
        """
        stats = PortfolioStats(data_points=len(points))
        if not points:
            stats.warnings.append("No data in range")
            return stats

        stats.start_date = points[0].date
        stats.end_date = points[-1].date

        last = points[-1]
        base_cost = next((p.stock_cost for p in points if p.stock_cost > ZERO), ZERO)
        stats.total_return = (last.stock_value - last.stock_cost).quantize(CURRENCY_PRECISION)
        stats.total_return_pct = _percent_of(last.stock_value - last.stock_cost, base_cost, DISPLAY_PERCENTAGE_PRECISION)

        stock_values = [p.stock_value for p in points]
        drawdown = calculate_max_drawdown(stock_values, [p.date for p in points])
        stats.max_drawdown = drawdown.max_drawdown.quantize(PERCENTAGE_PRECISION)
        stats.max_drawdown_pct = drawdown.max_drawdown_pct.quantize(DISPLAY_PERCENTAGE_PRECISION)
        stats.peak_date = drawdown.peak_date
        stats.trough_date = drawdown.trough_date

        returns = calculate_daily_returns(stock_values)
        volatility = calculate_volatility(returns)
        sharpe = calculate_sharpe_ratio(returns, self._risk_free_rate)
        stats.volatility = volatility.quantize(PERCENTAGE_PRECISION) if volatility is not None else None
        stats.sharpe_ratio = sharpe.quantize(PERCENTAGE_PRECISION) if sharpe is not None else None

        if len(returns) < 2:
            stats.warnings.append("Insufficient data: need at least 2 daily returns for volatility")
        if base_cost == ZERO:
            stats.warnings.append("No stock cost in range; return percentage is 0")

        return stats

    # =========================================================================
    # BENCHMARK COMPARISON
    # =========================================================================

    def get_comparison(
            self,
            db: Session,
            start_date: date,
            end_date: date,
            index_symbol: str,
            account_ids: list[int] | None = None,
    ) -> ComparisonResult:
        """
        Net value curve next to an index's closes over the same range.

        Index closes come from the market data gateway. When no provider
        has them the index series is empty and the metrics carry a warning;
        the portfolio curve is still returned.
        """
        portfolio = self.get_net_value_curve(db, start_date, end_date, account_ids)

        try:
            closes = self._gateway.get_historical_price_range(index_symbol, start_date, end_date)
        except MarketDataError as e:
            logger.warning(f"Index {index_symbol} closes {start_date}..{end_date} unavailable: {e}")
            closes = []
        index = build_index_points(closes)

        metrics = BenchmarkCalculator.calculate_all(portfolio, index, index_symbol)
        logger.debug(
            f"Comparison vs {index_symbol} {start_date}..{end_date}: "
            f"{len(portfolio)} portfolio points, {len(index)} index points, "
            f"{metrics.data_points} aligned returns"
        )
        return ComparisonResult(
            start_date=start_date,
            end_date=end_date,
            index_symbol=index_symbol,
            portfolio=portfolio,
            index=index,
            metrics=metrics,
        )

    # =========================================================================
    # DAILY P&L
    # =========================================================================

    def get_daily_pnl(self, db: Session, start_date: date, end_date: date) -> list[DailyPnL]:
        """
        Each daily snapshot in range with its change against the previous
        daily snapshot (which may fall before ``start_date``).
        """
        snapshots = self._store.get_daily_range(db, start_date, end_date)
        if not snapshots:
            return []

        previous = self._store.latest_daily_before(db, snapshots[0].date)
        previous_total = _total(previous) if previous is not None else None

        rows: list[DailyPnL] = []
        for snapshot in snapshots:
            total = _total(snapshot)
            change = change_pct = None
            if previous_total is not None:
                change = total - previous_total
                if previous_total > ZERO:
                    change_pct = _percent_of(change, previous_total, DISPLAY_PERCENTAGE_PRECISION)
            rows.append(DailyPnL(
                date=snapshot.date,
                total_value=total,
                market_value=snapshot.total_market_value,
                cash_balance=snapshot.cash_balance,
                change=change,
                change_pct=change_pct,
            ))
            previous_total = total
        return rows


# =============================================================================
# HELPERS
# =============================================================================

def is_plausible_snapshot(market_value: Decimal, cash_balance: Decimal) -> bool:
    """Reject non-positive totals, negative parts, and values above MAX_PLAUSIBLE_VALUE."""
    if market_value < ZERO or cash_balance < ZERO:
        return False
    if market_value > MAX_PLAUSIBLE_VALUE or cash_balance > MAX_PLAUSIBLE_VALUE:
        return False
    return market_value + cash_balance > ZERO


def _zero_point(day: date) -> NetValuePoint:
    return NetValuePoint(
        date=day,
        total_value=ZERO,
        cost_basis=ZERO,
        stock_value=ZERO,
        cash_value=ZERO,
        stock_cost=ZERO,
    )


def _close_on(series: tuple[list[date], list[Decimal]], day: date, fallback: Decimal) -> Decimal:
    """Latest close on or before ``day``, else ``fallback``."""
    dates, closes = series
    index = bisect_right(dates, day)
    return closes[index - 1] if index else fallback


def _percent_of(amount: Decimal, base: Decimal, precision: Decimal) -> Decimal:
    if base <= ZERO:
        return ZERO
    return (amount / base * 100).quantize(precision)


def _total(snapshot) -> Decimal:
    return snapshot.total_market_value + (snapshot.cash_balance or ZERO)
