# backend/portfolio_tracker/services/valuation/engine.py
"""
Valuation engine: total market value plus cash for one calendar date.

Two modes:

LIVE
    Current Holding rows at ``last_price``. Prices are refreshed from the
    gateway first; a symbol without a fresh quote keeps its stored price.
    Cash is the sum of current cash-account balances.

HISTORICAL
    Positions rebuilt by replaying trades dated on or before the target
    date. Each symbol is priced through a fallback chain:

        1. (open + close) / 2 on the date, rejected when outside
           [0.1 x avg_cost, 10 x avg_cost]
        2. Most recent close in the PRICE_FALLBACK_DAYS before the date
        3. avg_cost (logged as a data shortfall)

    Cash follows CashPolicy.CURRENT_BALANCE_IF_OPEN.

Market data problems never fail a valuation. Every gateway error is
logged and the symbol moves down the chain.

With ``persist=True`` the result is written through the snapshot writer
(one raw snapshot plus the daily mean, in one commit).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from portfolio_tracker.config import settings
from portfolio_tracker.models import SnapshotSource
from portfolio_tracker.services.constants import (
    PRICE_FALLBACK_DAYS,
    PRICE_SANITY_HIGH_MULTIPLIER,
    PRICE_SANITY_LOW_MULTIPLIER,
    ZERO,
)
from portfolio_tracker.services.exceptions import DataUnavailableError, MarketDataError
from portfolio_tracker.services.ledger.aggregator import HoldingAggregator
from portfolio_tracker.services.ledger.queries import TransactionLog
from portfolio_tracker.services.valuation.holdings import (
    HoldingsReconstructor,
    cash_as_of,
    load_cash_accounts,
    persisted_holdings,
)
from portfolio_tracker.services.valuation.types import (
    CashPolicy,
    Position,
    PositionValue,
    PriceSource,
    ValuationMode,
    ValuationResult,
)
from portfolio_tracker.utils.date_utils import today_in_market

if TYPE_CHECKING:
    from collections.abc import Callable
    from portfolio_tracker.services.protocols import PriceGateway, SnapshotWriter, TransactionSource

logger = logging.getLogger(__name__)


class ValuationEngine:
    """
    Computes and optionally persists a portfolio valuation.

    Args:
        gateway: Market data access (cache, throttle and fallback live there)
        snapshot_writer: Where persisted valuations go
        transaction_source: Trade log reader for historical reconstruction
        aggregator: Weighted-average-cost replay
        currency: Reporting currency for snapshots
        cash_policy: How historical cash is counted
        today: Returns the trading-calendar "today" (injectable for tests)
    """

    def __init__(
            self,
            gateway: PriceGateway,
            snapshot_writer: SnapshotWriter,
            transaction_source: TransactionSource | None = None,
            aggregator: HoldingAggregator | None = None,
            currency: str | None = None,
            cash_policy: CashPolicy = CashPolicy.CURRENT_BALANCE_IF_OPEN,
            today: Callable[[], date] = today_in_market,
    ) -> None:
        self._gateway = gateway
        self._writer = snapshot_writer
        self._reconstructor = HoldingsReconstructor(
            transaction_source or TransactionLog(),
            aggregator or HoldingAggregator(),
        )
        self._currency = currency or settings.base_currency
        self._cash_policy = cash_policy
        self._today = today

    def compute_valuation(
            self,
            db: Session,
            target_date: date | None,
            mode: ValuationMode,
            account_ids: list[int] | None = None,
            persist: bool = True,
            source: SnapshotSource | None = None,
    ) -> ValuationResult:
        """
        Value the portfolio for one date.

        Args:
            db: Database session
            target_date: Date to value; ignored in LIVE mode, which always
                values the trading-calendar today
            mode: LIVE or HISTORICAL
            account_ids: Restrict to these accounts (None = all)
            persist: Write a raw snapshot and refresh the daily mean
            source: Snapshot source tag (default LIVE or BACKFILL by mode)

        Returns:
            ValuationResult
        """
        if mode == ValuationMode.LIVE:
            result = self._live(db, account_ids)
        else:
            if target_date is None:
                raise ValueError("HISTORICAL valuation needs a target_date")
            result = self._historical(db, target_date, account_ids)

        logger.info(
            f"Valued {result.date} ({mode.value}): stocks={result.total_market_value}, "
            f"cash={result.cash_balance}, positions={len(result.positions)}, "
            f"fallbacks={result.fallback_symbols or 'none'}"
        )

        if persist:
            tag = source or (SnapshotSource.LIVE if mode == ValuationMode.LIVE else SnapshotSource.BACKFILL)
            self._writer.record(
                db,
                snapshot_date=result.date,
                total_market_value=result.total_market_value,
                cash_balance=result.cash_balance,
                currency=result.currency,
                source=tag,
            )

        return result

    # =========================================================================
    # LIVE
    # =========================================================================

    def _live(self, db: Session, account_ids: list[int] | None) -> ValuationResult:
        holdings = persisted_holdings(db, account_ids)
        self._refresh_last_prices(db, holdings)

        positions: list[PositionValue] = []
        total = ZERO
        for holding in holdings:
            value = holding.quantity * holding.last_price
            total += value
            positions.append(PositionValue(
                symbol=holding.symbol,
                quantity=holding.quantity,
                avg_cost=holding.avg_cost,
                price=holding.last_price,
                price_source=PriceSource.LAST_PRICE,
                market_value=value,
            ))

        cash = sum((c.amount for c in load_cash_accounts(db, account_ids)), ZERO)

        return ValuationResult(
            date=self._today(),
            mode=ValuationMode.LIVE,
            total_market_value=total,
            cash_balance=cash,
            currency=self._currency,
            positions=positions,
        )

    def _refresh_last_prices(self, db: Session, holdings: list) -> None:
        symbols = sorted({h.symbol for h in holdings})
        if not symbols:
            return

        try:
            quotes = self._gateway.get_quotes(symbols)
        except MarketDataError as e:
            logger.warning(f"Live quote refresh failed, using stored prices: {e}")
            return

        refreshed = 0
        for holding in holdings:
            quote = quotes.get(holding.symbol)
            if quote is None:
                continue
            if holding.last_price != quote.price:
                holding.last_price = quote.price
                refreshed += 1

        missing = [s for s in symbols if s not in quotes]
        if missing:
            logger.warning(f"No live quote for {missing}; keeping stored last_price")

        if refreshed:
            db.commit()
            logger.debug(f"Refreshed last_price for {refreshed} holdings")

    # =========================================================================
    # HISTORICAL
    # =========================================================================

    def _historical(self, db: Session, target_date: date, account_ids: list[int] | None) -> ValuationResult:
        positions = self._reconstructor.positions_as_of(db, target_date, account_ids)

        values: list[PositionValue] = []
        fallbacks: list[str] = []
        total = ZERO

        for position in positions:
            price, price_source = self.resolve_historical_price(position, target_date)
            value = position.quantity * price
            total += value
            if price_source != PriceSource.OPEN_CLOSE_MID:
                fallbacks.append(position.symbol)
            values.append(PositionValue(
                symbol=position.symbol,
                quantity=position.quantity,
                avg_cost=position.avg_cost,
                price=price,
                price_source=price_source,
                market_value=value,
            ))

        cash = cash_as_of(load_cash_accounts(db, account_ids), target_date, self._cash_policy)

        return ValuationResult(
            date=target_date,
            mode=ValuationMode.HISTORICAL,
            total_market_value=total,
            cash_balance=cash,
            currency=self._currency,
            positions=values,
            fallback_symbols=fallbacks,
        )

    def resolve_historical_price(self, position: Position, target_date: date) -> tuple[Decimal, PriceSource]:
        """Walk the price chain for one position on one date."""
        symbol = position.symbol

        try:
            bar = self._gateway.get_historical_open_close(symbol, target_date)
        except MarketDataError as e:
            logger.warning(f"{symbol} {target_date}: open/close lookup failed: {e}")
            bar = None

        if bar is not None:
            mid = bar.mid
            if is_plausible_price(mid, position.avg_cost):
                return mid, PriceSource.OPEN_CLOSE_MID
            logger.warning(
                f"{symbol} {target_date}: mid price {mid} implausible against "
                f"avg cost {position.avg_cost}; trying prior close"
            )

        prior = self._prior_close(symbol, target_date)
        if prior is not None:
            return prior, PriceSource.PRIOR_CLOSE

        logger.warning(
            f"{DataUnavailableError(symbol, target_date)}; "
            f"valuing at avg cost {position.avg_cost}"
        )
        return position.avg_cost, PriceSource.AVG_COST

    def _prior_close(self, symbol: str, target_date: date) -> Decimal | None:
        start = target_date - timedelta(days=PRICE_FALLBACK_DAYS)
        end = target_date - timedelta(days=1)
        try:
            closes = self._gateway.get_historical_price_range(symbol, start, end)
        except MarketDataError as e:
            logger.warning(f"{symbol} {target_date}: prior close lookup failed: {e}")
            return None

        earlier = [c for c in closes if c.date < target_date]
        if not earlier:
            return None
        latest = max(earlier, key=lambda c: c.date)
        logger.info(f"{symbol} {target_date}: using close of {latest.date} ({latest.close})")
        return latest.close


def is_plausible_price(price: Decimal, avg_cost: Decimal) -> bool:
    """A price is implausible outside [0.1x, 10x] of a positive average cost."""
    if avg_cost <= ZERO:
        return True
    return avg_cost * PRICE_SANITY_LOW_MULTIPLIER <= price <= avg_cost * PRICE_SANITY_HIGH_MULTIPLIER
