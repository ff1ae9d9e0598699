# backend/portfolio_tracker/services/valuation/types.py
"""
Data types for the valuation engine.

These dataclasses are returned by ValuationEngine. They are NOT Pydantic
schemas; those live in portfolio_tracker/schemas/ for API serialization.

Design Principles:
- Immutable value objects (frozen=True)
- Decimal for ALL financial values (never float)
- date (not datetime) for valuation dates
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal


class ValuationMode(str, enum.Enum):
    """LIVE values current holdings at last price; HISTORICAL reconstructs a past date."""
    LIVE = "LIVE"
    HISTORICAL = "HISTORICAL"


class PriceSource(str, enum.Enum):
    """Which step of the price chain produced a position's price."""
    LAST_PRICE = "LAST_PRICE"            # Live: holding.last_price (refreshed if possible)
    OPEN_CLOSE_MID = "OPEN_CLOSE_MID"    # Historical: (open + close) / 2 on the date
    PRIOR_CLOSE = "PRIOR_CLOSE"          # Historical: nearest earlier close within the window
    AVG_COST = "AVG_COST"                # Historical: nothing usable, cost basis per share


class CashPolicy(str, enum.Enum):
    """
    How cash is counted for a historical date.

    CURRENT_BALANCE_IF_OPEN: each cash account contributes its current
    amount on every date on or after its creation. Cash accounts keep no
    balance history, so this is an approximation.
    """
    CURRENT_BALANCE_IF_OPEN = "CURRENT_BALANCE_IF_OPEN"


# =============================================================================
# POSITIONS
# =============================================================================

@dataclass(frozen=True)
class Position:
    """
    Quantity and cost of one symbol, merged across the requested accounts.

    Attributes:
        symbol: Ticker
        quantity: Shares held
        avg_cost: Quantity-weighted average cost per share
        name: Display name, if known
        currency: Trading currency
    """

    symbol: str
    quantity: Decimal
    avg_cost: Decimal
    name: str | None = None
    currency: str = "USD"

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.avg_cost


@dataclass(frozen=True)
class PositionValue:
    """
    A priced position.

    Attributes:
        symbol: Ticker
        quantity: Shares held
        avg_cost: Average cost per share
        price: Price used for the valuation
        price_source: How ``price`` was obtained
        market_value: quantity * price
    """

    symbol: str
    quantity: Decimal
    avg_cost: Decimal
    price: Decimal
    price_source: PriceSource
    market_value: Decimal


# =============================================================================
# VALUATION RESULT
# =============================================================================

@dataclass(frozen=True)
class ValuationResult:
    """
    Portfolio value for one calendar date.

    Attributes:
        date: Trading-calendar date the valuation belongs to
        mode: LIVE or HISTORICAL
        total_market_value: Sum of position market values (stocks only)
        cash_balance: Cash counted for the date
        currency: Reporting currency
        positions: Per-symbol values
        fallback_symbols: Symbols priced from a prior close or average cost
    """

    date: date
    mode: ValuationMode
    total_market_value: Decimal
    cash_balance: Decimal
    currency: str
    positions: list[PositionValue] = field(default_factory=list)
    fallback_symbols: list[str] = field(default_factory=list)

    @property
    def total_value(self) -> Decimal:
        """Stocks plus cash."""
        return self.total_market_value + self.cash_balance

    @property
    def has_fallbacks(self) -> bool:
        return bool(self.fallback_symbols)
