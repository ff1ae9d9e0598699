# backend/portfolio_tracker/services/valuation/__init__.py
"""
Valuation package.

Usage:
    from portfolio_tracker.services.valuation import ValuationEngine, ValuationMode

    engine = ValuationEngine(gateway=gateway, snapshot_writer=SnapshotStore())
    result = engine.compute_valuation(db, date(2024, 3, 1), ValuationMode.HISTORICAL)

Architecture:
    valuation/
    ├── engine.py     # ValuationEngine: live and historical valuation
    ├── holdings.py   # Point-in-time positions and cash
    └── types.py      # Result dataclasses and enums
"""

from portfolio_tracker.services.valuation.engine import ValuationEngine, is_plausible_price
from portfolio_tracker.services.valuation.holdings import (
    HoldingsReconstructor,
    cash_as_of,
    first_cash_date,
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

__all__ = [
    "ValuationEngine",
    "is_plausible_price",
    "HoldingsReconstructor",
    "cash_as_of",
    "first_cash_date",
    "load_cash_accounts",
    "persisted_holdings",
    "CashPolicy",
    "Position",
    "PositionValue",
    "PriceSource",
    "ValuationMode",
    "ValuationResult",
]
