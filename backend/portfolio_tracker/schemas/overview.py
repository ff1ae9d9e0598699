# backend/portfolio_tracker/schemas/overview.py
"""
Pydantic schemas for the portfolio overview.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from portfolio_tracker.schemas.snapshots import RawSnapshotResponse


class HoldingSummaryResponse(BaseModel):
    symbol: str
    name: str | None
    quantity: Decimal
    avg_cost: Decimal = Field(..., description="Quantity-weighted across accounts")
    last_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    weight_pct: Decimal = Field(..., description="Share of total assets, in percent")
    account_ids: list[int]

    model_config = ConfigDict(from_attributes=True)


class OverviewResponse(BaseModel):
    date: date
    currency: str
    holdings: list[HoldingSummaryResponse]
    total_market_value: Decimal
    cash_balance: Decimal
    total_assets: Decimal
    total_cost: Decimal
    total_pnl: Decimal
    total_pnl_pct: Decimal
    today_pnl: Decimal
    today_pnl_pct: Decimal
    today_baseline: Decimal | None
    today_baseline_source: str | None
    market_open_snapshot: RawSnapshotResponse | None
    market_close_snapshot: RawSnapshotResponse | None

    model_config = ConfigDict(from_attributes=True)


class HoldingWeightResponse(BaseModel):
    symbol: str
    name: str = Field(..., description="Display name, or the symbol when none is known")
    value: Decimal = Field(..., description="Market value")
    weight_pct: Decimal = Field(..., description="Share of the stock value, in percent")

    model_config = ConfigDict(from_attributes=True)
