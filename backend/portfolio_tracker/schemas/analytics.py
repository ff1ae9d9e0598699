# backend/portfolio_tracker/schemas/analytics.py
"""
Pydantic schemas for analytics endpoints.

Response models are built from the analytics dataclasses with
``model_validate(..., from_attributes=True)``.

Percentages:
    - pnl_pct, total_return_pct, max_drawdown_pct, change_pct: already x100
    - max_drawdown, volatility: fractions (0.15 = 15%)
    - index change_pct: already x100; benchmark returns: fractions
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class NetValuePointResponse(BaseModel):
    date: date
    total_value: Decimal = Field(..., description="Stocks plus cash")
    cost_basis: Decimal = Field(..., description="Net invested in stocks plus cash counted on the date")
    stock_value: Decimal
    cash_value: Decimal
    stock_cost: Decimal = Field(..., description="Cost of open positions")
    pnl_pct: Decimal = Field(..., description="Stock P&L against the first point's stock cost, in percent")
    is_live: bool = Field(default=False, description="Built from a live valuation (today)")

    model_config = ConfigDict(from_attributes=True)


class NetValueCurveResponse(BaseModel):
    start_date: date
    end_date: date
    account_ids: list[int] | None = None
    points: list[NetValuePointResponse]


class PortfolioStatsResponse(BaseModel):
    """Summary statistics over the net value curve."""

    start_date: date | None
    end_date: date | None
    total_return: Decimal
    total_return_pct: Decimal
    max_drawdown: Decimal = Field(..., description="Positive fraction on the stock-value series")
    max_drawdown_pct: Decimal
    peak_date: date | None
    trough_date: date | None
    volatility: Decimal | None = Field(None, description="Annualized, fraction")
    sharpe_ratio: Decimal | None = None
    data_points: int
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class DailyPnLResponse(BaseModel):
    date: date
    total_value: Decimal
    market_value: Decimal
    cash_balance: Decimal
    change: Decimal | None
    change_pct: Decimal | None

    model_config = ConfigDict(from_attributes=True)


class DailyPnLListResponse(BaseModel):
    start_date: date
    end_date: date
    items: list[DailyPnLResponse]


class IndexPointResponse(BaseModel):
    date: date
    value: Decimal = Field(..., description="Index close")
    change_pct: Decimal = Field(..., description="Change against the first close in range, in percent")

    model_config = ConfigDict(from_attributes=True)


class BenchmarkMetricsResponse(BaseModel):
    """Portfolio vs index over the dates both series share. Returns are fractions."""

    benchmark_symbol: str
    portfolio_return: Decimal | None
    benchmark_return: Decimal | None
    excess_return: Decimal | None
    beta: Decimal | None
    correlation: Decimal | None
    r_squared: Decimal | None
    tracking_error: Decimal | None = Field(None, description="Annualized, fraction")
    information_ratio: Decimal | None
    up_capture: Decimal | None
    down_capture: Decimal | None
    data_points: int
    has_sufficient_data: bool
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class ComparisonResponse(BaseModel):
    start_date: date
    end_date: date
    index_symbol: str
    account_ids: list[int] | None = None
    portfolio: list[NetValuePointResponse]
    index: list[IndexPointResponse]
    metrics: BenchmarkMetricsResponse
