# backend/portfolio_tracker/schemas/snapshots.py
"""
Pydantic schemas for snapshot capture, rebuild and recompute status.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from portfolio_tracker.models import SnapshotSource
from portfolio_tracker.services.snapshots.orchestrator import JobState
from portfolio_tracker.services.valuation.types import PriceSource, ValuationMode


class RawSnapshotResponse(BaseModel):
    id: int
    date: date
    timestamp: datetime
    total_market_value: Decimal
    cash_balance: Decimal
    currency: str
    source: SnapshotSource

    model_config = ConfigDict(from_attributes=True)


class PositionValueResponse(BaseModel):
    symbol: str
    quantity: Decimal
    avg_cost: Decimal
    price: Decimal
    price_source: PriceSource
    market_value: Decimal

    model_config = ConfigDict(from_attributes=True)


class ValuationResponse(BaseModel):
    """Result of a live capture."""

    date: date
    mode: ValuationMode
    total_market_value: Decimal
    cash_balance: Decimal
    total_value: Decimal
    currency: str
    positions: list[PositionValueResponse]
    fallback_symbols: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RecomputeReportResponse(BaseModel):
    start_date: date
    end_date: date
    days_processed: int
    days_failed: int
    cancelled: bool
    failed_dates: list[date] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RecomputeProgressResponse(BaseModel):
    job_id: int
    state: JobState
    start_date: date
    current_date: date | None
    days_done: int
    days_total: int
    message: str | None

    model_config = ConfigDict(from_attributes=True)


class RecomputeStatusResponse(BaseModel):
    """State of the background recompute slot."""

    running: RecomputeProgressResponse | None
    pending_start: date | None
    last_report: RecomputeReportResponse | None

    model_config = ConfigDict(from_attributes=True)
