# backend/portfolio_tracker/schemas/market_data.py
"""
Pydantic schemas for market data lookups.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class QuoteResponse(BaseModel):
    symbol: str
    price: Decimal
    change: Decimal = Field(..., description="Change against the previous close")
    change_pct: Decimal = Field(..., description="Change against the previous close, in percent")
    volume: int | None
    timestamp: datetime = Field(..., description="When the quote was fetched (UTC)")
    provider: str = Field(..., description="Provider that served the quote")

    model_config = ConfigDict(from_attributes=True)
