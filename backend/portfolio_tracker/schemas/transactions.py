# backend/portfolio_tracker/schemas/transactions.py
"""
Pydantic schemas for Transaction validation.

These schemas define:
- What data clients must send (Create)
- What data clients can update (Update)
- What data the API returns (Response)

Validation layers:
- Field constraints: type, length, numeric limits
- Field validators: normalization (uppercase, trim)
- Service: existence checks, future dates, sell guard

IMPORTANT: All financial values use Decimal for precision.
Never use float for money!
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_tracker.models import TransactionType
from portfolio_tracker.schemas.pagination import PaginationMeta
from portfolio_tracker.schemas.validators import validate_currency, validate_symbol


def _upper_type(v):
    if isinstance(v, str):
        return v.strip().upper()
    return v


# =============================================================================
# CREATE SCHEMA
# =============================================================================

class TransactionCreate(BaseModel):
    """Schema for recording a new trade."""

    account_id: int = Field(..., gt=0, description="Account the trade belongs to")

    symbol: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Trading symbol",
        examples=["AAPL", "BRK.B"]
    )

    name: str | None = Field(
        default=None,
        max_length=200,
        description="Display name (looked up from market data when omitted)"
    )

    transaction_type: TransactionType = Field(
        ...,
        description="BUY or SELL",
        examples=[TransactionType.BUY, TransactionType.SELL]
    )

    trade_date: date = Field(..., description="Trading day of the trade", examples=["2024-03-15"])

    price: Decimal = Field(
        ...,
        gt=0,
        max_digits=18,
        decimal_places=8,
        description="Price per share (must be positive)",
        examples=["150.50"]
    )

    quantity: Decimal = Field(
        ...,
        gt=0,
        max_digits=18,
        decimal_places=8,
        description="Number of shares (must be positive)",
        examples=["10", "0.5"]
    )

    fee: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        max_digits=18,
        decimal_places=8,
        description="Commission (0 or positive)",
    )

    currency: str = Field(default="USD", min_length=3, max_length=3, description="ISO 4217 code")

    cash_account_id: int | None = Field(
        default=None,
        gt=0,
        description="Cash account debited on buys and credited on sells"
    )

    # =========================================================================
    # FIELD VALIDATORS (Normalization)
    # =========================================================================

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return validate_symbol(v)

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return validate_currency(v)

    @field_validator('transaction_type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        """Accept 'buy' / 'sell' in any case."""
        return _upper_type(v)


# =============================================================================
# UPDATE SCHEMA
# =============================================================================

class TransactionUpdate(BaseModel):
    """
    Schema for updating an existing transaction.

    All fields are optional; the client only sends fields to change.
    Changing symbol or account rebuilds both the old and the new holding.
    """

    account_id: int | None = Field(default=None, gt=0)
    symbol: str | None = Field(default=None, min_length=1, max_length=20)
    name: str | None = Field(default=None, max_length=200)
    transaction_type: TransactionType | None = None
    trade_date: date | None = None
    price: Decimal | None = Field(default=None, gt=0, max_digits=18, decimal_places=8)
    quantity: Decimal | None = Field(default=None, gt=0, max_digits=18, decimal_places=8)
    fee: Decimal | None = Field(default=None, ge=0, max_digits=18, decimal_places=8)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    cash_account_id: int | None = Field(default=None, gt=0)

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: str | None) -> str | None:
        return validate_symbol(v) if v is not None else None

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str | None) -> str | None:
        return validate_currency(v) if v is not None else None

    @field_validator('transaction_type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        return _upper_type(v)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class TransactionResponse(BaseModel):
    """Schema for API responses."""

    id: int
    account_id: int
    symbol: str
    name: str | None
    transaction_type: TransactionType
    trade_date: date
    price: Decimal
    quantity: Decimal
    fee: Decimal
    currency: str
    cash_account_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    """
    Paginated transaction list.

    Attributes:
        items: Transactions for the current page, newest first
        pagination: Pagination metadata with computed fields
    """

    items: list[TransactionResponse] = Field(..., description="List of transactions for current page")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")
