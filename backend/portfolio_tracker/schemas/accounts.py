# backend/portfolio_tracker/schemas/accounts.py
"""
Pydantic schemas for accounts and cash accounts.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_tracker.models import AccountType
from portfolio_tracker.schemas.validators import validate_currency


def _upper(v):
    if isinstance(v, str):
        return v.strip().upper()
    return v


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Unique account name")
    account_type: AccountType = Field(default=AccountType.MIXED, description="STOCK, CASH or MIXED")
    notes: str | None = Field(default=None, max_length=500)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Account name cannot be blank")
        return v

    @field_validator('account_type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        return _upper(v)


class AccountUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    account_type: AccountType | None = None
    notes: str | None = Field(default=None, max_length=500)

    @field_validator('account_type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        return _upper(v)


class AccountResponse(BaseModel):
    id: int
    name: str
    account_type: AccountType
    notes: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# CASH ACCOUNTS
# =============================================================================

class CashAccountCreate(BaseModel):
    """
    A cash balance held in an account.

    Historical valuations count the current amount for every date on or
    after the cash account's creation.
    """

    account_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=18, decimal_places=8)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    notes: str | None = Field(default=None, max_length=500)

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return validate_currency(v)


class CashAccountUpdate(BaseModel):
    account_id: int | None = Field(default=None, gt=0)
    name: str | None = Field(default=None, min_length=1, max_length=100)
    amount: Decimal | None = Field(default=None, ge=0, max_digits=18, decimal_places=8)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    notes: str | None = Field(default=None, max_length=500)

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str | None) -> str | None:
        return validate_currency(v) if v is not None else None


class CashAccountResponse(BaseModel):
    id: int
    account_id: int
    name: str
    amount: Decimal
    currency: str
    notes: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
