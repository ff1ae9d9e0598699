# backend/portfolio_tracker/schemas/targets.py
"""
Pydantic schemas for investment targets.

``progress`` is a fraction (1 = target reached); ``remaining`` turns
negative once the target is exceeded.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_tracker.models import TargetScope
from portfolio_tracker.schemas.validators import validate_symbol
from portfolio_tracker.services.ledger.targets import TargetStatus


def _upper(v):
    if isinstance(v, str):
        return v.strip().upper()
    return v


class TargetCreate(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20)
    target_amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=8)
    scope_type: TargetScope = Field(default=TargetScope.ALL, description="ALL or ACCOUNT")
    account_id: int | None = Field(default=None, gt=0, description="Required for ACCOUNT scope")

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return validate_symbol(v)

    @field_validator('scope_type', mode='before')
    @classmethod
    def normalize_scope(cls, v):
        return _upper(v)


class TargetUpdate(BaseModel):
    symbol: str | None = Field(default=None, min_length=1, max_length=20)
    target_amount: Decimal | None = Field(default=None, gt=0, max_digits=18, decimal_places=8)
    scope_type: TargetScope | None = None
    account_id: int | None = Field(default=None, gt=0)

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: str | None) -> str | None:
        return validate_symbol(v) if v is not None else None

    @field_validator('scope_type', mode='before')
    @classmethod
    def normalize_scope(cls, v):
        return _upper(v)


class TargetResponse(BaseModel):
    id: int
    symbol: str
    target_amount: Decimal
    scope_type: TargetScope
    account_id: int | None
    scope_display: str = Field(..., description="'All Accounts' or the account name")
    invested: Decimal = Field(..., description="Buys with fees minus sells net of fees")
    remaining: Decimal
    progress: Decimal = Field(..., description="invested / target_amount")
    status: TargetStatus

    model_config = ConfigDict(from_attributes=True)
