# backend/portfolio_tracker/schemas/errors.py
"""
Error response bodies.

Every non-2xx response built by the handlers in main.py uses one of
these. ``correlation_id`` matches the X-Correlation-ID header, so a
client can quote it when a ledger write was rejected or a recompute
could not be started.
"""

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """
    Body of every domain and HTTP error.

    ``details`` depends on ``error``:
        ValidationError            {"field": "trade_date"}
        InsufficientHoldingsError  {"symbol", "account_id", "requested", "available"}
        NotFoundError              {"resource_type", "resource_id"}
        RecomputeInProgressError   {"running_from": "2024-03-01"}
        DataUnavailableError       {"symbol"}
        RateLimitError             {"retry_after"}
    """

    error: str = Field(
        ...,
        description="Exception name, e.g. 'InsufficientHoldingsError'"
    )
    message: str = Field(..., description="Human-readable error message")
    details: dict | None = Field(default=None, description="Error-specific context")
    correlation_id: str | None = Field(default=None, description="Request correlation ID")


class FieldError(BaseModel):
    """One failed field of a request body or query string."""

    field: str = Field(..., description="Dotted location, e.g. 'body.quantity'")
    message: str
    type: str = Field(..., description="Pydantic error type, e.g. 'greater_than'")


class ValidationErrorDetail(BaseModel):
    """Body of 422 responses (request failed schema validation)."""

    error: str = Field(default="ValidationError")
    message: str = Field(default="Request validation failed")
    details: list[FieldError]
    correlation_id: str | None = None
