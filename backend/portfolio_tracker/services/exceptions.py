# backend/portfolio_tracker/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The FastAPI app maps them to HTTP responses in main.py.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── InsufficientHoldingsError
    ├── NotFoundError
    ├── RecomputeInProgressError
    └── MarketDataError
        ├── ProviderUnavailableError
        ├── TickerNotFoundError
        ├── RateLimitError
        └── DataUnavailableError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when a provider's circuit is open and blocking requests

Ledger writes raise ValidationError, InsufficientHoldingsError and
NotFoundError before anything is written. Market data errors never fail
a valuation: the engine falls back and logs instead.
"""

from datetime import date
from decimal import Decimal


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# LEDGER ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when a ledger write carries malformed fields.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InsufficientHoldingsError(ServiceError):
    """
    Raised when a sell would drive a holding's quantity below zero.

    Checked against the currently persisted holding, before any write.
    """

    def __init__(
            self,
            symbol: str,
            account_id: int,
            requested: Decimal,
            available: Decimal,
    ) -> None:
        self.symbol = symbol
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot sell {requested} {symbol} from account {account_id}: "
            f"only {available} held"
        )


class NotFoundError(ServiceError):
    """
    Raised when a referenced resource does not exist.

    Attributes:
        resource_type: Type of resource (e.g., "Transaction", "Account")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            resource_type: str,
            resource_id: int | str,
            message: str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message or f"{resource_type} {resource_id} not found")


class RecomputeInProgressError(ServiceError):
    """Raised when a full rebuild is requested while a recompute job is running."""

    def __init__(self, running_from: date) -> None:
        self.running_from = running_from
        super().__init__(
            f"A snapshot recompute from {running_from} is already running; "
            "cancel it or wait for it to finish"
        )


# =============================================================================
# MARKET DATA PROVIDER ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for market data provider failures.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when a market data provider is temporarily unavailable.

    Examples:
    - Network timeout
    - Server errors (500, 502, 503)

    This is a retryable error.
    """

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class TickerNotFoundError(MarketDataError):
    """
    Raised when a symbol is not known to the provider.

    This is NOT a retryable error.
    """

    def __init__(self, ticker: str, provider: str) -> None:
        message = f"Ticker '{ticker}' not found by {provider}"
        super().__init__(message, provider=provider)
        self.ticker = ticker


class RateLimitError(MarketDataError):
    """
    Raised when the provider's rate limit has been exceeded.

    This is a retryable error (with backoff).

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class DataUnavailableError(MarketDataError):
    """
    Raised by the gateway when every provider failed for a request.

    Attributes:
        symbol: Symbol that could not be priced
        target_date: Date requested, None for live quotes
        causes: Provider name to last error message
    """

    def __init__(
            self,
            symbol: str,
            target_date: date | None = None,
            causes: dict[str, str] | None = None,
    ) -> None:
        self.symbol = symbol
        self.target_date = target_date
        self.causes = causes or {}
        when = f" on {target_date}" if target_date else ""
        super().__init__(f"No usable price for {symbol}{when} from any provider")


# =============================================================================
# CIRCUIT BREAKER (re-exported for convenience)
# =============================================================================

from portfolio_tracker.services.circuit_breaker import CircuitBreakerOpen  # noqa: E402

__all__ = [
    "ServiceError",
    "ValidationError",
    "InsufficientHoldingsError",
    "NotFoundError",
    "RecomputeInProgressError",
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "DataUnavailableError",
    "CircuitBreakerOpen",
]
