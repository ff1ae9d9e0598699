# backend/portfolio_tracker/services/market_data/base.py
"""
Abstract interface for market data providers.

Every provider (Yahoo Finance, Alpha Vantage, test doubles) implements the
same four operations:

- get_quote(symbol)                                  -> Quote | None
- get_quotes(symbols)                                -> dict[str, Quote]
- get_historical_price_range(symbol, start, end)     -> list[ClosePrice]
- get_historical_open_close(symbol, on)              -> OpenClose | None

``None`` / empty results mean "the provider answered but had no usable
data". Failures are raised:

- TickerNotFoundError: permanent, never retried
- ProviderUnavailableError: network/server trouble, retried
- RateLimitError: quota exceeded, retried with backoff

Caching, throttling and cross-provider fallback are NOT provider concerns;
they live in MarketDataGateway.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TypeVar, Callable, Any

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from portfolio_tracker.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    TickerNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Quote:
    """
    Latest traded price for a symbol.

    Attributes:
        symbol: Symbol as requested, uppercased (e.g., "AAPL")
        price: Last price
        change: Absolute change versus previous close
        change_pct: Percent change versus previous close
        volume: Session volume, if reported
        timestamp: When the quote was fetched (UTC)
        provider: Name of the provider that served it
    """

    symbol: str
    price: Decimal
    change: Decimal
    change_pct: Decimal
    volume: int | None
    timestamp: datetime
    provider: str

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"quote price must be positive, got {self.price}")


@dataclass(frozen=True)
class ClosePrice:
    """One trading day's close."""

    date: date
    close: Decimal

    def __post_init__(self) -> None:
        if self.close <= 0:
            raise ValueError(f"close price must be positive, got {self.close}")


@dataclass(frozen=True)
class OpenClose:
    """
    One trading day's open and close.

    The valuation engine prices a historical day at the midpoint, which
    smooths intraday swings the same way daily snapshot averaging does.
    """

    date: date
    open: Decimal
    close: Decimal

    def __post_init__(self) -> None:
        if self.close <= 0:
            raise ValueError(f"close price must be positive, got {self.close}")
        if self.open <= 0:
            raise ValueError(f"open price must be positive, got {self.open}")

    @property
    def mid(self) -> Decimal:
        return (self.open + self.close) / 2


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class MarketDataProvider(ABC):
    """
    Abstract base class for market data providers.

    Retry Behavior:
        ``_execute_with_retry`` wraps a call in tenacity exponential backoff.
        Subclasses tune it with class attributes:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)

        Rate limits and unavailability are retried; anything else
        (including TickerNotFoundError) propagates on the first attempt.
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 10
    RETRY_MULTIPLIER: float = 1

    # =========================================================================
    # ABSTRACT PROPERTIES AND METHODS
    # =========================================================================

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier used in logs, cache keys and errors."""
        pass

    @abstractmethod
    def get_quote(self, symbol: str) -> Quote | None:
        """
        Fetch the latest price for one symbol.

        Returns:
            Quote, or None if the provider has no usable price

        Raises:
            TickerNotFoundError, ProviderUnavailableError, RateLimitError
        """
        pass

    @abstractmethod
    def get_historical_price_range(
            self,
            symbol: str,
            start_date: date,
            end_date: date,
    ) -> list[ClosePrice]:
        """
        Fetch daily closes between two dates (both inclusive).

        Returns:
            Closes sorted by date ascending; empty if none in range
        """
        pass

    @abstractmethod
    def get_historical_open_close(self, symbol: str, on: date) -> OpenClose | None:
        """
        Fetch the open and close for exactly one trading day.

        Returns:
            OpenClose, or None if the symbol did not trade that day
        """
        pass

    # =========================================================================
    # OPTIONAL METHODS (with default implementations)
    # =========================================================================

    def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """
        Fetch latest prices for several symbols.

        Default implementation calls get_quote() per symbol and drops
        symbols without a usable quote. Subclasses override this when the
        vendor supports real batch requests.

        Returns:
            Dict of uppercased symbol to Quote
        """
        result: dict[str, Quote] = {}
        for symbol in symbols:
            quote = self.get_quote(symbol)
            if quote is not None:
                result[symbol.upper()] = quote
        return result

    def get_symbol_name(self, symbol: str) -> str | None:
        """Display name for a symbol, or None if the provider cannot tell."""
        return None

    # =========================================================================
    # RETRY HELPER METHOD
    # =========================================================================

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute a function with retry logic for transient failures.

        Args:
            func: Function to execute
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Return value of func

        Raises:
            The last exception if all retries fail
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()


def classify_provider_error(provider: str, symbol: str, error: Exception) -> Exception:
    """
    Map a vendor exception message to our error taxonomy.

    Shared by providers whose client libraries only surface plain
    exceptions with descriptive messages.
    """
    error_str = str(error).lower()
    if any(marker in error_str for marker in (
        "rate limit", "too many requests", "429", "api call frequency", "quota", "throttl",
    )):
        return RateLimitError(provider=provider)
    if any(marker in error_str for marker in (
        "not found", "no data", "delisted", "invalid api call",
    )):
        return TickerNotFoundError(ticker=symbol, provider=provider)
    return ProviderUnavailableError(provider=provider, reason=str(error))
