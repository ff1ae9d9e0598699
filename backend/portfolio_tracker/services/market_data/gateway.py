# backend/portfolio_tracker/services/market_data/gateway.py
"""
Market data gateway: one object that owns every cross-provider concern.

Responsibilities:
- Bounded TTL cache for quotes and historical lookups (expired entries
  are purged on every write, the oldest are evicted past cache_max_size)
- Minimum interval between outbound provider calls (the caller sleeps;
  requests are never dropped)
- Per-call fallback through an ordered provider list when a provider
  raises or returns nothing usable
- A circuit breaker per provider so a provider that keeps failing is
  skipped for a while instead of paying its retry backoff on every call

Retry with backoff is the providers' own job (MarketDataProvider
._execute_with_retry). By the time an error reaches the gateway, that
provider is exhausted for this call.

Error contract:
- Some provider answered but had no data  -> None / {} / []
- Every provider failed with an error     -> DataUnavailableError

The gateway is built once (see dependencies.get_gateway) and injected into
the valuation engine, ledger and overview services. It holds no module
level state, so tests build their own with mock providers.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, TypeVar

from portfolio_tracker.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from portfolio_tracker.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    MARKET_DATA_CACHE_MAX_SIZE,
)
from portfolio_tracker.services.exceptions import (
    DataUnavailableError,
    MarketDataError,
    TickerNotFoundError,
)
from portfolio_tracker.services.market_data.base import (
    ClosePrice,
    MarketDataProvider,
    OpenClose,
    Quote,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _CacheEntry:
    stored_at: float
    value: Any


class MarketDataGateway:
    """
    Cached, throttled, multi-provider market data access.

    Args:
        providers: Providers in priority order; the first is the primary
        cache_ttl_seconds: How long a response is served from cache
        min_request_interval_seconds: Minimum spacing between provider calls
        cache_max_size: Most entries the cache holds
        clock: Monotonic clock (injectable for tests)
        sleep: Sleep function (injectable for tests)

    Example:
        gateway = MarketDataGateway([YahooFinanceProvider(), AlphaVantageProvider(key)])
        quote = gateway.get_quote("AAPL")
    """

    def __init__(
            self,
            providers: list[MarketDataProvider],
            cache_ttl_seconds: float = 5.0,
            min_request_interval_seconds: float = 1.0,
            cache_max_size: int = MARKET_DATA_CACHE_MAX_SIZE,
            clock: Callable[[], float] = time.monotonic,
            sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not providers:
            raise ValueError("MarketDataGateway needs at least one provider")

        self._providers = list(providers)
        self._cache_ttl = cache_ttl_seconds
        self._cache_max_size = cache_max_size
        self._min_interval = min_request_interval_seconds
        self._clock = clock
        self._sleep = sleep

        # Insertion order is store order, so expired entries sit at the front
        self._cache: OrderedDict[tuple, _CacheEntry] = OrderedDict()
        self._cache_lock = threading.RLock()
        self._throttle_lock = threading.Lock()
        self._last_request_at: float | None = None

        self._breakers = {
            p.name: CircuitBreaker(
                name=f"market-data-{p.name}",
                failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
                half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
                failure_window=CIRCUIT_BREAKER_FAILURE_WINDOW,
                excluded_exceptions=(TickerNotFoundError,),
            )
            for p in self._providers
        }

        logger.info(
            f"MarketDataGateway initialized: providers={[p.name for p in self._providers]}, "
            f"ttl={cache_ttl_seconds}s, min_interval={min_request_interval_seconds}s"
        )

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    def get_quote(self, symbol: str) -> Quote | None:
        """Latest price for one symbol, or None if no provider has one."""
        symbol = _normalize(symbol)
        return self._cached(
            ("quote", symbol),
            lambda: self._first_usable(
                "get_quote", symbol, None, self._providers,
                lambda p: p.get_quote(symbol),
                usable=lambda q: q is not None,
                empty=None,
            ),
        )

    def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """
        Latest prices for several symbols.

        Cache hits are served directly. Misses go to the primary provider
        as one batch; symbols the batch could not price (or all of them, if
        the batch call failed) are retried one by one through the remaining
        providers. Symbols nobody can price are left out of the result.
        """
        result: dict[str, Quote] = {}
        misses: list[str] = []

        for symbol in dict.fromkeys(_normalize(s) for s in symbols if s and s.strip()):
            cached = self._cache_get(("quote", symbol))
            if cached is not None:
                result[symbol] = cached
            else:
                misses.append(symbol)

        if not misses:
            return result

        primary, *fallbacks = self._providers
        batch: dict[str, Quote] = {}
        try:
            batch = self._call_provider(primary, lambda: primary.get_quotes(misses))
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"[{primary.name}] batch quote failed for {len(misses)} symbols: {e}")
            fallbacks = self._providers
        except Exception:
            logger.exception(f"[{primary.name}] unexpected error in batch quote")
            fallbacks = self._providers

        for symbol, quote in batch.items():
            symbol = _normalize(symbol)
            if symbol in misses and quote is not None:
                self._cache_put(("quote", symbol), quote)
                result[symbol] = quote

        for symbol in misses:
            if symbol in result or not fallbacks:
                continue
            try:
                quote = self._first_usable(
                    "get_quote", symbol, None, fallbacks,
                    lambda p, s=symbol: p.get_quote(s),
                    usable=lambda q: q is not None,
                    empty=None,
                )
            except DataUnavailableError as e:
                logger.warning(str(e))
                continue
            if quote is not None:
                self._cache_put(("quote", symbol), quote)
                result[symbol] = quote

        return result

    def get_historical_price_range(
            self,
            symbol: str,
            start_date: date,
            end_date: date,
    ) -> list[ClosePrice]:
        """Daily closes in [start_date, end_date], ascending."""
        symbol = _normalize(symbol)
        if start_date > end_date:
            return []
        return self._cached(
            ("range", symbol, start_date, end_date),
            lambda: self._first_usable(
                "get_historical_price_range", symbol, end_date, self._providers,
                lambda p: p.get_historical_price_range(symbol, start_date, end_date),
                usable=bool,
                empty=[],
            ),
        )

    def get_historical_open_close(self, symbol: str, on: date) -> OpenClose | None:
        """Open and close for one trading day, or None."""
        symbol = _normalize(symbol)
        return self._cached(
            ("open_close", symbol, on),
            lambda: self._first_usable(
                "get_historical_open_close", symbol, on, self._providers,
                lambda p: p.get_historical_open_close(symbol, on),
                usable=lambda bar: bar is not None,
                empty=None,
            ),
        )

    def get_symbol_name(self, symbol: str) -> str | None:
        """Display name for a symbol, or None."""
        symbol = _normalize(symbol)
        return self._cached(
            ("name", symbol),
            lambda: self._first_usable(
                "get_symbol_name", symbol, None, self._providers,
                lambda p: p.get_symbol_name(symbol),
                usable=bool,
                empty=None,
            ),
        )

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def breaker_states(self) -> dict[str, dict[str, Any]]:
        """Circuit breaker state per provider, for health checks."""
        return {
            name: {
                "circuit_breaker_state": breaker.state.value,
                "rejected_calls": breaker.rejected_calls,
            }
            for name, breaker in self._breakers.items()
        }

    # =========================================================================
    # FALLBACK
    # =========================================================================

    def _first_usable(
            self,
            operation: str,
            symbol: str,
            target_date: date | None,
            providers: list[MarketDataProvider],
            call: Callable[[MarketDataProvider], T],
            usable: Callable[[T], bool],
            empty: T,
    ) -> T:
        """
        Try providers in order and return the first usable answer.

        Raises:
            DataUnavailableError: every provider raised (none answered)
        """
        causes: dict[str, str] = {}
        answered = False

        for provider in providers:
            try:
                value = self._call_provider(provider, lambda: call(provider))
            except CircuitBreakerOpen as e:
                causes[provider.name] = str(e)
                logger.debug(f"[{provider.name}] skipped for {operation}({symbol}): circuit open")
                continue
            except TickerNotFoundError as e:
                # A definite "unknown symbol" is an answer, not an outage
                answered = True
                causes[provider.name] = str(e)
                logger.info(f"[{provider.name}] {operation}({symbol}): {e}")
                continue
            except MarketDataError as e:
                causes[provider.name] = str(e)
                logger.warning(f"[{provider.name}] {operation}({symbol}) failed, trying next provider: {e}")
                continue
            except Exception as e:
                causes[provider.name] = repr(e)
                logger.exception(f"[{provider.name}] unexpected error in {operation}({symbol})")
                continue

            if usable(value):
                if provider is not self._providers[0]:
                    logger.info(f"{operation}({symbol}) served by fallback provider '{provider.name}'")
                return value

            answered = True
            causes[provider.name] = "no data"
            logger.debug(f"[{provider.name}] {operation}({symbol}) returned no data")

        if not answered:
            raise DataUnavailableError(symbol, target_date, causes)
        return empty

    def _call_provider(self, provider: MarketDataProvider, fn: Callable[[], T]) -> T:
        with self._breakers[provider.name]:
            self._throttle()
            return fn()

    # =========================================================================
    # THROTTLE
    # =========================================================================

    def _throttle(self) -> None:
        """Block until min_request_interval has passed since the last call."""
        if self._min_interval <= 0:
            return
        with self._throttle_lock:
            now = self._clock()
            if self._last_request_at is not None:
                wait = self._min_interval - (now - self._last_request_at)
                if wait > 0:
                    logger.debug(f"Throttling market data request for {wait:.2f}s")
                    self._sleep(wait)
                    now = self._clock()
            self._last_request_at = now

    # =========================================================================
    # CACHE
    # =========================================================================

    def _cached(self, key: tuple, load: Callable[[], T]) -> T:
        cached = self._cache_get(key)
        if cached is not None:
            return cached
        value = load()
        if value:
            self._cache_put(key, value)
        return value

    def _cache_get(self, key: tuple) -> Any:
        if self._cache_ttl <= 0:
            return None
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at >= self._cache_ttl:
                del self._cache[key]
                return None
            logger.debug(f"Market data cache hit: {key}")
            return entry.value

    def _cache_put(self, key: tuple, value: Any) -> None:
        if self._cache_ttl <= 0:
            return
        with self._cache_lock:
            now = self._clock()
            self._cache.pop(key, None)
            self._cache[key] = _CacheEntry(stored_at=now, value=value)
            self._evict(now)

    def _evict(self, now: float) -> None:
        """Drop expired entries, then the oldest ones past the size cap."""
        while self._cache:
            oldest = next(iter(self._cache.values()))
            if now - oldest.stored_at < self._cache_ttl and len(self._cache) <= self._cache_max_size:
                break
            self._cache.popitem(last=False)

    @property
    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._cache)


def _normalize(symbol: str) -> str:
    return symbol.strip().upper()
