# tests/services/test_gateway.py
"""
Tests for MarketDataGateway: fallback, cache, throttle and circuit breakers.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from portfolio_tracker.services.constants import CIRCUIT_BREAKER_FAILURE_THRESHOLD
from portfolio_tracker.services.exceptions import DataUnavailableError, ProviderUnavailableError
from portfolio_tracker.services.market_data import MarketDataGateway
from tests.conftest import MockMarketDataProvider

DAY = date(2024, 3, 14)


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.slept: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += seconds


@pytest.fixture
def primary() -> MockMarketDataProvider:
    return MockMarketDataProvider("primary")


@pytest.fixture
def secondary() -> MockMarketDataProvider:
    return MockMarketDataProvider("secondary")


@pytest.fixture
def pair(primary, secondary) -> MarketDataGateway:
    return MarketDataGateway([primary, secondary], cache_ttl_seconds=0, min_request_interval_seconds=0)


class TestFallback:
    """Tests for per-call provider fallback."""

    def test_primary_serves_when_it_can(self, pair, primary, secondary):
        primary.set_quote("AAPL", "100")
        secondary.set_quote("AAPL", "999")

        assert pair.get_quote("aapl").price == Decimal("100")
        assert secondary.calls["get_quote"] == 0

    def test_falls_back_on_error(self, pair, primary, secondary):
        """Should try the next provider when the primary raises."""
        primary.set_error("get_historical_open_close", ProviderUnavailableError("primary", "timeout"))
        secondary.set_bar("AAPL", DAY, "10", "12")

        bar = pair.get_historical_open_close("AAPL", DAY)

        assert bar.mid == Decimal("11")

    def test_falls_back_on_empty(self, pair, primary, secondary):
        """Should try the next provider when the primary has no data."""
        secondary.set_closes("AAPL", {DAY: "50"})

        closes = pair.get_historical_price_range("AAPL", date(2024, 3, 1), DAY)

        assert [c.close for c in closes] == [Decimal("50")]
        assert primary.calls["get_historical_price_range"] == 1

    def test_every_provider_failing_raises(self, pair, primary, secondary):
        outage = ProviderUnavailableError("x", "down")
        primary.set_error("get_quote", outage)
        secondary.set_error("get_quote", RuntimeError("unexpected"))

        with pytest.raises(DataUnavailableError) as exc_info:
            pair.get_quote("AAPL")

        assert exc_info.value.symbol == "AAPL"
        assert set(exc_info.value.causes) == {"primary", "secondary"}

    def test_no_data_anywhere_returns_empty(self, pair):
        """Should return None, not raise, when providers answered without data."""
        assert pair.get_quote("AAPL") is None
        assert pair.get_historical_price_range("AAPL", date(2024, 3, 1), DAY) == []

    def test_unknown_ticker_is_an_answer(self, pair, primary, secondary):
        primary.set_unknown("ZZZZ")
        secondary.set_unknown("ZZZZ")

        assert pair.get_historical_open_close("ZZZZ", DAY) is None

    def test_inverted_range_skips_providers(self, pair, primary):
        assert pair.get_historical_price_range("AAPL", DAY, date(2024, 3, 1)) == []
        assert primary.calls["get_historical_price_range"] == 0

    def test_symbol_name(self, pair, secondary):
        secondary.set_name("AAPL", "Apple Inc.")
        assert pair.get_symbol_name("AAPL") == "Apple Inc."


class TestBatchQuotes:
    """Tests for get_quotes."""

    def test_batch_then_per_symbol_fallback(self, pair, primary, secondary):
        """Should batch on the primary and fill gaps from the other providers."""
        primary.set_quote("AAPL", "100")
        secondary.set_quote("MSFT", "300")

        quotes = pair.get_quotes(["AAPL", "msft", "NOPE"])

        assert set(quotes) == {"AAPL", "MSFT"}
        assert primary.calls["get_quotes"] == 1

    def test_batch_failure_retries_every_provider(self, pair, primary, secondary):
        primary.set_error("get_quotes", ProviderUnavailableError("primary", "down"))
        secondary.set_quote("AAPL", "101")

        quotes = pair.get_quotes(["AAPL"])

        assert quotes["AAPL"].price == Decimal("101")


class TestCache:
    """Tests for the TTL cache."""

    def test_hit_within_ttl(self, primary):
        clock = FakeClock()
        gateway = MarketDataGateway([primary], cache_ttl_seconds=5, min_request_interval_seconds=0, clock=clock)
        primary.set_quote("AAPL", "100")

        gateway.get_quote("AAPL")
        clock.now += 4
        gateway.get_quote("AAPL")
        gateway.get_quotes(["AAPL"])

        assert primary.calls["get_quote"] == 1
        assert primary.calls["get_quotes"] == 0

    def test_expires_after_ttl(self, primary):
        clock = FakeClock()
        gateway = MarketDataGateway([primary], cache_ttl_seconds=5, min_request_interval_seconds=0, clock=clock)
        primary.set_quote("AAPL", "100")

        gateway.get_quote("AAPL")
        clock.now += 5
        gateway.get_quote("AAPL")

        assert primary.calls["get_quote"] == 2

    def test_empty_answers_not_cached(self, primary):
        gateway = MarketDataGateway([primary], cache_ttl_seconds=60, min_request_interval_seconds=0)

        gateway.get_quote("AAPL")
        gateway.get_quote("AAPL")

        assert primary.calls["get_quote"] == 2

    def test_clear_cache(self, primary):
        gateway = MarketDataGateway([primary], cache_ttl_seconds=60, min_request_interval_seconds=0)
        primary.set_quote("AAPL", "100")

        gateway.get_quote("AAPL")
        gateway.clear_cache()
        gateway.get_quote("AAPL")

        assert primary.calls["get_quote"] == 2

    def test_expired_entries_purged_on_write(self, primary):
        """Should not keep one-off historical lookups after they expire."""
        clock = FakeClock()
        gateway = MarketDataGateway([primary], cache_ttl_seconds=60, min_request_interval_seconds=0, clock=clock)
        days = [DAY - timedelta(days=n) for n in range(200)]
        for day in days:
            primary.set_bar("AAPL", day, "10", "12")
            gateway.get_historical_open_close("AAPL", day)
        assert gateway.cache_size == 200

        clock.now += 3600
        primary.set_quote("AAPL", "100")
        gateway.get_quote("AAPL")

        assert gateway.cache_size == 1

    def test_size_cap_evicts_oldest(self, primary):
        clock = FakeClock()
        gateway = MarketDataGateway(
            [primary], cache_ttl_seconds=3600, min_request_interval_seconds=0,
            cache_max_size=3, clock=clock,
        )
        for symbol in ("AAPL", "MSFT", "GOOG", "AMZN"):
            primary.set_quote(symbol, "100")
            gateway.get_quote(symbol)
            clock.now += 1

        assert gateway.cache_size == 3
        gateway.get_quote("AMZN")
        gateway.get_quote("AAPL")
        assert primary.calls["get_quote"] == 5


class TestThrottle:
    """Tests for the minimum interval between provider calls."""

    def test_waits_instead_of_dropping(self, primary):
        """Should sleep for the remainder of the interval, then make the call."""
        clock = FakeClock()
        gateway = MarketDataGateway(
            [primary], cache_ttl_seconds=0, min_request_interval_seconds=1.0,
            clock=clock, sleep=clock.sleep,
        )

        gateway.get_quote("AAPL")
        clock.now += 0.25
        gateway.get_quote("MSFT")

        assert clock.slept == [0.75]
        assert primary.calls["get_quote"] == 2

    def test_no_wait_after_interval(self, primary):
        clock = FakeClock()
        gateway = MarketDataGateway(
            [primary], cache_ttl_seconds=0, min_request_interval_seconds=1.0,
            clock=clock, sleep=clock.sleep,
        )

        gateway.get_quote("AAPL")
        clock.now += 2
        gateway.get_quote("MSFT")

        assert clock.slept == []


class TestCircuitBreakers:
    """Tests for skipping a provider that keeps failing."""

    def test_failing_provider_is_skipped(self, pair, primary, secondary):
        primary.set_error("get_quote", ProviderUnavailableError("primary", "down"))
        secondary.set_quote("AAPL", "100")

        for _ in range(CIRCUIT_BREAKER_FAILURE_THRESHOLD + 2):
            assert pair.get_quote("AAPL").price == Decimal("100")

        assert primary.calls["get_quote"] == CIRCUIT_BREAKER_FAILURE_THRESHOLD
        states = pair.breaker_states()
        assert states["primary"]["circuit_breaker_state"] == "open"
        assert states["primary"]["rejected_calls"] == 2
        assert states["secondary"]["circuit_breaker_state"] == "closed"

    def test_unknown_ticker_does_not_trip(self, pair, primary):
        primary.set_unknown("ZZZZ")

        for _ in range(CIRCUIT_BREAKER_FAILURE_THRESHOLD + 1):
            pair.get_quote("ZZZZ")

        assert pair.breaker_states()["primary"]["circuit_breaker_state"] == "closed"


def test_needs_a_provider():
    with pytest.raises(ValueError):
        MarketDataGateway([])
