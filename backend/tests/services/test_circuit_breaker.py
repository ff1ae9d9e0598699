# tests/services/test_circuit_breaker.py
"""
Tests for the circuit breaker implementation.
"""

import pytest

from portfolio_tracker.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    CircuitState,
)
from portfolio_tracker.services.exceptions import ProviderUnavailableError, TickerNotFoundError


def fail(breaker: CircuitBreaker, error: Exception | None = None) -> None:
    with pytest.raises(type(error) if error else RuntimeError):
        with breaker:
            raise error or RuntimeError("boom")


def succeed(breaker: CircuitBreaker) -> None:
    with breaker:
        pass


class TestCircuitBreakerInit:
    """Tests for circuit breaker initialization."""

    def test_default_values(self):
        """Should initialize with default values."""
        breaker = CircuitBreaker(name="test")

        assert breaker.failure_threshold == 5
        assert breaker.recovery_timeout == 60.0
        assert breaker.half_open_max_calls == 1
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.parametrize("kwargs, message", [
        ({"failure_threshold": 0}, "failure_threshold must be at least 1"),
        ({"recovery_timeout": -1}, "recovery_timeout cannot be negative"),
        ({"half_open_max_calls": 0}, "half_open_max_calls must be at least 1"),
    ])
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            CircuitBreaker(name="test", **kwargs)


class TestCircuitBreakerTransitions:
    """Tests for CLOSED -> OPEN -> HALF_OPEN -> CLOSED."""

    def test_opens_after_threshold(self):
        """Should open after failure_threshold failures and reject further calls."""
        breaker = CircuitBreaker(name="test", failure_threshold=2, recovery_timeout=60)

        fail(breaker)
        assert breaker.state == CircuitState.CLOSED
        fail(breaker)
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitBreakerOpen) as exc_info:
            succeed(breaker)
        assert exc_info.value.breaker_name == "test"
        assert 0 < exc_info.value.time_remaining <= 60
        assert breaker.rejected_calls == 1

    def test_excluded_exceptions_do_not_count(self):
        """Should treat an unknown ticker as an answer, not a failure."""
        breaker = CircuitBreaker(name="test", failure_threshold=1, excluded_exceptions=(TickerNotFoundError,))

        fail(breaker, TickerNotFoundError("ZZZZ", "mock"))

        assert breaker.state == CircuitState.CLOSED

    def test_half_open_success_closes(self):
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=0)
        fail(breaker, ProviderUnavailableError("mock", "down"))

        assert breaker.state == CircuitState.HALF_OPEN
        succeed(breaker)
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=0)
        fail(breaker)

        assert breaker.state == CircuitState.HALF_OPEN
        fail(breaker)
        assert breaker._state == CircuitState.OPEN

    def test_half_open_limits_trial_calls(self):
        """Should allow only half_open_max_calls trial calls at a time."""
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=0)
        fail(breaker)

        breaker.__enter__()
        with pytest.raises(CircuitBreakerOpen):
            breaker.__enter__()

    def test_failure_window_forgets_old_failures(self, monkeypatch):
        now = [1000.0]
        monkeypatch.setattr("portfolio_tracker.services.circuit_breaker.time.monotonic", lambda: now[0])
        breaker = CircuitBreaker(name="test", failure_threshold=2, failure_window=10)

        fail(breaker)
        now[0] += 11
        fail(breaker)

        assert breaker.state == CircuitState.CLOSED

    def test_reset(self):
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=60)
        fail(breaker)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        succeed(breaker)
