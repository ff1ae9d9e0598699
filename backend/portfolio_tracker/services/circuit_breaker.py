# backend/portfolio_tracker/services/circuit_breaker.py
"""
Circuit breaker used by the market data gateway, one per provider.

When a provider keeps failing (even after its own retries), the gateway
stops calling it for a while and goes straight to the next provider. This
keeps a long recompute from paying the full retry/backoff cost on every
symbol of every day while a provider is down.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Too many recent failures, calls rejected immediately
    HALF_OPEN - Recovery timeout elapsed, a limited number of trial calls allowed

Usage:
    breaker = CircuitBreaker(name="yahoo", failure_threshold=5, recovery_timeout=60)

    try:
        with breaker:
            result = provider.get_quote("AAPL")
    except CircuitBreakerOpen:
        ...  # try the next provider
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised on entry when the circuit is open.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until a trial call will be allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Attributes:
        name: Identifier used in logs and errors
        failure_threshold: Failures (within failure_window) before opening
        recovery_timeout: Seconds to stay open before allowing trial calls
        half_open_max_calls: Trial calls allowed while half-open
        failure_window: Sliding window for counting failures (0 = no window)
        excluded_exceptions: Exception types that do not count as failures
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 1
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[Exception], ...] = field(default_factory=tuple)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_timestamps: list[float] = field(default_factory=list, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _rejected_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def rejected_calls(self) -> int:
        with self._lock:
            return self._rejected_calls

    def _maybe_half_open(self) -> None:
        if self._state == CircuitState.OPEN and self._time_until_recovery() <= 0:
            self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        else:
            self._failure_timestamps.clear()

        logger.info(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        now = time.monotonic()

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
            return

        self._failure_timestamps.append(now)
        if self.failure_window > 0:
            cutoff = now - self.failure_window
            self._failure_timestamps = [t for t in self._failure_timestamps if t > cutoff]

        if len(self._failure_timestamps) >= self.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    def _time_until_recovery(self) -> float:
        return max(0.0, self.recovery_timeout - (time.monotonic() - self._opened_at))

    def __enter__(self) -> "CircuitBreaker":
        with self._lock:
            self._maybe_half_open()

            allowed = self._state == CircuitState.CLOSED
            if self._state == CircuitState.HALF_OPEN and self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                allowed = True

            if not allowed:
                self._rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._time_until_recovery())

        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None or isinstance(exc_val, self.excluded_exceptions):
                self._record_success()
            else:
                self._record_failure()
        return False

    def reset(self) -> None:
        """Close the circuit and forget past failures."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
