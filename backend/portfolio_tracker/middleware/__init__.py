# backend/portfolio_tracker/middleware/__init__.py
"""
Middleware components for the portfolio tracker API.

- Correlation ID tracking for request tracing
- Rate limiting for API protection
"""

from portfolio_tracker.middleware.correlation import CorrelationIdMiddleware
from portfolio_tracker.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_WRITE,
    RATE_LIMIT_MARKET,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_ANALYTICS,
    RATE_LIMIT_REBUILD,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_WRITE",
    "RATE_LIMIT_MARKET",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_ANALYTICS",
    "RATE_LIMIT_REBUILD",
]
