# backend/portfolio_tracker/middleware/rate_limit.py
"""
Rate limiting middleware for API protection.

Endpoints that fan out to market data providers (live refresh, rebuild)
are the expensive ones; limiting them protects the Yahoo Finance and
Alpha Vantage quotas as much as the server.

Key by: Client IP address
Storage: In-memory (single-process deployment)

Usage:
    from portfolio_tracker.middleware.rate_limit import limiter, RATE_LIMIT_DEFAULT

    @router.get("/items")
    @limiter.limit(RATE_LIMIT_DEFAULT)
    def get_items(request: Request):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from portfolio_tracker.config import settings
from portfolio_tracker.schemas.errors import ErrorDetail
from portfolio_tracker.services.constants import (
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_WRITE,
    RATE_LIMIT_MARKET,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_ANALYTICS,
    RATE_LIMIT_REBUILD,
)
from portfolio_tracker.utils.context import get_correlation_id

logger = logging.getLogger(__name__)


# =============================================================================
# LIMITER INSTANCE
# =============================================================================

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=not settings.is_test,
)


# =============================================================================
# RATE LIMIT EXCEEDED HANDLER
# =============================================================================

async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """
    Handle rate limit exceeded errors with consistent error format.

    Returns a 429 response in the same shape as other API errors, with a
    Retry-After header.
    """
    retry_after = 60

    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"

    logger.warning(
        f"Rate limit exceeded for {get_remote_address(request)}: {limit_info}"
    )

    return JSONResponse(
        status_code=429,
        content=ErrorDetail(
            error="RateLimitError",
            message=f"Too many requests. {limit_info}",
            details={"retry_after": retry_after},
            correlation_id=get_correlation_id(),
        ).model_dump(),
        headers={
            "Retry-After": str(retry_after),
        },
    )


__all__ = [
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
