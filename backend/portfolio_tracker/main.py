# backend/portfolio_tracker/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application and its lifespan (scheduler, recompute worker)
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from portfolio_tracker.config import settings
from portfolio_tracker.database import check_database_health, engine
from portfolio_tracker.dependencies import get_gateway, get_orchestrator, get_scheduler
from portfolio_tracker.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_HEALTH,
)
from portfolio_tracker.models import Base
from portfolio_tracker.routers import (
    accounts_router,
    analytics_router,
    cash_accounts_router,
    holdings_router,
    overview_router,
    quotes_router,
    snapshots_router,
    targets_router,
    transactions_router,
)
from portfolio_tracker.schemas.errors import ErrorDetail, FieldError, ValidationErrorDetail
from portfolio_tracker.services.exceptions import (
    ServiceError,
    ValidationError,
    InsufficientHoldingsError,
    NotFoundError,
    RecomputeInProgressError,
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
    DataUnavailableError,
    CircuitBreakerOpen,
)
from portfolio_tracker.services.market_data import MarketDataGateway
from portfolio_tracker.utils import get_correlation_id, setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables, start scheduled captures, and on shutdown stop the
    scheduler and the recompute worker.
    """
    Base.metadata.create_all(bind=engine)

    scheduler = None
    if settings.enable_scheduled_snapshots:
        scheduler = get_scheduler()
        scheduler.start()
        logger.info("Scheduled market open/close snapshots enabled")

    yield

    if scheduler is not None:
        scheduler.stop()
    get_orchestrator().shutdown()
    logger.info("Background workers stopped")


# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Portfolio valuation and snapshot reconstruction API",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================
# Origins are configured via CORS_ORIGINS environment variable

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

# Attach limiter to app state (required by slowapi)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service-layer exceptions carry no HTTP knowledge; these handlers map
# them to status codes and the shared ErrorDetail body.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error(status_code: int, error: str, message: str, details: dict | None = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(
            error=error, message=message, details=details, correlation_id=get_correlation_id(),
        ).model_dump(mode="json"),
        headers=headers,
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return _error(400, "ValidationError", str(exc), {"field": exc.field} if exc.field else None)


@app.exception_handler(InsufficientHoldingsError)
async def insufficient_holdings_handler(request: Request, exc: InsufficientHoldingsError) -> JSONResponse:
    """Handle oversized sells (409)."""
    logger.warning(f"Rejected sell: {exc}")
    return _error(
        409,
        "InsufficientHoldingsError",
        str(exc),
        {
            "symbol": exc.symbol,
            "account_id": exc.account_id,
            "requested": str(exc.requested),
            "available": str(exc.available),
        },
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle missing resources (404)."""
    logger.warning(f"Not found: {exc.resource_type} {exc.resource_id}")
    return _error(
        404,
        "NotFoundError",
        str(exc),
        {"resource_type": exc.resource_type, "resource_id": exc.resource_id},
    )


@app.exception_handler(RecomputeInProgressError)
async def recompute_in_progress_handler(request: Request, exc: RecomputeInProgressError) -> JSONResponse:
    """Handle a rebuild requested while a recompute runs (409)."""
    logger.warning(f"Rebuild refused: {exc}")
    return _error(409, "RecomputeInProgressError", str(exc), {"running_from": exc.running_from.isoformat()})


@app.exception_handler(DataUnavailableError)
async def data_unavailable_handler(request: Request, exc: DataUnavailableError) -> JSONResponse:
    """Handle every provider failing for a request (503)."""
    logger.error(f"Market data unavailable: {exc}")
    return _error(503, "DataUnavailableError", str(exc), {"symbol": exc.symbol})


@app.exception_handler(TickerNotFoundError)
async def ticker_not_found_handler(request: Request, exc: TickerNotFoundError) -> JSONResponse:
    """Handle ticker not found on market data provider (404)."""
    logger.warning(f"Ticker not found on provider: {exc.ticker}")
    return _error(404, "TickerNotFoundError", str(exc), {"ticker": exc.ticker})


@app.exception_handler(ProviderUnavailableError)
async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError) -> JSONResponse:
    """Handle market data provider unavailable (503)."""
    logger.error(f"Provider unavailable: {exc}")
    return _error(503, "ProviderUnavailableError", str(exc))


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Handle provider rate limit exceeded (429)."""
    logger.warning(f"Rate limit exceeded: {exc}")
    return _error(
        429,
        "RateLimitError",
        str(exc),
        {"retry_after": exc.retry_after} if exc.retry_after else None,
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1  # Round up
    return _error(
        503,
        "CircuitBreakerOpen",
        f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
        {"breaker_name": exc.breaker_name, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    """Handle generic market data errors (500)."""
    logger.error(f"Market data error: {exc}")
    return _error(500, "MarketDataError", str(exc))


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return _error(500, "ServiceError", str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle all HTTPExceptions with consistent error format.

    Converts FastAPI's default {"detail": "..."} format to ErrorDetail.
    """
    error_types = {
        400: "BadRequestError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        409: "ConflictError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    return _error(
        exc.status_code,
        error_types.get(exc.status_code, "HTTPError"),
        str(exc.detail) if exc.detail else "An error occurred",
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert the default 422 body to ValidationErrorDetail."""
    errors = [
        FieldError(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            type=error["type"],
        )
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error="ValidationError",
            message="Request validation failed",
            details=errors,
            correlation_id=get_correlation_id(),
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(accounts_router)  # /accounts/*
app.include_router(cash_accounts_router)  # /cash-accounts/*
app.include_router(transactions_router)  # /transactions/*
app.include_router(overview_router)  # /overview
app.include_router(analytics_router)  # /analytics/*
app.include_router(snapshots_router)  # /snapshots/*
app.include_router(targets_router)  # /targets/*
app.include_router(holdings_router)  # /holdings/distribution
app.include_router(quotes_router)  # /quote/{symbol}


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    """API root - returns basic application info."""
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request, gateway: MarketDataGateway = Depends(get_gateway)):
    """
    Health of the database (critical) and market data providers.

    **Response Status Codes:**
    - 200: Healthy, or degraded because a provider circuit breaker is open
    - 503: Database unreachable
    """
    checks = {"database": {**check_database_health(), "critical": True}}
    overall_status = "healthy" if checks["database"]["status"] == "healthy" else "unhealthy"

    try:
        for name, state in gateway.breaker_states().items():
            healthy = state["circuit_breaker_state"] != "open"
            checks[f"market_data_{name}"] = {
                "status": "healthy" if healthy else "unhealthy",
                "critical": False,
                **state,
            }
            if not healthy and overall_status == "healthy":
                overall_status = "degraded"
    except Exception as e:
        logger.warning(f"Market data health check failed: {e}")
        checks["market_data"] = {"status": "unknown", "critical": False, "error": str(e)}

    response_data = {"status": overall_status, "checks": checks}
    if overall_status == "unhealthy":
        return JSONResponse(status_code=503, content=response_data)
    return response_data


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Returns 200 while the process is alive. Does not check dependencies."""
    return {"status": "alive"}
