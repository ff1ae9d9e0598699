# backend/portfolio_tracker/routers/analytics.py
"""
Portfolio analytics endpoints.

- GET /analytics/net-value - Net value curve (one point per trading day)
- GET /analytics/stats - Return, max drawdown, volatility and Sharpe ratio
- GET /analytics/daily-pnl - Day-over-day change between daily snapshots
- GET /analytics/comparison - Net value curve next to an index (default ^GSPC)

Optional parameters:
- from_date: Start of the range (default: first trade or cash record)
- to_date: End of the range (default: today)
- account_ids: Restrict to these accounts (default: whole portfolio)

Daily P&L is always portfolio-wide because snapshots are.
"""

from datetime import date, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from portfolio_tracker.config import settings
from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_analytics_service
from portfolio_tracker.middleware import limiter, RATE_LIMIT_ANALYTICS
from portfolio_tracker.schemas.analytics import (
    BenchmarkMetricsResponse,
    ComparisonResponse,
    DailyPnLListResponse,
    DailyPnLResponse,
    IndexPointResponse,
    NetValueCurveResponse,
    NetValuePointResponse,
    PortfolioStatsResponse,
)
from portfolio_tracker.schemas.validators import validate_date_range
from portfolio_tracker.services.analytics import AnalyticsService
from portfolio_tracker.services.constants import DEFAULT_COMPARISON_DAYS
from portfolio_tracker.utils.date_utils import today_in_market

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/analytics",
    tags=["Analytics"],
)

DbSession = Annotated[Session, Depends(get_db)]
Analytics = Annotated[AnalyticsService, Depends(get_analytics_service)]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _resolve_date_range(
        db: Session,
        service: AnalyticsService,
        from_date: date | None,
        to_date: date | None,
        account_ids: list[int] | None,
) -> tuple[date, date]:
    """
    Resolve date range defaults and validate the result.

    - from_date defaults to the first record date
    - to_date defaults to today
    """
    to_date = to_date or today_in_market()
    if from_date is None:
        from_date = service.first_record_date(db, account_ids) or to_date
        # A default start never exceeds the explicit end
        from_date = min(from_date, to_date)

    try:
        return validate_date_range(from_date, to_date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/net-value", response_model=NetValueCurveResponse)
@limiter.limit(RATE_LIMIT_ANALYTICS)
def get_net_value_curve(
        request: Request,  # Required for rate limiting
        db: DbSession,
        service: Analytics,
        from_date: date | None = Query(default=None, description="Start date (default: first record)"),
        to_date: date | None = Query(default=None, description="End date (default: today)"),
        account_ids: list[int] | None = Query(default=None, description="Restrict to accounts"),
) -> NetValueCurveResponse:
    """
    Net value curve.

    Each point carries total value, stock value, cash, cost basis and
    stock P&L percent. Days before the first record are zero points.
    Today's point, when in range, comes from a live valuation and is
    flagged ``is_live``.
    """
    start, end = _resolve_date_range(db, service, from_date, to_date, account_ids)
    points = service.get_net_value_curve(db, start, end, account_ids)
    return NetValueCurveResponse(
        start_date=start,
        end_date=end,
        account_ids=account_ids,
        points=[NetValuePointResponse.model_validate(p) for p in points],
    )


@router.get("/stats", response_model=PortfolioStatsResponse)
@limiter.limit(RATE_LIMIT_ANALYTICS)
def get_stats(
        request: Request,
        db: DbSession,
        service: Analytics,
        from_date: date | None = Query(default=None),
        to_date: date | None = Query(default=None),
        account_ids: list[int] | None = Query(default=None),
) -> PortfolioStatsResponse:
    """Summary statistics over the net value curve for the range."""
    start, end = _resolve_date_range(db, service, from_date, to_date, account_ids)
    stats = service.get_stats(db, start, end, account_ids)
    return PortfolioStatsResponse.model_validate(stats)


@router.get("/daily-pnl", response_model=DailyPnLListResponse)
@limiter.limit(RATE_LIMIT_ANALYTICS)
def get_daily_pnl(
        request: Request,
        db: DbSession,
        service: Analytics,
        from_date: date | None = Query(default=None),
        to_date: date | None = Query(default=None),
) -> DailyPnLListResponse:
    start, end = _resolve_date_range(db, service, from_date, to_date, None)
    items = service.get_daily_pnl(db, start, end)
    return DailyPnLListResponse(
        start_date=start,
        end_date=end,
        items=[DailyPnLResponse.model_validate(i) for i in items],
    )


@router.get("/comparison", response_model=ComparisonResponse)
@limiter.limit(RATE_LIMIT_ANALYTICS)
def get_comparison(
        request: Request,
        db: DbSession,
        service: Analytics,
        from_date: date | None = Query(default=None, description="Start date (default: 90 days before to_date)"),
        to_date: date | None = Query(default=None, description="End date (default: today)"),
        index: str | None = Query(default=None, min_length=1, max_length=20, description="Index symbol"),
        account_ids: list[int] | None = Query(default=None, description="Restrict to accounts"),
) -> ComparisonResponse:
    """
    Portfolio against a market index.

    Returns the net value curve, the index closes with their percent
    change from the first close, and beta, correlation, tracking error
    and capture ratios over the dates both series share. An index no
    provider can price yields an empty ``index`` and a warning.
    """
    to_date = to_date or today_in_market()
    from_date = from_date or to_date - timedelta(days=DEFAULT_COMPARISON_DAYS)
    try:
        start, end = validate_date_range(from_date, to_date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    symbol = (index or settings.benchmark_symbol).strip().upper()
    result = service.get_comparison(db, start, end, symbol, account_ids)
    return ComparisonResponse(
        start_date=result.start_date,
        end_date=result.end_date,
        index_symbol=result.index_symbol,
        account_ids=account_ids,
        portfolio=[NetValuePointResponse.model_validate(p) for p in result.portfolio],
        index=[IndexPointResponse.model_validate(p) for p in result.index],
        metrics=BenchmarkMetricsResponse.model_validate(result.metrics),
    )
