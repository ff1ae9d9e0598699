# backend/portfolio_tracker/routers/overview.py
"""
Portfolio overview endpoint.

Current holdings merged per symbol, portfolio totals and today's P&L.
Prices come from a live valuation that is not recorded as a snapshot.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_overview_service
from portfolio_tracker.middleware import limiter, RATE_LIMIT_MARKET
from portfolio_tracker.schemas.overview import OverviewResponse
from portfolio_tracker.services.overview import OverviewService

router = APIRouter(
    prefix="/overview",
    tags=["Overview"],
)


@router.get("/", response_model=OverviewResponse)
@limiter.limit(RATE_LIMIT_MARKET)
def get_overview(
        request: Request,
        db: Annotated[Session, Depends(get_db)],
        service: Annotated[OverviewService, Depends(get_overview_service)],
        account_ids: list[int] | None = Query(default=None, description="Restrict to accounts"),
) -> OverviewResponse:
    """
    Holdings and totals.

    Today's P&L is reported for the whole portfolio only; with
    ``account_ids`` it is zero and has no baseline.
    """
    return OverviewResponse.model_validate(service.get_overview(db, account_ids))
