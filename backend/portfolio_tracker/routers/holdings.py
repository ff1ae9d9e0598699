# backend/portfolio_tracker/routers/holdings.py
"""
Holdings distribution endpoint.

Market value per symbol and its share of the stock value, for the
allocation chart. Prices come from the same live valuation as the
overview.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_overview_service
from portfolio_tracker.middleware import limiter, RATE_LIMIT_MARKET
from portfolio_tracker.schemas.overview import HoldingWeightResponse
from portfolio_tracker.services.overview import OverviewService

router = APIRouter(
    prefix="/holdings",
    tags=["Holdings"],
)


@router.get("/distribution", response_model=list[HoldingWeightResponse])
@limiter.limit(RATE_LIMIT_MARKET)
def get_distribution(
        request: Request,
        db: Annotated[Session, Depends(get_db)],
        service: Annotated[OverviewService, Depends(get_overview_service)],
        account_ids: list[int] | None = Query(default=None, description="Restrict to accounts"),
) -> list[HoldingWeightResponse]:
    return [HoldingWeightResponse.model_validate(w) for w in service.get_distribution(db, account_ids)]
