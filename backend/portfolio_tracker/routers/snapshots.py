# backend/portfolio_tracker/routers/snapshots.py
"""
Snapshot endpoints.

- POST /snapshots/refresh - Value the portfolio now and record a raw snapshot
- POST /snapshots/recompute - Schedule a background recompute from a date
- GET /snapshots/recompute/status - State of the background job slot
- POST /snapshots/rebuild - Wipe all snapshots and replay from the first trade
- GET /snapshots/raw - Raw snapshots captured on a date

The full rebuild runs in the request and can take minutes on a long
history. It is refused with 409 while a background recompute runs.
"""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_orchestrator, get_snapshot_store, get_valuation_engine
from portfolio_tracker.middleware import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_MARKET, RATE_LIMIT_REBUILD
from portfolio_tracker.models import SnapshotSource
from portfolio_tracker.schemas.snapshots import (
    RawSnapshotResponse,
    RecomputeProgressResponse,
    RecomputeReportResponse,
    RecomputeStatusResponse,
    ValuationResponse,
)
from portfolio_tracker.services.exceptions import ValidationError
from portfolio_tracker.services.snapshots import RecomputeOrchestrator, SnapshotStore
from portfolio_tracker.services.valuation import ValuationEngine, ValuationMode
from portfolio_tracker.utils.date_utils import today_in_market

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/snapshots",
    tags=["Snapshots"],
)

DbSession = Annotated[Session, Depends(get_db)]
Orchestrator = Annotated[RecomputeOrchestrator, Depends(get_orchestrator)]


@router.post("/refresh", response_model=ValuationResponse)
@limiter.limit(RATE_LIMIT_MARKET)
def refresh_snapshot(
        request: Request,
        db: DbSession,
        engine: Annotated[ValuationEngine, Depends(get_valuation_engine)],
) -> ValuationResponse:
    """
    Live valuation of the whole portfolio.

    Refreshes holding last prices, records a MANUAL raw snapshot and
    rebuilds today's daily snapshot.
    """
    valuation = engine.compute_valuation(
        db, None, ValuationMode.LIVE, persist=True, source=SnapshotSource.MANUAL,
    )
    return ValuationResponse.model_validate(valuation)


@router.post("/recompute", response_model=RecomputeProgressResponse, status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(RATE_LIMIT_REBUILD)
def schedule_recompute(
        request: Request,
        orchestrator: Orchestrator,
        from_date: date = Query(..., description="First date to recompute"),
) -> RecomputeProgressResponse:
    """
    Queue a recompute from ``from_date`` through today.

    Requests made while a job runs are coalesced into one pending job that
    starts from the earliest requested date.
    """
    if from_date > today_in_market():
        raise ValidationError("from_date cannot be in the future", field="from_date")
    job = orchestrator.submit(from_date)
    return RecomputeProgressResponse.model_validate(job.status())


@router.get("/recompute/status", response_model=RecomputeStatusResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_recompute_status(request: Request, orchestrator: Orchestrator) -> RecomputeStatusResponse:
    return RecomputeStatusResponse.model_validate(orchestrator.status())


@router.post("/rebuild", response_model=RecomputeReportResponse)
@limiter.limit(RATE_LIMIT_REBUILD)
def rebuild_snapshots(request: Request, orchestrator: Orchestrator) -> RecomputeReportResponse:
    """
    Delete every snapshot and value every day from the first trade.

    **Errors:**
    - 409: A background recompute is running
    """
    report = orchestrator.rebuild_all()
    logger.info(f"Full rebuild finished: {report.days_processed} days, {report.days_failed} failed")
    return RecomputeReportResponse.model_validate(report)


@router.get("/raw", response_model=list[RawSnapshotResponse])
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_raw_snapshots(
        request: Request,
        db: DbSession,
        store: Annotated[SnapshotStore, Depends(get_snapshot_store)],
        snapshot_date: date | None = Query(default=None, alias="date", description="Default: today"),
) -> list[RawSnapshotResponse]:
    rows = store.get_raw_for_date(db, snapshot_date or today_in_market())
    return [RawSnapshotResponse.model_validate(r) for r in rows]
