# backend/portfolio_tracker/routers/targets.py
"""
Investment target endpoints.

A target names an amount to invest in one symbol, across all accounts
or in one account. Every response carries the amount invested so far
(from the trade log), what remains and the status.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_target_service
from portfolio_tracker.middleware import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_WRITE
from portfolio_tracker.schemas.targets import TargetCreate, TargetResponse, TargetUpdate
from portfolio_tracker.services.ledger import TargetService

router = APIRouter(
    prefix="/targets",
    tags=["Targets"],
)

DbSession = Annotated[Session, Depends(get_db)]
Targets = Annotated[TargetService, Depends(get_target_service)]


@router.get("/", response_model=list[TargetResponse])
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_targets(request: Request, db: DbSession, service: Targets) -> list[TargetResponse]:
    return [TargetResponse.model_validate(t) for t in service.list_targets(db)]


@router.get("/{target_id}", response_model=TargetResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_target(request: Request, target_id: int, db: DbSession, service: Targets) -> TargetResponse:
    return TargetResponse.model_validate(service.get_target(db, target_id))


@router.post("/", response_model=TargetResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_WRITE)
def create_target(
        request: Request,
        payload: TargetCreate,
        db: DbSession,
        service: Targets,
) -> TargetResponse:
    target = service.create_target(
        db,
        symbol=payload.symbol,
        target_amount=payload.target_amount,
        scope_type=payload.scope_type,
        account_id=payload.account_id,
    )
    return TargetResponse.model_validate(target)


@router.put("/{target_id}", response_model=TargetResponse)
@limiter.limit(RATE_LIMIT_WRITE)
def update_target(
        request: Request,
        target_id: int,
        payload: TargetUpdate,
        db: DbSession,
        service: Targets,
) -> TargetResponse:
    target = service.update_target(db, target_id, payload.model_dump(exclude_unset=True))
    return TargetResponse.model_validate(target)


@router.delete("/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_target(request: Request, target_id: int, db: DbSession, service: Targets) -> None:
    service.delete_target(db, target_id)
