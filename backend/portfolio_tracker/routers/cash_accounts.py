# backend/portfolio_tracker/routers/cash_accounts.py
"""
Cash account endpoints.

A cash account holds one current balance. Balances move with linked
trades (buys debit, sells credit) and with direct edits here.

Cash has no balance history, so changing a balance changes every
historical valuation from the cash account's creation date onward. An
edit therefore schedules a snapshot recompute from that date.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_cash_account_service, get_orchestrator
from portfolio_tracker.middleware import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_WRITE
from portfolio_tracker.models import CashAccount
from portfolio_tracker.schemas.accounts import CashAccountCreate, CashAccountResponse, CashAccountUpdate
from portfolio_tracker.services.ledger import CashAccountService
from portfolio_tracker.services.snapshots import RecomputeOrchestrator
from portfolio_tracker.utils.date_utils import market_date_of

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cash-accounts",
    tags=["Cash Accounts"],
)

DbSession = Annotated[Session, Depends(get_db)]
CashAccounts = Annotated[CashAccountService, Depends(get_cash_account_service)]
Orchestrator = Annotated[RecomputeOrchestrator, Depends(get_orchestrator)]


def _schedule_recompute(orchestrator: RecomputeOrchestrator, cash: CashAccount) -> None:
    """Best effort; the cash edit has already committed."""
    try:
        orchestrator.submit(market_date_of(cash.created_at))
    except Exception as e:
        logger.error(f"Could not schedule recompute after cash account {cash.id} change: {e}", exc_info=True)


@router.get("/", response_model=list[CashAccountResponse])
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_cash_accounts(
        request: Request,
        db: DbSession,
        service: CashAccounts,
        account_ids: list[int] | None = Query(default=None, description="Filter by account"),
) -> list[CashAccountResponse]:
    return [CashAccountResponse.model_validate(c) for c in service.list_cash_accounts(db, account_ids)]


@router.get("/{cash_account_id}", response_model=CashAccountResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_cash_account(
        request: Request,
        cash_account_id: int,
        db: DbSession,
        service: CashAccounts,
) -> CashAccountResponse:
    return CashAccountResponse.model_validate(service.get_cash_account(db, cash_account_id))


@router.post("/", response_model=CashAccountResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_WRITE)
def create_cash_account(
        request: Request,
        payload: CashAccountCreate,
        db: DbSession,
        service: CashAccounts,
        orchestrator: Orchestrator,
) -> CashAccountResponse:
    cash = service.create_cash_account(
        db,
        account_id=payload.account_id,
        name=payload.name,
        amount=payload.amount,
        currency=payload.currency,
        notes=payload.notes,
    )
    _schedule_recompute(orchestrator, cash)
    return CashAccountResponse.model_validate(cash)


@router.put("/{cash_account_id}", response_model=CashAccountResponse)
@limiter.limit(RATE_LIMIT_WRITE)
def update_cash_account(
        request: Request,
        cash_account_id: int,
        payload: CashAccountUpdate,
        db: DbSession,
        service: CashAccounts,
        orchestrator: Orchestrator,
) -> CashAccountResponse:
    cash = service.update_cash_account(db, cash_account_id, payload.model_dump(exclude_unset=True))
    _schedule_recompute(orchestrator, cash)
    return CashAccountResponse.model_validate(cash)


@router.delete("/{cash_account_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_cash_account(
        request: Request,
        cash_account_id: int,
        db: DbSession,
        service: CashAccounts,
        orchestrator: Orchestrator,
) -> None:
    cash = service.get_cash_account(db, cash_account_id)
    created = cash.created_at
    service.delete_cash_account(db, cash_account_id)
    try:
        orchestrator.submit(market_date_of(created))
    except Exception as e:
        logger.error(f"Could not schedule recompute after deleting cash account {cash_account_id}: {e}", exc_info=True)
