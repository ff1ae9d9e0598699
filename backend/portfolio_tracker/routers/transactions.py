# backend/portfolio_tracker/routers/transactions.py
"""
Transaction management endpoints.

Every write goes through LedgerService, which:
- validates the trade and guards sells against the current holding
- rebuilds the affected holdings
- schedules a background snapshot recompute from the trade date

A failing recompute never fails the write; the response always reflects
the committed transaction.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_ledger_service
from portfolio_tracker.middleware import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_WRITE
from portfolio_tracker.schemas.pagination import PaginationMeta
from portfolio_tracker.schemas.transactions import (
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
    TransactionUpdate,
)
from portfolio_tracker.services.constants import MAX_LIST_LIMIT
from portfolio_tracker.services.ledger import LedgerService, TransactionDraft

logger = logging.getLogger(__name__)

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/transactions",
    tags=["Transactions"],
)

DbSession = Annotated[Session, Depends(get_db)]
Ledger = Annotated[LedgerService, Depends(get_ledger_service)]


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/", response_model=TransactionListResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_transactions(
        request: Request,  # Required for rate limiting
        db: DbSession,
        service: Ledger,
        account_ids: list[int] | None = Query(default=None, description="Filter by account"),
        symbol: str | None = Query(default=None, max_length=20, description="Filter by symbol"),
        skip: int = Query(default=0, ge=0),
        limit: int = Query(default=100, ge=1, le=MAX_LIST_LIMIT),
) -> TransactionListResponse:
    """List trades, newest first."""
    items, total = service.list_transactions(db, account_ids=account_ids, symbol=symbol, skip=skip, limit=limit)
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in items],
        pagination=PaginationMeta.create(total=total, skip=skip, limit=limit),
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_transaction(
        request: Request,
        transaction_id: int,
        db: DbSession,
        service: Ledger,
) -> TransactionResponse:
    return TransactionResponse.model_validate(service.get_transaction(db, transaction_id))


@router.post("/", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_WRITE)
def create_transaction(
        request: Request,
        payload: TransactionCreate,
        db: DbSession,
        service: Ledger,
) -> TransactionResponse:
    """
    Record a buy or sell.

    **Errors:**
    - 400: Invalid fields (e.g. trade date in the future)
    - 404: Unknown account or cash account
    - 409: Sell larger than the current holding
    """
    txn = service.create_transaction(db, TransactionDraft(**payload.model_dump()))
    return TransactionResponse.model_validate(txn)


@router.put("/{transaction_id}", response_model=TransactionResponse)
@limiter.limit(RATE_LIMIT_WRITE)
def update_transaction(
        request: Request,
        transaction_id: int,
        payload: TransactionUpdate,
        db: DbSession,
        service: Ledger,
) -> TransactionResponse:
    """Partially update a trade. Only the fields sent are changed."""
    changes = payload.model_dump(exclude_unset=True)
    txn = service.update_transaction(db, transaction_id, changes)
    return TransactionResponse.model_validate(txn)


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_transaction(
        request: Request,
        transaction_id: int,
        db: DbSession,
        service: Ledger,
) -> None:
    service.delete_transaction(db, transaction_id)
