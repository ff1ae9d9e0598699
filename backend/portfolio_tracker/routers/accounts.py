# backend/portfolio_tracker/routers/accounts.py
"""
Account management endpoints.

An account groups trades, holdings and cash accounts. Names are unique.
An account that still has transactions cannot be deleted.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from portfolio_tracker.database import get_db
from portfolio_tracker.dependencies import get_account_service
from portfolio_tracker.middleware import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_WRITE
from portfolio_tracker.schemas.accounts import AccountCreate, AccountResponse, AccountUpdate
from portfolio_tracker.services.ledger import AccountService

router = APIRouter(
    prefix="/accounts",
    tags=["Accounts"],
)

DbSession = Annotated[Session, Depends(get_db)]
Accounts = Annotated[AccountService, Depends(get_account_service)]


@router.get("/", response_model=list[AccountResponse])
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_accounts(request: Request, db: DbSession, service: Accounts) -> list[AccountResponse]:
    return [AccountResponse.model_validate(a) for a in service.list_accounts(db)]


@router.get("/{account_id}", response_model=AccountResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_account(request: Request, account_id: int, db: DbSession, service: Accounts) -> AccountResponse:
    return AccountResponse.model_validate(service.get_account(db, account_id))


@router.post("/", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_WRITE)
def create_account(
        request: Request,
        payload: AccountCreate,
        db: DbSession,
        service: Accounts,
) -> AccountResponse:
    account = service.create_account(db, payload.name, payload.account_type, payload.notes)
    return AccountResponse.model_validate(account)


@router.put("/{account_id}", response_model=AccountResponse)
@limiter.limit(RATE_LIMIT_WRITE)
def update_account(
        request: Request,
        account_id: int,
        payload: AccountUpdate,
        db: DbSession,
        service: Accounts,
) -> AccountResponse:
    account = service.update_account(db, account_id, payload.model_dump(exclude_unset=True))
    return AccountResponse.model_validate(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_account(request: Request, account_id: int, db: DbSession, service: Accounts) -> None:
    """Delete an account and its cash accounts (400 if it still has transactions)."""
    service.delete_account(db, account_id)
