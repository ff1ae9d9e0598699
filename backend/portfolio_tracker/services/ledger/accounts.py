# backend/portfolio_tracker/services/ledger/accounts.py
"""
Account and cash-account management.

Cash accounts hold a single current balance. There is no balance history,
so a historical valuation counts today's amount for every date on or
after the cash account's creation (see CashPolicy in the valuation
engine).
"""

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from portfolio_tracker.models import Account, AccountType, CashAccount, InvestmentTarget, Transaction
from portfolio_tracker.services.constants import ZERO
from portfolio_tracker.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class AccountService:
    """CRUD for brokerage accounts."""

    def list_accounts(self, db: Session) -> list[Account]:
        return list(db.scalars(select(Account).order_by(Account.id)).all())

    def get_account(self, db: Session, account_id: int) -> Account:
        account = db.get(Account, account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    def create_account(
            self,
            db: Session,
            name: str,
            account_type: AccountType | str = AccountType.MIXED,
            notes: str | None = None,
    ) -> Account:
        name = self._validate_name(db, name)
        account = Account(name=name, account_type=_account_type(account_type), notes=notes)
        db.add(account)
        db.commit()
        db.refresh(account)
        logger.info(f"Created account {account.id} '{account.name}'")
        return account

    def update_account(self, db: Session, account_id: int, changes: dict[str, Any]) -> Account:
        account = self.get_account(db, account_id)

        if "name" in changes:
            account.name = self._validate_name(db, changes["name"], exclude_id=account_id)
        if "account_type" in changes:
            account.account_type = _account_type(changes["account_type"])
        if "notes" in changes:
            account.notes = changes["notes"]

        db.commit()
        db.refresh(account)
        return account

    def delete_account(self, db: Session, account_id: int) -> None:
        """
        Delete an account with its cash accounts and account-scope targets.

        Raises:
            ValidationError: The account still has transactions
        """
        account = self.get_account(db, account_id)

        txn_count = db.scalar(
            select(func.count()).select_from(Transaction).where(Transaction.account_id == account_id)
        )
        if txn_count:
            raise ValidationError(
                f"Account '{account.name}' has {txn_count} transactions; delete them first",
                field="account_id",
            )

        for cash in list(account.cash_accounts):
            db.delete(cash)
        db.execute(delete(InvestmentTarget).where(InvestmentTarget.account_id == account_id))
        db.delete(account)
        db.commit()
        logger.info(f"Deleted account {account_id}")

    @staticmethod
    def _validate_name(db: Session, name: str | None, exclude_id: int | None = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name is required", field="name")

        query = select(Account.id).where(Account.name == name)
        if exclude_id is not None:
            query = query.where(Account.id != exclude_id)
        if db.scalar(query) is not None:
            raise ValidationError(f"Account name '{name}' already exists", field="name")
        return name


class CashAccountService:
    """CRUD and balance adjustment for cash accounts."""

    def list_cash_accounts(self, db: Session, account_ids: list[int] | None = None) -> list[CashAccount]:
        query = select(CashAccount).order_by(CashAccount.id)
        if account_ids:
            query = query.where(CashAccount.account_id.in_(account_ids))
        return list(db.scalars(query).all())

    def get_cash_account(self, db: Session, cash_account_id: int) -> CashAccount:
        cash = db.get(CashAccount, cash_account_id)
        if cash is None:
            raise NotFoundError("CashAccount", cash_account_id)
        return cash

    def create_cash_account(
            self,
            db: Session,
            account_id: int,
            name: str,
            amount: Decimal = ZERO,
            currency: str = "USD",
            notes: str | None = None,
    ) -> CashAccount:
        if db.get(Account, account_id) is None:
            raise NotFoundError("Account", account_id)

        cash = CashAccount(
            account_id=account_id,
            name=_required(name, "name"),
            amount=_non_negative(amount),
            currency=(currency or "USD").strip().upper(),
            notes=notes,
        )
        db.add(cash)
        db.commit()
        db.refresh(cash)
        logger.info(f"Created cash account {cash.id} '{cash.name}' with {cash.amount} {cash.currency}")
        return cash

    def update_cash_account(self, db: Session, cash_account_id: int, changes: dict[str, Any]) -> CashAccount:
        cash = self.get_cash_account(db, cash_account_id)

        if "account_id" in changes:
            if db.get(Account, changes["account_id"]) is None:
                raise NotFoundError("Account", changes["account_id"])
            cash.account_id = changes["account_id"]
        if "name" in changes:
            cash.name = _required(changes["name"], "name")
        if "amount" in changes:
            cash.amount = _non_negative(changes["amount"])
        if "currency" in changes:
            cash.currency = (changes["currency"] or "USD").strip().upper()
        if "notes" in changes:
            cash.notes = changes["notes"]

        db.commit()
        db.refresh(cash)
        return cash

    def delete_cash_account(self, db: Session, cash_account_id: int) -> None:
        cash = self.get_cash_account(db, cash_account_id)
        db.delete(cash)
        db.commit()
        logger.info(f"Deleted cash account {cash_account_id}")

    def adjust_balance(self, db: Session, cash_account_id: int, delta: Decimal) -> bool:
        """
        Add ``delta`` to a balance without committing.

        A change that would drive the balance below zero, or a missing
        cash account, is logged and skipped.

        Returns:
            True if the balance was changed
        """
        cash = db.get(CashAccount, cash_account_id)
        if cash is None:
            logger.error(f"Cash account {cash_account_id} not found; balance not adjusted by {delta}")
            return False

        new_amount = cash.amount + delta
        if new_amount < ZERO:
            logger.error(
                f"Cash account {cash_account_id} balance {cash.amount} cannot absorb {delta}; "
                "adjustment skipped"
            )
            return False

        cash.amount = new_amount
        logger.info(f"Adjusted cash account {cash_account_id} by {delta} to {new_amount}")
        return True


def _account_type(value: AccountType | str) -> AccountType:
    try:
        return AccountType(str(getattr(value, "value", value)).upper())
    except ValueError:
        raise ValidationError("Account type must be STOCK, CASH or MIXED", field="account_type") from None


def _required(value: str | None, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    return value


def _non_negative(amount: Decimal) -> Decimal:
    amount = Decimal(str(amount))
    if amount < ZERO:
        raise ValidationError("Amount cannot be negative", field="amount")
    return amount
