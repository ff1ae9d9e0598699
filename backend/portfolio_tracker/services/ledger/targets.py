# backend/portfolio_tracker/services/ledger/targets.py
"""
Investment targets: how much an investor plans to put into a symbol,
and how far the trade log has got.

Progress is computed on every read from the symbol's trades in scope:

    invested  = Σ BUY (price * qty + fee) - Σ SELL (price * qty - fee)
    remaining = target_amount - invested      (negative once exceeded)
    progress  = invested / target_amount      (fraction, 1 = reached)

    progress < 1  -> PENDING
    progress == 1 -> COMPLETED
    progress > 1  -> EXCEEDED

Unlike the cost basis of a holding, a sell's fee reduces the proceeds
here, so the figure is the net cash that went into the symbol.
"""

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_tracker.models import Account, InvestmentTarget, TargetScope, Transaction, TransactionType
from portfolio_tracker.services.constants import PERCENTAGE_PRECISION, ZERO
from portfolio_tracker.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"symbol", "target_amount", "scope_type", "account_id"})


class TargetStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    EXCEEDED = "EXCEEDED"


@dataclass(frozen=True)
class TargetProgress:
    """A target with its progress derived from the trade log."""
    id: int
    symbol: str
    target_amount: Decimal
    scope_type: TargetScope
    account_id: int | None
    scope_display: str
    invested: Decimal
    remaining: Decimal
    progress: Decimal
    status: TargetStatus


class TargetService:
    """CRUD for investment targets; every read returns TargetProgress."""

    def list_targets(self, db: Session) -> list[TargetProgress]:
        targets = db.scalars(select(InvestmentTarget).order_by(InvestmentTarget.id)).all()
        return [self._with_progress(db, t) for t in targets]

    def get_target(self, db: Session, target_id: int) -> TargetProgress:
        return self._with_progress(db, self._get(db, target_id))

    def create_target(
            self,
            db: Session,
            symbol: str,
            target_amount: Decimal,
            scope_type: TargetScope | str = TargetScope.ALL,
            account_id: int | None = None,
    ) -> TargetProgress:
        """
        Raises:
            ValidationError: Bad amount or scope, or a duplicate target
            NotFoundError: Unknown account for an ACCOUNT-scope target
        """
        symbol = _symbol(symbol)
        amount = _positive(target_amount)
        scope, account_id = self._validate_scope(db, scope_type, account_id)
        self._check_unique(db, symbol, scope, account_id)

        target = InvestmentTarget(
            symbol=symbol,
            target_amount=amount,
            scope_type=scope,
            account_id=account_id,
        )
        db.add(target)
        db.commit()
        db.refresh(target)
        logger.info(f"Created target {target.id}: {amount} in {symbol} ({scope.value}, account {account_id})")
        return self._with_progress(db, target)

    def update_target(self, db: Session, target_id: int, changes: dict[str, Any]) -> TargetProgress:
        target = self._get(db, target_id)

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        symbol = _symbol(changes["symbol"]) if "symbol" in changes else target.symbol
        amount = _positive(changes["target_amount"]) if "target_amount" in changes else target.target_amount
        scope, account_id = self._validate_scope(
            db,
            changes.get("scope_type", target.scope_type),
            changes["account_id"] if "account_id" in changes else target.account_id,
        )
        self._check_unique(db, symbol, scope, account_id, exclude_id=target_id)

        target.symbol = symbol
        target.target_amount = amount
        target.scope_type = scope
        target.account_id = account_id
        db.commit()
        db.refresh(target)
        return self._with_progress(db, target)

    def delete_target(self, db: Session, target_id: int) -> None:
        db.delete(self._get(db, target_id))
        db.commit()
        logger.info(f"Deleted target {target_id}")

    def invested(self, db: Session, symbol: str, account_id: int | None = None) -> Decimal:
        """Net cash put into ``symbol``, in one account or across all of them."""
        query = select(Transaction).where(Transaction.symbol == symbol)
        if account_id is not None:
            query = query.where(Transaction.account_id == account_id)

        total = ZERO
        for txn in db.scalars(query):
            gross = txn.price * txn.quantity
            fee = txn.fee or ZERO
            if txn.transaction_type == TransactionType.BUY:
                total += gross + fee
            else:
                total -= gross - fee
        return total

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _get(db: Session, target_id: int) -> InvestmentTarget:
        target = db.get(InvestmentTarget, target_id)
        if target is None:
            raise NotFoundError("InvestmentTarget", target_id)
        return target

    def _with_progress(self, db: Session, target: InvestmentTarget) -> TargetProgress:
        account_id = target.account_id if target.scope_type == TargetScope.ACCOUNT else None
        invested = self.invested(db, target.symbol, account_id)
        progress = invested / target.target_amount

        if progress < 1:
            status = TargetStatus.PENDING
        elif progress == 1:
            status = TargetStatus.COMPLETED
        else:
            status = TargetStatus.EXCEEDED

        return TargetProgress(
            id=target.id,
            symbol=target.symbol,
            target_amount=target.target_amount,
            scope_type=target.scope_type,
            account_id=target.account_id,
            scope_display=_scope_display(db, target),
            invested=invested,
            remaining=target.target_amount - invested,
            progress=progress.quantize(PERCENTAGE_PRECISION),
            status=status,
        )

    @staticmethod
    def _validate_scope(
            db: Session,
            scope_type: TargetScope | str,
            account_id: int | None,
    ) -> tuple[TargetScope, int | None]:
        try:
            scope = TargetScope(str(getattr(scope_type, "value", scope_type)).upper())
        except ValueError:
            raise ValidationError("Scope type must be ALL or ACCOUNT", field="scope_type") from None

        if scope == TargetScope.ALL:
            return scope, None

        if account_id is None:
            raise ValidationError("An ACCOUNT-scope target needs an account_id", field="account_id")
        if db.get(Account, account_id) is None:
            raise NotFoundError("Account", account_id)
        return scope, account_id

    @staticmethod
    def _check_unique(
            db: Session,
            symbol: str,
            scope: TargetScope,
            account_id: int | None,
            exclude_id: int | None = None,
    ) -> None:
        # The unique constraint does not cover ALL-scope rows (NULL account_id)
        query = select(InvestmentTarget.id).where(
            InvestmentTarget.symbol == symbol,
            InvestmentTarget.scope_type == scope,
        )
        if account_id is None:
            query = query.where(InvestmentTarget.account_id.is_(None))
        else:
            query = query.where(InvestmentTarget.account_id == account_id)
        if exclude_id is not None:
            query = query.where(InvestmentTarget.id != exclude_id)

        if db.scalar(query) is not None:
            raise ValidationError(f"A {scope.value} target for {symbol} already exists", field="symbol")


def _scope_display(db: Session, target: InvestmentTarget) -> str:
    if target.scope_type == TargetScope.ALL:
        return "All Accounts"
    account = db.get(Account, target.account_id) if target.account_id is not None else None
    return account.name if account is not None else f"Account #{target.account_id}"


def _symbol(value: str | None) -> str:
    symbol = (value or "").strip().upper()
    if not symbol:
        raise ValidationError("Symbol is required", field="symbol")
    return symbol


def _positive(amount: Decimal | None) -> Decimal:
    if amount is None:
        raise ValidationError("Target amount is required", field="target_amount")
    amount = Decimal(str(amount))
    if amount <= ZERO:
        raise ValidationError("Target amount must be positive", field="target_amount")
    return amount
