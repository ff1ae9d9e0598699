# backend/portfolio_tracker/services/ledger/service.py
"""
Ledger service: the only write path for transactions.

Every mutation follows the same sequence:

1. Validate fields and referenced rows (ValidationError / NotFoundError)
2. Sell guard against the persisted holding (InsufficientHoldingsError)
3. Write the transaction, apply cash-account adjustments
4. Rebuild the affected holdings from the full trade log
5. Commit
6. Ask the recompute trigger to refresh snapshots from the earliest
   affected date. Best effort: a failure here is logged, never raised,
   because the write has already committed.

Nothing is written when steps 1 or 2 fail.

Usage:
    service = LedgerService(gateway=gateway, trigger=orchestrator)
    txn = service.create_transaction(db, TransactionDraft(...))
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from portfolio_tracker.models import Account, CashAccount, Holding, Transaction, TransactionType
from portfolio_tracker.services.constants import ZERO
from portfolio_tracker.services.exceptions import (
    InsufficientHoldingsError,
    NotFoundError,
    ValidationError,
)
from portfolio_tracker.services.ledger.accounts import CashAccountService
from portfolio_tracker.services.ledger.aggregator import HoldingAggregator, HoldingState
from portfolio_tracker.services.ledger.queries import TransactionLog
from portfolio_tracker.utils.date_utils import today_in_market

if TYPE_CHECKING:
    from portfolio_tracker.services.protocols import PriceGateway, RecomputeTrigger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionDraft:
    """Fields of a transaction before validation."""

    account_id: int
    symbol: str
    transaction_type: TransactionType | str
    price: Decimal
    quantity: Decimal
    trade_date: date
    fee: Decimal = ZERO
    currency: str = "USD"
    name: str | None = None
    cash_account_id: int | None = None


_UPDATABLE_FIELDS = frozenset(TransactionDraft.__dataclass_fields__)


class LedgerService:
    """
    Transaction CRUD with holding maintenance and recompute triggering.

    Args:
        gateway: Used to look up a display name when none is given
        trigger: Receives the earliest affected date after each write
        transaction_log: Trade log queries
        aggregator: Weighted-average-cost replay
        today: Returns the trading-calendar "today" (injectable for tests)
    """

    def __init__(
            self,
            gateway: PriceGateway | None = None,
            trigger: RecomputeTrigger | None = None,
            transaction_log: TransactionLog | None = None,
            aggregator: HoldingAggregator | None = None,
            cash_accounts: CashAccountService | None = None,
            today: Callable[[], date] = today_in_market,
    ) -> None:
        self._gateway = gateway
        self._trigger = trigger
        self._log = transaction_log or TransactionLog()
        self._aggregator = aggregator or HoldingAggregator()
        self._cash = cash_accounts or CashAccountService()
        self._today = today

    def set_trigger(self, trigger: RecomputeTrigger | None) -> None:
        self._trigger = trigger

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    def create_transaction(self, db: Session, draft: TransactionDraft) -> Transaction:
        """
        Record a trade.

        Raises:
            ValidationError: Malformed fields
            NotFoundError: Unknown account or cash account
            InsufficientHoldingsError: Sell larger than the current holding
        """
        draft = self._validate(db, draft)

        if draft.transaction_type == TransactionType.SELL:
            available = self._persisted_quantity(db, draft.symbol, draft.account_id)
            self._check_sell(draft, available)

        draft = self._with_name(draft)

        txn = Transaction(
            account_id=draft.account_id,
            symbol=draft.symbol,
            name=draft.name,
            transaction_type=draft.transaction_type,
            trade_date=draft.trade_date,
            price=draft.price,
            quantity=draft.quantity,
            fee=draft.fee,
            currency=draft.currency,
            cash_account_id=draft.cash_account_id,
        )
        db.add(txn)
        db.flush()

        self._apply_cash(db, txn, reverse=False)
        self.recompute_holding(db, txn.symbol, txn.account_id)

        db.commit()
        db.refresh(txn)
        logger.info(
            f"Created transaction {txn.id}: {txn.transaction_type.value} "
            f"{txn.quantity} {txn.symbol} @ {txn.price} on {txn.trade_date}"
        )

        self._trigger_recompute(txn.trade_date)
        return txn

    def update_transaction(self, db: Session, transaction_id: int, changes: dict[str, Any]) -> Transaction:
        """
        Apply a partial update.

        The sell guard sees the persisted holding with this transaction's
        old effect removed. When the symbol or account changes, both the
        old and the new holding are rebuilt.
        """
        txn = self.get_transaction(db, transaction_id)

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        old = _draft_of(txn)
        draft = self._validate(db, replace(old, **changes))

        if draft.transaction_type == TransactionType.SELL:
            available = self._persisted_quantity(db, draft.symbol, draft.account_id)
            if (old.symbol, old.account_id) == (draft.symbol, draft.account_id):
                if old.transaction_type == TransactionType.BUY:
                    available -= old.quantity
                else:
                    available += old.quantity
            self._check_sell(draft, max(available, ZERO))

        if draft.symbol != old.symbol and "name" not in changes:
            draft = replace(draft, name=None)
        draft = self._with_name(draft)

        self._apply_cash(db, txn, reverse=True)

        txn.account_id = draft.account_id
        txn.symbol = draft.symbol
        txn.name = draft.name
        txn.transaction_type = draft.transaction_type
        txn.trade_date = draft.trade_date
        txn.price = draft.price
        txn.quantity = draft.quantity
        txn.fee = draft.fee
        txn.currency = draft.currency
        txn.cash_account_id = draft.cash_account_id
        db.flush()

        self._apply_cash(db, txn, reverse=False)

        self.recompute_holding(db, draft.symbol, draft.account_id)
        if (old.symbol, old.account_id) != (draft.symbol, draft.account_id):
            self.recompute_holding(db, old.symbol, old.account_id)

        db.commit()
        db.refresh(txn)
        logger.info(f"Updated transaction {txn.id}")

        self._trigger_recompute(min(old.trade_date, draft.trade_date))
        return txn

    def delete_transaction(self, db: Session, transaction_id: int) -> None:
        """Delete a trade, revert its cash effect and rebuild its holding."""
        txn = self.get_transaction(db, transaction_id)
        symbol, account_id, trade_date = txn.symbol, txn.account_id, txn.trade_date

        self._apply_cash(db, txn, reverse=True)
        db.delete(txn)
        db.flush()

        self.recompute_holding(db, symbol, account_id)
        db.commit()
        logger.info(f"Deleted transaction {transaction_id} ({symbol}, account {account_id})")

        self._trigger_recompute(trade_date)

    # =========================================================================
    # HOLDINGS
    # =========================================================================

    def recompute_holding(self, db: Session, symbol: str, account_id: int) -> Holding | None:
        """
        Rebuild one holding row from the full trade log.

        The row is deleted when no transactions remain. ``last_price`` and
        ``name`` survive the rebuild. Does not commit.
        """
        transactions = self._log.transactions_for_pair(db, symbol, account_id)
        holding = db.get(Holding, (symbol, account_id))

        if not transactions:
            if holding is not None:
                db.delete(holding)
                db.flush()
                logger.info(f"Removed holding {symbol} in account {account_id}: no transactions left")
            return None

        state: HoldingState = self._aggregator.replay(transactions)
        latest = transactions[-1]

        if holding is None:
            holding = Holding(
                symbol=symbol,
                account_id=account_id,
                last_price=latest.price,
                currency=latest.currency,
            )
            db.add(holding)

        holding.quantity = state.quantity
        holding.avg_cost = state.avg_cost
        holding.name = holding.name or next((t.name for t in reversed(transactions) if t.name), None)
        holding.currency = latest.currency or holding.currency
        if not holding.last_price:
            holding.last_price = latest.price
        db.flush()

        logger.debug(f"Recomputed holding {symbol}/{account_id}: qty={state.quantity}, avg={state.avg_cost}")
        return holding

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    def get_transaction(self, db: Session, transaction_id: int) -> Transaction:
        txn = db.get(Transaction, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    def list_transactions(
            self,
            db: Session,
            account_ids: list[int] | None = None,
            symbol: str | None = None,
            skip: int = 0,
            limit: int = 100,
    ) -> tuple[list[Transaction], int]:
        """
        Newest trades first, with the total count for pagination.

        Returns:
            (page of transactions, total matching)
        """
        query = select(Transaction)
        if account_ids:
            query = query.where(Transaction.account_id.in_(account_ids))
        if symbol:
            query = query.where(Transaction.symbol == symbol.strip().upper())

        total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
        page = db.scalars(
            query.order_by(Transaction.trade_date.desc(), Transaction.id.desc())
            .offset(skip)
            .limit(limit)
        ).all()
        return list(page), total

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _validate(self, db: Session, draft: TransactionDraft) -> TransactionDraft:
        symbol = (draft.symbol or "").strip().upper()
        if not symbol:
            raise ValidationError("Symbol is required", field="symbol")

        try:
            transaction_type = TransactionType(str(getattr(draft.transaction_type, "value", draft.transaction_type)).upper())
        except ValueError:
            raise ValidationError("Transaction type must be BUY or SELL", field="transaction_type") from None

        price = _to_decimal(draft.price, "price")
        quantity = _to_decimal(draft.quantity, "quantity")
        fee = _to_decimal(draft.fee if draft.fee is not None else ZERO, "fee")

        if price <= ZERO:
            raise ValidationError("Price must be positive", field="price")
        if quantity <= ZERO:
            raise ValidationError("Quantity must be positive", field="quantity")
        if fee < ZERO:
            raise ValidationError("Fee cannot be negative", field="fee")

        if not isinstance(draft.trade_date, date):
            raise ValidationError("Trade date is required", field="trade_date")
        today = self._today()
        if draft.trade_date > today:
            raise ValidationError(
                f"Trade date {draft.trade_date} is in the future (today is {today})",
                field="trade_date",
            )

        if db.get(Account, draft.account_id) is None:
            raise NotFoundError("Account", draft.account_id)
        if draft.cash_account_id is not None and db.get(CashAccount, draft.cash_account_id) is None:
            raise NotFoundError("CashAccount", draft.cash_account_id)

        currency = (draft.currency or "USD").strip().upper()
        name = draft.name.strip() if draft.name and draft.name.strip() else None

        return replace(
            draft,
            symbol=symbol,
            transaction_type=transaction_type,
            price=price,
            quantity=quantity,
            fee=fee,
            currency=currency,
            name=name,
        )

    def _persisted_quantity(self, db: Session, symbol: str, account_id: int) -> Decimal:
        holding = db.get(Holding, (symbol, account_id))
        return holding.quantity if holding is not None else ZERO

    @staticmethod
    def _check_sell(draft: TransactionDraft, available: Decimal) -> None:
        if draft.quantity > available:
            raise InsufficientHoldingsError(
                symbol=draft.symbol,
                account_id=draft.account_id,
                requested=draft.quantity,
                available=available,
            )

    def _with_name(self, draft: TransactionDraft) -> TransactionDraft:
        """Fill in the display name from the gateway when missing."""
        if draft.name or self._gateway is None:
            return draft
        try:
            name = self._gateway.get_symbol_name(draft.symbol)
        except Exception as e:
            logger.warning(f"Name lookup failed for {draft.symbol}: {e}")
            return draft
        if name:
            logger.info(f"Resolved name for {draft.symbol}: {name}")
            return replace(draft, name=name)
        logger.warning(f"No display name found for {draft.symbol}")
        return draft

    def _apply_cash(self, db: Session, txn: Transaction, reverse: bool) -> None:
        """Debit buys (price * qty + fee) and credit sells (price * qty - fee)."""
        if txn.cash_account_id is None:
            return

        gross = txn.price * txn.quantity
        if txn.transaction_type == TransactionType.BUY:
            delta = -(gross + txn.fee)
        else:
            delta = gross - txn.fee
        if reverse:
            delta = -delta

        self._cash.adjust_balance(db, txn.cash_account_id, delta)

    def _trigger_recompute(self, start_date: date) -> None:
        if self._trigger is None:
            return
        if start_date > self._today():
            logger.debug(f"Skipping recompute trigger for future date {start_date}")
            return
        try:
            self._trigger.submit(start_date)
        except Exception:
            logger.error(f"Snapshot recompute from {start_date} could not be started", exc_info=True)


def _draft_of(txn: Transaction) -> TransactionDraft:
    return TransactionDraft(
        account_id=txn.account_id,
        symbol=txn.symbol,
        transaction_type=txn.transaction_type,
        price=txn.price,
        quantity=txn.quantity,
        trade_date=txn.trade_date,
        fee=txn.fee,
        currency=txn.currency,
        name=txn.name,
        cash_account_id=txn.cash_account_id,
    )


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", field=field)
