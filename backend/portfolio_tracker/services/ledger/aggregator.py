# backend/portfolio_tracker/services/ledger/aggregator.py
"""
Weighted-average-cost replay of the trade log.

Pure functions over transaction-like objects (anything with
transaction_type, price, quantity, fee, trade_date and id). No database
access, so the same code serves the persisted holdings, point-in-time
reconstruction in the valuation engine, and the sell guard.

Rules:
    BUY   avg_cost = (q * avg_cost + qty * price + fee) / (q + qty)
          q       += qty
    SELL  q       -= qty          (avg_cost unchanged)
    q == 0 resets avg_cost to 0

Replay order is (trade_date, id) so same-day trades apply in entry order.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from portfolio_tracker.models import TransactionType
from portfolio_tracker.services.constants import SHARE_PRECISION, ZERO

logger = logging.getLogger(__name__)


class TradeLike(Protocol):
    id: int | None
    trade_date: date
    transaction_type: TransactionType
    price: Decimal
    quantity: Decimal
    fee: Decimal


@dataclass(frozen=True)
class HoldingState:
    """
    Position reached after replaying some trades.

    Attributes:
        quantity: Shares held, never negative
        avg_cost: Weighted average cost per share, fee included
        trade_count: Number of trades replayed
    """

    quantity: Decimal = ZERO
    avg_cost: Decimal = ZERO
    trade_count: int = 0

    @property
    def has_position(self) -> bool:
        return self.quantity > ZERO

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.avg_cost


class HoldingAggregator:
    """
    Replays buys and sells into a HoldingState.

    Example:
        state = HoldingAggregator().replay(transactions)
        state.quantity, state.avg_cost
    """

    def apply(
            self,
            state: HoldingState,
            transaction_type: TransactionType,
            price: Decimal,
            quantity: Decimal,
            fee: Decimal = ZERO,
    ) -> HoldingState:
        """Apply one trade and return the new state."""
        fee = fee or ZERO

        if transaction_type == TransactionType.BUY:
            new_quantity = state.quantity + quantity
            total_cost = state.quantity * state.avg_cost + quantity * price + fee
            avg_cost = (total_cost / new_quantity).quantize(SHARE_PRECISION) if new_quantity > ZERO else ZERO
            return HoldingState(new_quantity, avg_cost, state.trade_count + 1)

        new_quantity = state.quantity - quantity
        if new_quantity < ZERO:
            # Only reachable for data written before the sell guard existed
            logger.warning(
                f"Sell of {quantity} exceeds held {state.quantity}; clamping quantity to 0"
            )
            new_quantity = ZERO

        avg_cost = state.avg_cost if new_quantity > ZERO else ZERO
        return HoldingState(new_quantity, avg_cost, state.trade_count + 1)

    def replay(self, transactions: Iterable[TradeLike]) -> HoldingState:
        """Replay trades for one (symbol, account) pair in (trade_date, id) order."""
        state = HoldingState()
        for txn in sort_trades(transactions):
            state = self.apply(state, txn.transaction_type, txn.price, txn.quantity, txn.fee)
        return state

    def replay_grouped(self, transactions: Iterable) -> dict[tuple[str, int], HoldingState]:
        """
        Replay a mixed trade list into one state per (symbol, account_id).

        Used for point-in-time reconstruction over many pairs at once.
        """
        grouped: dict[tuple[str, int], list] = defaultdict(list)
        for txn in transactions:
            grouped[(txn.symbol, txn.account_id)].append(txn)
        return {key: self.replay(txns) for key, txns in grouped.items()}


def sort_trades(transactions: Iterable[TradeLike]) -> list[TradeLike]:
    return sorted(transactions, key=lambda t: (t.trade_date, t.id or 0))


def net_invested(transactions: Iterable[TradeLike]) -> Decimal:
    """
    Net cash put into stocks: sum of buys (price * qty + fee) minus sum of
    sells (price * qty). Sell fees are not subtracted.
    """
    total = ZERO
    for txn in transactions:
        if txn.transaction_type == TransactionType.BUY:
            total += txn.price * txn.quantity + (txn.fee or ZERO)
        else:
            total -= txn.price * txn.quantity
    return total
