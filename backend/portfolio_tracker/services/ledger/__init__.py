# backend/portfolio_tracker/services/ledger/__init__.py
"""
Ledger package: the trade log and the holdings derived from it.

Components:
- HoldingAggregator: Pure weighted-average-cost replay
- TransactionLog: Read-only trade log queries (TransactionSource)
- LedgerService: Transaction writes, holding rebuild, recompute trigger
- AccountService / CashAccountService: Account and cash CRUD
- TargetService: Investment targets with progress from the trade log
"""

from portfolio_tracker.services.ledger.accounts import AccountService, CashAccountService
from portfolio_tracker.services.ledger.aggregator import (
    HoldingAggregator,
    HoldingState,
    net_invested,
)
from portfolio_tracker.services.ledger.queries import TransactionLog
from portfolio_tracker.services.ledger.service import LedgerService, TransactionDraft
from portfolio_tracker.services.ledger.targets import TargetProgress, TargetService, TargetStatus

__all__ = [
    "HoldingAggregator",
    "HoldingState",
    "net_invested",
    "TransactionLog",
    "LedgerService",
    "TransactionDraft",
    "AccountService",
    "CashAccountService",
    "TargetService",
    "TargetProgress",
    "TargetStatus",
]
