# backend/portfolio_tracker/routers/__init__.py
"""
API routers for the Portfolio Tracker.

Each router handles a specific domain:
- accounts: Brokerage accounts
- cash_accounts: Cash balances held in accounts
- transactions: Buy/sell transaction records
- overview: Current holdings and today's P&L
- analytics: Net value curve, statistics, daily P&L, index comparison
- snapshots: Live capture, background recompute, full rebuild
- targets: Investment targets and their progress
- holdings: Holdings distribution
- quotes: Single-symbol quote
"""

from portfolio_tracker.routers.accounts import router as accounts_router
from portfolio_tracker.routers.analytics import router as analytics_router
from portfolio_tracker.routers.cash_accounts import router as cash_accounts_router
from portfolio_tracker.routers.holdings import router as holdings_router
from portfolio_tracker.routers.overview import router as overview_router
from portfolio_tracker.routers.quotes import router as quotes_router
from portfolio_tracker.routers.snapshots import router as snapshots_router
from portfolio_tracker.routers.targets import router as targets_router
from portfolio_tracker.routers.transactions import router as transactions_router

__all__ = [
    "accounts_router",
    "cash_accounts_router",
    "transactions_router",
    "overview_router",
    "analytics_router",
    "snapshots_router",
    "targets_router",
    "holdings_router",
    "quotes_router",
]
