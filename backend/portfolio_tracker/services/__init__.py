# backend/portfolio_tracker/services/__init__.py
"""
Service layer for business logic.

This package contains the service layer which encapsulates business logic
separate from the API (router) layer. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)
- Are easily testable via dependency injection

Usage:
    from portfolio_tracker.services import LedgerService
    from portfolio_tracker.services import ValuationEngine
    from portfolio_tracker.services import RecomputeOrchestrator
    from portfolio_tracker.services import (
        ValidationError,
        InsufficientHoldingsError,
        DataUnavailableError,
    )

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Business constants and limits
    ├── protocols.py                 # Service interfaces (Protocol classes)
    ├── circuit_breaker.py           # Circuit breaker for external APIs
    ├── overview.py                  # Merged holdings, totals, today's P&L
    ├── ledger/                      # Trade log and holdings
    │   ├── aggregator.py            # Weighted-average-cost replay
    │   ├── queries.py               # Trade log reads
    │   ├── accounts.py              # Account and cash-account CRUD
    │   └── service.py               # Transaction writes
    ├── market_data/                 # Market data package
    │   ├── base.py                  # Abstract provider interface
    │   ├── yahoo.py                 # Yahoo Finance (primary)
    │   ├── alpha_vantage.py         # Alpha Vantage (secondary)
    │   └── gateway.py               # Cache, throttle and provider fallback
    ├── valuation/                   # Valuation engine
    │   ├── engine.py                # Live and historical valuation
    │   ├── holdings.py              # Point-in-time positions and cash
    │   └── types.py                 # Valuation data types
    ├── snapshots/                   # Snapshot persistence and recompute
    │   ├── store.py                 # Raw captures + daily mean
    │   ├── orchestrator.py          # Background recompute job slot
    │   └── scheduler.py             # Market open/close captures
    └── analytics/                   # Analytics engine
        ├── service.py               # Curve builder, stats, daily P&L
        ├── types.py                 # Analytics data types
        └── risk.py                  # Returns, volatility, Sharpe, drawdown
"""

# Exceptions
from portfolio_tracker.services.exceptions import (
    # Base exceptions
    ServiceError,
    # Ledger exceptions
    ValidationError,
    InsufficientHoldingsError,
    NotFoundError,
    RecomputeInProgressError,
    # Market data exceptions
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
    DataUnavailableError,
)
# Market Data
from portfolio_tracker.services.market_data import (
    MarketDataProvider,
    MarketDataGateway,
    YahooFinanceProvider,
    AlphaVantageProvider,
)
# Ledger
from portfolio_tracker.services.ledger import (
    AccountService,
    CashAccountService,
    HoldingAggregator,
    LedgerService,
    TransactionDraft,
    TransactionLog,
)
# Valuation
from portfolio_tracker.services.valuation import ValuationEngine, ValuationMode, ValuationResult
# Snapshots
from portfolio_tracker.services.snapshots import (
    RecomputeOrchestrator,
    SnapshotScheduler,
    SnapshotStore,
)
# Analytics
from portfolio_tracker.services.analytics import AnalyticsService
# Overview
from portfolio_tracker.services.overview import OverviewService, PortfolioOverview

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    # Market Data
    "MarketDataProvider",
    "MarketDataGateway",
    "YahooFinanceProvider",
    "AlphaVantageProvider",
    # Ledger
    "AccountService",
    "CashAccountService",
    "HoldingAggregator",
    "LedgerService",
    "TransactionDraft",
    "TransactionLog",
    # Valuation
    "ValuationEngine",
    "ValuationMode",
    "ValuationResult",
    # Snapshots
    "RecomputeOrchestrator",
    "SnapshotScheduler",
    "SnapshotStore",
    # Analytics
    "AnalyticsService",
    # Overview
    "OverviewService",
    "PortfolioOverview",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    # Base
    "ServiceError",
    # Ledger
    "ValidationError",
    "InsufficientHoldingsError",
    "NotFoundError",
    "RecomputeInProgressError",
    # Market data
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "DataUnavailableError",
]
