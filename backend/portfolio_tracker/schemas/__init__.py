# backend/portfolio_tracker/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

This package contains all Pydantic schemas organized by domain:
- accounts: Account and cash-account CRUD
- analytics: Net value curve, stats, daily P&L, index comparison
- errors: Error response formats
- overview: Merged holdings, totals and distribution
- market_data: Single-symbol quote
- pagination: Pagination metadata for list endpoints
- snapshots: Live capture, rebuild, recompute status
- targets: Investment targets with progress
- transactions: Transaction CRUD
- validators: Reusable validation functions (symbol, currency, date range)

Usage:
    from portfolio_tracker.schemas import TransactionCreate, TransactionResponse
    from portfolio_tracker.schemas import OverviewResponse
    from portfolio_tracker.schemas import ErrorDetail
"""

from portfolio_tracker.schemas.accounts import (
    AccountCreate,
    AccountUpdate,
    AccountResponse,
    CashAccountCreate,
    CashAccountUpdate,
    CashAccountResponse,
)
from portfolio_tracker.schemas.analytics import (
    NetValuePointResponse,
    NetValueCurveResponse,
    PortfolioStatsResponse,
    DailyPnLResponse,
    DailyPnLListResponse,
    IndexPointResponse,
    BenchmarkMetricsResponse,
    ComparisonResponse,
)
from portfolio_tracker.schemas.errors import (
    ErrorDetail,
    FieldError,
    ValidationErrorDetail,
)
from portfolio_tracker.schemas.overview import (
    HoldingSummaryResponse,
    HoldingWeightResponse,
    OverviewResponse,
)
from portfolio_tracker.schemas.market_data import QuoteResponse
from portfolio_tracker.schemas.pagination import PaginationMeta
from portfolio_tracker.schemas.snapshots import (
    RawSnapshotResponse,
    PositionValueResponse,
    ValuationResponse,
    RecomputeReportResponse,
    RecomputeProgressResponse,
    RecomputeStatusResponse,
)
from portfolio_tracker.schemas.targets import (
    TargetCreate,
    TargetUpdate,
    TargetResponse,
)
from portfolio_tracker.schemas.transactions import (
    TransactionCreate,
    TransactionUpdate,
    TransactionResponse,
    TransactionListResponse,
)

__all__ = [
    # Accounts
    "AccountCreate",
    "AccountUpdate",
    "AccountResponse",
    "CashAccountCreate",
    "CashAccountUpdate",
    "CashAccountResponse",
    # Analytics
    "NetValuePointResponse",
    "NetValueCurveResponse",
    "PortfolioStatsResponse",
    "DailyPnLResponse",
    "DailyPnLListResponse",
    "IndexPointResponse",
    "BenchmarkMetricsResponse",
    "ComparisonResponse",
    # Errors
    "ErrorDetail",
    "FieldError",
    "ValidationErrorDetail",
    # Overview
    "HoldingSummaryResponse",
    "HoldingWeightResponse",
    "OverviewResponse",
    # Market data
    "QuoteResponse",
    # Pagination
    "PaginationMeta",
    # Snapshots
    "RawSnapshotResponse",
    "PositionValueResponse",
    "ValuationResponse",
    "RecomputeReportResponse",
    "RecomputeProgressResponse",
    "RecomputeStatusResponse",
    # Targets
    "TargetCreate",
    "TargetUpdate",
    "TargetResponse",
    # Transactions
    "TransactionCreate",
    "TransactionUpdate",
    "TransactionResponse",
    "TransactionListResponse",
]
