# backend/portfolio_tracker/services/analytics/__init__.py
"""
Analytics Service Package.

Architecture:
    analytics/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Data classes for results
    ├── risk.py                  # Pure statistics (returns, volatility, Sharpe, drawdown)
    ├── benchmark.py             # Index series and portfolio-vs-index metrics
    └── service.py               # AnalyticsService (curve builder, stats, daily P&L, comparison)

Usage:
    from portfolio_tracker.services.analytics import AnalyticsService

    service = AnalyticsService(engine, store, gateway)
    curve = service.get_net_value_curve(db, date(2024, 1, 1), date(2024, 12, 31))
    stats = service.calculate_stats(curve)
"""

from portfolio_tracker.services.analytics.benchmark import BenchmarkCalculator, build_index_points
from portfolio_tracker.services.analytics.risk import (
    calculate_daily_returns,
    calculate_max_drawdown,
    calculate_sharpe_ratio,
    calculate_volatility,
)
from portfolio_tracker.services.analytics.service import AnalyticsService, is_plausible_snapshot
from portfolio_tracker.services.analytics.types import (
    BenchmarkMetrics,
    ComparisonResult,
    IndexPoint,
    DailyPnL,
    DrawdownResult,
    NetValuePoint,
    PortfolioStats,
)

__all__ = [
    # Service
    "AnalyticsService",
    "is_plausible_snapshot",
    # Types
    "BenchmarkMetrics",
    "ComparisonResult",
    "DailyPnL",
    "DrawdownResult",
    "IndexPoint",
    "NetValuePoint",
    "PortfolioStats",
    # Benchmark
    "BenchmarkCalculator",
    "build_index_points",
    # Risk functions
    "calculate_daily_returns",
    "calculate_max_drawdown",
    "calculate_sharpe_ratio",
    "calculate_volatility",
]
