# backend/portfolio_tracker/services/analytics/types.py
"""
Data types for the Analytics Service.

All types use Decimal for financial precision.

Architecture:
    - NetValuePoint: One day on the net value curve
    - DrawdownResult: Deepest peak-to-trough decline of a series
    - PortfolioStats: Return and risk summary over a curve
    - DailyPnL: One day of the daily profit-and-loss view
    - IndexPoint, BenchmarkMetrics, ComparisonResult: Portfolio vs index
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal


ZERO = Decimal("0")


# =============================================================================
# CURVE
# =============================================================================

@dataclass(frozen=True)
class NetValuePoint:
    """
    A single point on the net value curve.

    Attributes:
        date: Calendar date of the point
        total_value: Stocks plus cash
        cost_basis: Net invested in stocks plus cash counted on the date
        stock_value: total_value - cash_value
        cash_value: Cash counted on the date
        stock_cost: Net invested in stocks (buys with fees minus sell proceeds)
        pnl_pct: (stock_value - stock_cost) / base stock cost * 100
        is_live: True for today's point built from a live valuation
    """
    date: date
    total_value: Decimal
    cost_basis: Decimal
    stock_value: Decimal
    cash_value: Decimal
    stock_cost: Decimal
    pnl_pct: Decimal = ZERO
    is_live: bool = False

    @property
    def pnl(self) -> Decimal:
        return self.stock_value - self.stock_cost


# =============================================================================
# RISK
# =============================================================================

@dataclass(frozen=True)
class DrawdownResult:
    """
    Deepest decline from a running peak.

    Attributes:
        max_drawdown: (peak - trough) / peak as a positive fraction (0.15 = 15%)
        peak_date: Date of the peak before the deepest trough
        trough_date: Date of the deepest trough
    """
    max_drawdown: Decimal = ZERO
    peak_date: date | None = None
    trough_date: date | None = None

    @property
    def max_drawdown_pct(self) -> Decimal:
        return self.max_drawdown * 100


@dataclass
class PortfolioStats:
    """
    Return and risk summary for a date range.

    Attributes:
        start_date: First point of the curve used
        end_date: Last point of the curve used
        total_return: last.stock_value - last.stock_cost
        total_return_pct: total_return against the base stock cost, in percent
        max_drawdown: Positive fraction on the stock-value series
        max_drawdown_pct: max_drawdown * 100
        peak_date: Peak before the deepest trough
        trough_date: Deepest trough
        volatility: Annualized population stdev of daily returns (fraction)
        sharpe_ratio: Annualized Sharpe ratio, None without enough data
        data_points: Curve points used
        warnings: Data-quality notes for the caller
    """
    start_date: date | None = None
    end_date: date | None = None
    total_return: Decimal = ZERO
    total_return_pct: Decimal = ZERO
    max_drawdown: Decimal = ZERO
    max_drawdown_pct: Decimal = ZERO
    peak_date: date | None = None
    trough_date: date | None = None
    volatility: Decimal | None = None
    sharpe_ratio: Decimal | None = None
    data_points: int = 0
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# DAILY P&L
# =============================================================================

@dataclass(frozen=True)
class DailyPnL:
    """
    Change of the daily snapshot total against the previous daily snapshot.

    Attributes:
        date: Snapshot date
        total_value: Market value plus cash
        market_value: Stocks only
        cash_balance: Cash only
        change: total_value - previous total (None for the first row)
        change_pct: change / previous total * 100 (None when not computable)
    """
    date: date
    total_value: Decimal
    market_value: Decimal
    cash_balance: Decimal
    change: Decimal | None = None
    change_pct: Decimal | None = None


# =============================================================================
# BENCHMARK COMPARISON
# =============================================================================

@dataclass(frozen=True)
class IndexPoint:
    """
    One close of the benchmark index.

    Attributes:
        date: Trading date
        value: Index close
        change_pct: Change against the first close in range, in percent
    """
    date: date
    value: Decimal
    change_pct: Decimal = ZERO


@dataclass
class BenchmarkMetrics:
    """
    Comparison metrics against a benchmark index.

    Returns are stock-value returns of the portfolio and close-to-close
    returns of the index, over the dates both series have.

    Attributes:
        benchmark_symbol: Index ticker (e.g., "^GSPC")
        portfolio_return: Cumulative return over the aligned dates (fraction)
        benchmark_return: Cumulative index return over the aligned dates (fraction)
        excess_return: portfolio_return - benchmark_return
        beta: Cov(Rp, Rm) / Var(Rm)
        correlation: Pearson correlation of daily returns (-1 to 1)
        r_squared: correlation squared
        tracking_error: Annualized stdev of daily return differences
        information_ratio: Annualized excess return / tracking_error
        up_capture: Sum of Rp / sum of Rm over days the index rose
        down_capture: Sum of Rp / sum of Rm over days the index fell
        data_points: Aligned daily returns used
        has_sufficient_data: False when too few aligned returns were available
        warnings: Data-quality notes for the caller
    """
    benchmark_symbol: str
    portfolio_return: Decimal | None = None
    benchmark_return: Decimal | None = None
    excess_return: Decimal | None = None
    beta: Decimal | None = None
    correlation: Decimal | None = None
    r_squared: Decimal | None = None
    tracking_error: Decimal | None = None
    information_ratio: Decimal | None = None
    up_capture: Decimal | None = None
    down_capture: Decimal | None = None
    data_points: int = 0
    has_sufficient_data: bool = True
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ComparisonResult:
    """Net value curve and index series over the same range."""
    start_date: date
    end_date: date
    index_symbol: str
    portfolio: list[NetValuePoint]
    index: list[IndexPoint]
    metrics: BenchmarkMetrics
