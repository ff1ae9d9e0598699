# backend/portfolio_tracker/services/analytics/benchmark.py
"""
Benchmark comparison: the portfolio against a market index.

This module contains functions for comparing portfolio performance
against a benchmark index (e.g., ^GSPC, 000300.SS):
- Index series: closes with percent change from the first close
- Beta: Systematic risk relative to the index
- Correlation / R-squared: How closely the portfolio tracks the index
- Tracking Error: Standard deviation of return differences
- Information Ratio: Active return per unit of tracking risk
- Capture Ratios: Up/Down market capture

Portfolio returns are taken from the stock-value series of the net value
curve, the same series the summary statistics use. Only dates present in
both the curve and the index closes are compared.

Like risk.py this module is pure: the service fetches the closes through
the market data gateway and passes them in.

Formulas:
    Beta = Cov(R_p, R_m) / Var(R_m)

    Correlation = Cov(R_p, R_m) / (σ_p * σ_m)

    Tracking Error = std(R_p - R_m) * sqrt(252)

    Information Ratio = mean(R_p - R_m) * 252 / Tracking Error
"""

import logging
import math
from collections.abc import Sequence
from decimal import Decimal
from statistics import mean, stdev

from portfolio_tracker.services.analytics.types import BenchmarkMetrics, IndexPoint, NetValuePoint
from portfolio_tracker.services.constants import (
    DISPLAY_PERCENTAGE_PRECISION,
    MIN_BENCHMARK_DATA_POINTS,
    PERCENTAGE_PRECISION,
    TRADING_DAYS_PER_YEAR,
    ZERO,
)
from portfolio_tracker.services.market_data.base import ClosePrice

logger = logging.getLogger(__name__)


# =============================================================================
# SERIES
# =============================================================================

def build_index_points(closes: Sequence[ClosePrice]) -> list[IndexPoint]:
    """
    Index closes with the change against the first close, in percent.

    A non-positive first close leaves every change at 0.
    """
    ordered = sorted(closes, key=lambda c: c.date)
    if not ordered:
        return []

    base = ordered[0].close
    points = []
    for close in ordered:
        change = ZERO
        if base > ZERO:
            change = ((close.close - base) / base * 100).quantize(DISPLAY_PERCENTAGE_PRECISION)
        points.append(IndexPoint(date=close.date, value=close.close, change_pct=change))
    return points


def align_returns(
        portfolio: Sequence[NetValuePoint],
        index: Sequence[IndexPoint],
) -> tuple[list[Decimal], list[Decimal]]:
    """
    Daily returns of both series over the dates they share.

    A pair of consecutive shared dates is skipped when either earlier
    value is zero or negative (zero-padded lead-in, fully liquidated day).

    Returns:
        (portfolio_returns, benchmark_returns), equal length
    """
    stock_values = {p.date: p.stock_value for p in portfolio}
    closes = {p.date: p.value for p in index}
    shared = sorted(stock_values.keys() & closes.keys())

    portfolio_returns: list[Decimal] = []
    benchmark_returns: list[Decimal] = []
    for previous, current in zip(shared, shared[1:]):
        p_prev, b_prev = stock_values[previous], closes[previous]
        if p_prev <= ZERO or b_prev <= ZERO:
            continue
        portfolio_returns.append((stock_values[current] - p_prev) / p_prev)
        benchmark_returns.append((closes[current] - b_prev) / b_prev)
    return portfolio_returns, benchmark_returns


def cumulative_return(returns: Sequence[Decimal]) -> Decimal:
    """Compounded return of a daily series: prod(1 + r) - 1."""
    growth = Decimal(1)
    for r in returns:
        growth *= 1 + r
    return growth - 1


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _covariance(x: list[float], y: list[float]) -> float:
    """Sample covariance between two series."""
    if len(x) != len(y) or len(x) < 2:
        return 0.0

    mean_x = mean(x)
    mean_y = mean(y)

    cov = sum((xi - mean_x) * (yi - mean_y) for xi, yi in zip(x, y))
    return cov / (len(x) - 1)


def _to_decimal(value: float) -> Decimal:
    return Decimal(str(value)).quantize(PERCENTAGE_PRECISION)


# =============================================================================
# BETA & CORRELATION
# =============================================================================

def calculate_beta(
        portfolio_returns: list[Decimal],
        benchmark_returns: list[Decimal],
) -> Decimal | None:
    """
    Beta (systematic risk).

    Interpretation:
        β > 1: More volatile than the index
        β < 1: Less volatile than the index
        β < 0: Moves opposite to the index (rare)

    Returns:
        Beta, or None with fewer than 2 returns or a flat index
    """
    if len(portfolio_returns) != len(benchmark_returns):
        logger.warning("Portfolio and benchmark return series must be same length")
        return None
    if len(portfolio_returns) < 2:
        return None

    p_returns = [float(r) for r in portfolio_returns]
    b_returns = [float(r) for r in benchmark_returns]

    var_benchmark = stdev(b_returns) ** 2
    if var_benchmark == 0:
        return None

    return _to_decimal(_covariance(p_returns, b_returns) / var_benchmark)


def calculate_correlation(
        portfolio_returns: list[Decimal],
        benchmark_returns: list[Decimal],
) -> Decimal | None:
    """Pearson correlation coefficient (-1 to 1), or None if undefined."""
    if len(portfolio_returns) != len(benchmark_returns) or len(portfolio_returns) < 2:
        return None

    p_returns = [float(r) for r in portfolio_returns]
    b_returns = [float(r) for r in benchmark_returns]

    std_p = stdev(p_returns)
    std_b = stdev(b_returns)
    if std_p == 0 or std_b == 0:
        return None

    return _to_decimal(_covariance(p_returns, b_returns) / (std_p * std_b))


# =============================================================================
# TRACKING ERROR & INFORMATION RATIO
# =============================================================================

def calculate_tracking_error(
        portfolio_returns: list[Decimal],
        benchmark_returns: list[Decimal],
) -> Decimal | None:
    """
    Annualized standard deviation of daily return differences.

    Lower tracking error = portfolio closely follows the index.
    """
    if len(portfolio_returns) != len(benchmark_returns) or len(portfolio_returns) < 2:
        return None

    differences = [float(p - b) for p, b in zip(portfolio_returns, benchmark_returns)]
    return _to_decimal(stdev(differences) * math.sqrt(TRADING_DAYS_PER_YEAR))


def calculate_information_ratio(
        portfolio_returns: list[Decimal],
        benchmark_returns: list[Decimal],
        tracking_error: Decimal | None,
) -> Decimal | None:
    """Annualized mean daily excess return per unit of tracking error."""
    if not tracking_error or not portfolio_returns:
        return None

    active = mean(float(p - b) for p, b in zip(portfolio_returns, benchmark_returns))
    return _to_decimal(active * TRADING_DAYS_PER_YEAR / float(tracking_error))


# =============================================================================
# CAPTURE RATIOS
# =============================================================================

def calculate_capture_ratios(
        portfolio_returns: list[Decimal],
        benchmark_returns: list[Decimal],
) -> tuple[Decimal | None, Decimal | None]:
    """
    Up Capture and Down Capture ratios.

    Ideal: high up capture, low down capture.

    Formula:
        Up Capture = (Σ R_p when R_m > 0) / (Σ R_m when R_m > 0)
        Down Capture = (Σ R_p when R_m < 0) / (Σ R_m when R_m < 0)
    """
    if len(portfolio_returns) != len(benchmark_returns):
        return None, None

    up_p = up_b = down_p = down_b = ZERO
    for p, b in zip(portfolio_returns, benchmark_returns):
        if b > ZERO:
            up_p += p
            up_b += b
        elif b < ZERO:
            down_p += p
            down_b += b

    up_capture = (up_p / up_b).quantize(PERCENTAGE_PRECISION) if up_b != ZERO else None
    down_capture = (down_p / down_b).quantize(PERCENTAGE_PRECISION) if down_b != ZERO else None
    return up_capture, down_capture


# =============================================================================
# COMBINED BENCHMARK CALCULATOR
# =============================================================================

class BenchmarkCalculator:
    """Calculator for benchmark comparison metrics."""

    @staticmethod
    def calculate_all(
            portfolio: Sequence[NetValuePoint],
            index: Sequence[IndexPoint],
            benchmark_symbol: str,
    ) -> BenchmarkMetrics:
        """
        All comparison metrics over the dates both series share.

        Returns are always reported when there is at least one aligned
        return; the regression-style metrics need MIN_BENCHMARK_DATA_POINTS.
        """
        result = BenchmarkMetrics(benchmark_symbol=benchmark_symbol)

        if not index:
            result.has_sufficient_data = False
            result.warnings.append(f"No index data for {benchmark_symbol}")
            return result

        portfolio_returns, benchmark_returns = align_returns(portfolio, index)
        result.data_points = len(portfolio_returns)

        if not portfolio_returns:
            result.has_sufficient_data = False
            result.warnings.append("No dates with both a portfolio value and an index close")
            return result

        result.portfolio_return = cumulative_return(portfolio_returns).quantize(PERCENTAGE_PRECISION)
        result.benchmark_return = cumulative_return(benchmark_returns).quantize(PERCENTAGE_PRECISION)
        result.excess_return = result.portfolio_return - result.benchmark_return

        if len(portfolio_returns) < MIN_BENCHMARK_DATA_POINTS:
            result.has_sufficient_data = False
            result.warnings.append(
                f"Insufficient data: need at least {MIN_BENCHMARK_DATA_POINTS} aligned returns"
            )
            return result

        result.beta = calculate_beta(portfolio_returns, benchmark_returns)

        result.correlation = calculate_correlation(portfolio_returns, benchmark_returns)
        if result.correlation is not None:
            result.r_squared = (result.correlation * result.correlation).quantize(PERCENTAGE_PRECISION)

        result.tracking_error = calculate_tracking_error(portfolio_returns, benchmark_returns)
        result.information_ratio = calculate_information_ratio(
            portfolio_returns, benchmark_returns, result.tracking_error,
        )

        result.up_capture, result.down_capture = calculate_capture_ratios(
            portfolio_returns, benchmark_returns,
        )
        return result
