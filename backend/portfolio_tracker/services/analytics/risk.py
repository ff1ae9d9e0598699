# backend/portfolio_tracker/services/analytics/risk.py
"""
Risk metric helpers.

Pure functions over Decimal series. Nothing here touches the database or
market data; AnalyticsService feeds them the stock-value series of the
net value curve.

Metrics:
    - Daily returns: (v_t - v_{t-1}) / v_{t-1}, skipping v_{t-1} <= 0
    - Volatility: population stdev of daily returns * sqrt(252)
    - Sharpe ratio: (mean - rf / 252) / stdev * sqrt(252)
    - Max drawdown: (peak - trough) / peak as a positive fraction

All calculations use Decimal arithmetic, including the square root
(Decimal.sqrt), to keep very small daily returns exact.
"""

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from portfolio_tracker.services.analytics.types import DrawdownResult
from portfolio_tracker.services.constants import (
    DEFAULT_RISK_FREE_RATE,
    TRADING_DAYS_PER_YEAR,
    ZERO,
)

logger = logging.getLogger(__name__)

# Minimum returns for a standard deviation
MIN_RETURNS_FOR_STDEV = 2

_ANNUALIZATION = Decimal(TRADING_DAYS_PER_YEAR).sqrt()


# =============================================================================
# RETURNS
# =============================================================================

def calculate_daily_returns(values: Sequence[Decimal]) -> list[Decimal]:
    """
    Simple returns between consecutive values.

    A pair whose earlier value is zero or negative has no defined return
    and is skipped (zero-padded lead-in days, fully liquidated days).

    Args:
        values: Series ordered by date

    Returns:
        List of returns, at most len(values) - 1 long
    """
    returns: list[Decimal] = []
    for previous, current in zip(values, values[1:]):
        if previous <= ZERO:
            continue
        returns.append((current - previous) / previous)
    return returns


# =============================================================================
# STATISTICS
# =============================================================================

def _decimal_mean(values: Sequence[Decimal]) -> Decimal | None:
    if not values:
        return None
    return sum(values, ZERO) / Decimal(len(values))


def _decimal_stdev(values: Sequence[Decimal]) -> Decimal | None:
    """
    Population standard deviation using pure Decimal arithmetic.

    Formula: sigma = sqrt(sum((x - mu)^2) / n)

    Returns:
        Standard deviation, or None with fewer than two values
    """
    if len(values) < MIN_RETURNS_FOR_STDEV:
        return None

    mean = _decimal_mean(values)
    variance = sum(((x - mean) ** 2 for x in values), ZERO) / Decimal(len(values))
    return variance.sqrt()


# =============================================================================
# VOLATILITY / SHARPE
# =============================================================================

def calculate_volatility(daily_returns: Sequence[Decimal]) -> Decimal | None:
    """
    Annualized volatility: stdev(daily_returns) * sqrt(252).

    Returns:
        Volatility as a fraction (0.18 = 18%), or None with fewer than two returns
    """
    std = _decimal_stdev(daily_returns)
    if std is None:
        return None
    return std * _ANNUALIZATION


def calculate_sharpe_ratio(
        daily_returns: Sequence[Decimal],
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
) -> Decimal | None:
    """
    Annualized Sharpe ratio from daily returns.

    sharpe = (mean(daily_returns) - risk_free_rate / 252) / stdev * sqrt(252)

    Args:
        daily_returns: Simple daily returns
        risk_free_rate: Annual risk-free rate

    Returns:
        Sharpe ratio, or None with fewer than two returns or zero stdev
    """
    std = _decimal_stdev(daily_returns)
    if std is None or std == ZERO:
        return None

    daily_rf = Decimal(str(risk_free_rate)) / Decimal(TRADING_DAYS_PER_YEAR)
    excess = _decimal_mean(daily_returns) - daily_rf
    return excess / std * _ANNUALIZATION


# =============================================================================
# DRAWDOWN
# =============================================================================

def calculate_max_drawdown(
        values: Sequence[Decimal],
        dates: Sequence[date] | None = None,
) -> DrawdownResult:
    """
    Deepest decline from a running peak.

    Values before the first positive one never set a peak, so zero-padded
    lead-in days do not register as a loss. A monotonically increasing
    series has a drawdown of 0.

    Args:
        values: Series ordered by date
        dates: Matching dates, used to report the peak and trough

    Returns:
        DrawdownResult with max_drawdown as a positive fraction
    """
    if dates is not None and len(dates) != len(values):
        raise ValueError("values and dates must have the same length")

    peak = ZERO
    peak_index: int | None = None
    worst = DrawdownResult()

    for i, value in enumerate(values):
        if value > peak:
            peak = value
            peak_index = i
            continue
        if peak_index is None:
            continue

        depth = (peak - value) / peak
        if depth > worst.max_drawdown:
            worst = DrawdownResult(
                max_drawdown=depth,
                peak_date=dates[peak_index] if dates is not None else None,
                trough_date=dates[i] if dates is not None else None,
            )

    return worst
