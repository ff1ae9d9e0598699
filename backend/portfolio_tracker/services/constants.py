# backend/portfolio_tracker/services/constants.py
"""
Centralized constants for the portfolio tracker services.

Runtime-tunable values (cache TTL, throttle interval, retention window)
live in ``portfolio_tracker.config.Settings``. The values here are fixed
business rules shared by several services.

Usage:
    from portfolio_tracker.services.constants import (
        TRADING_DAYS_PER_YEAR,
        PRICE_FALLBACK_DAYS,
    )
"""

from decimal import Decimal


# =============================================================================
# FINANCIAL CALENDAR CONSTANTS
# =============================================================================

# Used for annualizing volatility and the Sharpe ratio
TRADING_DAYS_PER_YEAR: int = 252


# =============================================================================
# RISK-FREE RATE
# =============================================================================

# Annual rate; the daily rate is this divided by TRADING_DAYS_PER_YEAR
DEFAULT_RISK_FREE_RATE: Decimal = Decimal("0.02")


# =============================================================================
# BENCHMARK COMPARISON
# =============================================================================

# Calendar days covered by a comparison request without a start date
DEFAULT_COMPARISON_DAYS: int = 90

# Aligned daily returns needed before beta, correlation and tracking error are reported
MIN_BENCHMARK_DATA_POINTS: int = 10


# =============================================================================
# HISTORICAL PRICE FALLBACK
# =============================================================================

# Calendar days to walk back for a prior close when a date has no usable price
PRICE_FALLBACK_DAYS: int = 30

# A historical mid price outside [avg_cost * LOW, avg_cost * HIGH] is rejected
PRICE_SANITY_LOW_MULTIPLIER: Decimal = Decimal("0.1")
PRICE_SANITY_HIGH_MULTIPLIER: Decimal = Decimal("10")


# =============================================================================
# SNAPSHOT SANITY
# =============================================================================

# Snapshots with market value or cash above this are treated as corrupt
MAX_PLAUSIBLE_VALUE: Decimal = Decimal("1e10")


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Consecutive provider failures before the gateway skips that provider
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds before a tripped provider is tried again
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# Calls allowed through while testing recovery
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 1

# Only failures within this window count toward the threshold
CIRCUIT_BREAKER_FAILURE_WINDOW: float = 300.0


# =============================================================================
# EXTERNAL API TIMEOUT SETTINGS
# =============================================================================

EXTERNAL_API_TIMEOUT_SECONDS: int = 10


# =============================================================================
# MARKET DATA CACHE
# =============================================================================

# Entries kept by the gateway cache; the oldest are evicted first
MARKET_DATA_CACHE_MAX_SIZE: int = 5000


# =============================================================================
# DECIMAL PRECISION CONSTANTS
# =============================================================================

# Currency amounts: 2 decimal places
CURRENCY_PRECISION: Decimal = Decimal("0.01")

# Share quantities and per-share costs: 8 decimal places
SHARE_PRECISION: Decimal = Decimal("0.00000001")

# Intermediate ratios (drawdown, volatility)
PERCENTAGE_PRECISION: Decimal = Decimal("0.0001")

# Display percentages: 2 decimal places
DISPLAY_PERCENTAGE_PRECISION: Decimal = Decimal("0.01")


# =============================================================================
# UTILITY CONSTANTS
# =============================================================================

ZERO: Decimal = Decimal("0")


# =============================================================================
# RATE LIMITING CONSTANTS
# =============================================================================
# Format follows slowapi/limits syntax: "100/minute", "10/hour", etc.

RATE_LIMIT_DEFAULT: str = "100/minute"

RATE_LIMIT_WRITE: str = "30/minute"

# Endpoints that fan out to market data providers
RATE_LIMIT_MARKET: str = "10/minute"

RATE_LIMIT_HEALTH: str = "300/minute"

RATE_LIMIT_ANALYTICS: str = "30/minute"

# Full snapshot rebuild replays the whole history
RATE_LIMIT_REBUILD: str = "2/minute"


# =============================================================================
# RESOURCE LIMIT CONSTANTS
# =============================================================================

# Maximum date range for curve and stats endpoints (days)
MAX_HISTORY_DAYS: int = 365 * 20 + 5

MAX_LIST_LIMIT: int = 1000
