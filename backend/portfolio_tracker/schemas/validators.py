# backend/portfolio_tracker/schemas/validators.py
"""
Reusable validation functions for Pydantic schemas.

This module provides:
- Symbol validation and normalization
- Currency code validation
- Date range validation for analytics queries

The service layer re-validates everything it writes; these functions
give API clients an early 422 with a precise message.
"""

import re
from datetime import date

from portfolio_tracker.services.constants import MAX_HISTORY_DAYS

# =============================================================================
# CONSTANTS
# =============================================================================

# Symbol: 1-20 chars, alphanumeric + dots + dashes + carets (BRK.B, BF-B, ^SPX)
SYMBOL_PATTERN = re.compile(r'^[\^]?[A-Z0-9][A-Z0-9.\-]{0,19}$')

# Currency: ISO 4217 format (3 uppercase letters)
CURRENCY_PATTERN = re.compile(r'^[A-Z]{3}$')

MIN_VALID_DATE = date(1970, 1, 1)


# =============================================================================
# SYMBOL VALIDATION
# =============================================================================

def validate_symbol(value: str) -> str:
    """
    Validate and normalize a ticker symbol.

    Returns:
        Normalized symbol (uppercase, trimmed)

    Raises:
        ValueError: If the symbol format is invalid
    """
    if not value or not value.strip():
        raise ValueError("Symbol cannot be empty")

    normalized = value.strip().upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid symbol format: '{normalized}'. "
            "Symbol must be alphanumeric, may include dots (.) or dashes (-) or start with caret (^)"
        )
    return normalized


# =============================================================================
# CURRENCY VALIDATION
# =============================================================================

def validate_currency(value: str) -> str:
    """Validate and normalize a 3-letter currency code."""
    if not value:
        raise ValueError("Currency cannot be empty")

    normalized = value.strip().upper()
    if not CURRENCY_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid currency format: '{normalized}'. "
            "Currency must be a 3-letter ISO code (e.g., USD, EUR)"
        )
    return normalized


# =============================================================================
# DATE VALIDATION
# =============================================================================

def validate_date_range(from_date: date, to_date: date) -> tuple[date, date]:
    """
    Validate an analytics date range.

    The end may lie in the future; the services clamp it to today.

    Raises:
        ValueError: If the range is reversed, too old, or too long
    """
    if from_date < MIN_VALID_DATE:
        raise ValueError(f"from_date cannot be before {MIN_VALID_DATE}")
    if from_date > to_date:
        raise ValueError("from_date must be before or equal to to_date")
    if (to_date - from_date).days > MAX_HISTORY_DAYS:
        raise ValueError(f"Date range cannot exceed {MAX_HISTORY_DAYS} days")
    return from_date, to_date
