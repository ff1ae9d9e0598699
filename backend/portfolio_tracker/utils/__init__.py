# backend/portfolio_tracker/utils/__init__.py
"""
Cross-cutting utilities:
- logging: Logging configuration with correlation ID support
- context: Request / recompute job context (correlation ID, job links)
- date_utils: Trading calendar (market timezone, business days)

Usage:
    from portfolio_tracker.utils import setup_logging
    from portfolio_tracker.utils.date_utils import today_in_market
"""

from portfolio_tracker.utils.context import (
    WorkContext,
    bind_context,
    get_correlation_id,
)
from portfolio_tracker.utils.logging import setup_logging

__all__ = [
    "setup_logging",
    "WorkContext",
    "bind_context",
    "get_correlation_id",
]
