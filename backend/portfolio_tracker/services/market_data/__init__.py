# backend/portfolio_tracker/services/market_data/__init__.py
"""
Market data package.

This package contains:
- Abstract interface for market data providers (base.py)
- Yahoo Finance implementation (yahoo.py)
- Alpha Vantage implementation (alpha_vantage.py)
- Gateway with caching, throttling and fallback (gateway.py)

Usage:
    from portfolio_tracker.services.market_data import (
        MarketDataGateway,
        YahooFinanceProvider,
        AlphaVantageProvider,
    )

    gateway = MarketDataGateway([YahooFinanceProvider()])

Architecture:
    MarketDataProvider (ABC)
    ├── YahooFinanceProvider  (primary)
    └── AlphaVantageProvider  (secondary, needs an API key)

    MarketDataGateway
    └── Owns cache, throttle and per-provider circuit breakers
    └── Falls back through providers in order
"""

from portfolio_tracker.services.market_data.alpha_vantage import AlphaVantageProvider
from portfolio_tracker.services.market_data.base import (
    ClosePrice,
    MarketDataProvider,
    OpenClose,
    Quote,
)
from portfolio_tracker.services.market_data.gateway import MarketDataGateway
from portfolio_tracker.services.market_data.yahoo import YahooFinanceProvider

__all__ = [
    # Abstract interface
    "MarketDataProvider",
    # Data classes
    "Quote",
    "ClosePrice",
    "OpenClose",
    # Concrete implementations
    "YahooFinanceProvider",
    "AlphaVantageProvider",
    # Gateway
    "MarketDataGateway",
]
