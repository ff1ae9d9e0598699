# backend/portfolio_tracker/dependencies.py
"""
Dependency injection module for FastAPI services.

This module provides singleton service instances that are shared across
all requests. Shared state matters here: the market data gateway owns the
quote cache, the request throttle and the per-provider circuit breakers,
and the recompute orchestrator owns the single job slot.

Services are lazily initialized on first use to avoid import-time side effects.

Usage in routers:
    from portfolio_tracker.dependencies import get_ledger_service

    @router.post("/")
    def create_transaction(
        service: LedgerService = Depends(get_ledger_service),
    ):
        ...

Tests override these with ``app.dependency_overrides``.
"""

import logging
from functools import lru_cache

from portfolio_tracker.config import settings
from portfolio_tracker.database import SessionLocal
from portfolio_tracker.services.analytics import AnalyticsService
from portfolio_tracker.services.ledger import AccountService, CashAccountService, LedgerService, TargetService
from portfolio_tracker.services.market_data import (
    AlphaVantageProvider,
    MarketDataGateway,
    MarketDataProvider,
    YahooFinanceProvider,
)
from portfolio_tracker.services.overview import OverviewService
from portfolio_tracker.services.snapshots import RecomputeOrchestrator, SnapshotScheduler, SnapshotStore
from portfolio_tracker.services.valuation import ValuationEngine

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Using @lru_cache ensures the function returns the same instance on every call
#
# Order matters: define dependencies before dependents
# 1. get_gateway (providers)
# 2. get_snapshot_store (no deps)
# 3. get_valuation_engine (gateway, store)
# 4. get_orchestrator (engine, store)
# 5. get_ledger_service (gateway, orchestrator as trigger)
# 6. get_analytics_service / get_overview_service (engine, store)


@lru_cache(maxsize=1)
def get_gateway() -> MarketDataGateway:
    """
    Get the singleton market data gateway.

    Yahoo Finance is the primary provider. Alpha Vantage is added as the
    secondary when an API key is configured.
    """
    providers: list[MarketDataProvider] = [YahooFinanceProvider()]
    if settings.alpha_vantage_api_key:
        providers.append(AlphaVantageProvider(
            api_key=settings.alpha_vantage_api_key,
            base_url=settings.alpha_vantage_base_url,
        ))
    logger.debug(f"Initializing singleton MarketDataGateway ({[p.name for p in providers]})")
    return MarketDataGateway(
        providers,
        cache_ttl_seconds=settings.quote_cache_ttl_seconds,
        min_request_interval_seconds=settings.min_request_interval_seconds,
    )


@lru_cache(maxsize=1)
def get_snapshot_store() -> SnapshotStore:
    return SnapshotStore()


@lru_cache(maxsize=1)
def get_valuation_engine() -> ValuationEngine:
    logger.debug("Initializing singleton ValuationEngine")
    return ValuationEngine(gateway=get_gateway(), snapshot_writer=get_snapshot_store())


@lru_cache(maxsize=1)
def get_orchestrator() -> RecomputeOrchestrator:
    """
    Get the singleton recompute orchestrator.

    Background jobs open their own sessions from SessionLocal.
    """
    logger.debug("Initializing singleton RecomputeOrchestrator")
    return RecomputeOrchestrator(
        engine=get_valuation_engine(),
        session_factory=SessionLocal,
        snapshot_writer=get_snapshot_store(),
        throttle_seconds=settings.recompute_throttle_seconds,
    )


@lru_cache(maxsize=1)
def get_ledger_service() -> LedgerService:
    """
    Get the singleton LedgerService.

    Every committed write triggers a background recompute through the
    orchestrator.
    """
    logger.debug("Initializing singleton LedgerService")
    service = LedgerService(gateway=get_gateway())
    service.set_trigger(get_orchestrator())
    return service


@lru_cache(maxsize=1)
def get_account_service() -> AccountService:
    return AccountService()


@lru_cache(maxsize=1)
def get_cash_account_service() -> CashAccountService:
    return CashAccountService()


@lru_cache(maxsize=1)
def get_target_service() -> TargetService:
    return TargetService()


@lru_cache(maxsize=1)
def get_analytics_service() -> AnalyticsService:
    logger.debug("Initializing singleton AnalyticsService")
    return AnalyticsService(
        engine=get_valuation_engine(),
        store=get_snapshot_store(),
        gateway=get_gateway(),
    )


@lru_cache(maxsize=1)
def get_overview_service() -> OverviewService:
    return OverviewService(engine=get_valuation_engine(), store=get_snapshot_store())


@lru_cache(maxsize=1)
def get_scheduler() -> SnapshotScheduler:
    """Scheduled market open/close captures (started by the app lifespan)."""
    return SnapshotScheduler(
        engine=get_valuation_engine(),
        store=get_snapshot_store(),
        session_factory=SessionLocal,
        poll_seconds=settings.scheduler_poll_seconds,
        retention_days=settings.raw_snapshot_retention_days,
    )
