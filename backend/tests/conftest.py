# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Mock market data provider and a gateway without cache or throttle
- Sample data factories (accounts, cash accounts, transactions)
- A TestClient with every service dependency overridden

All services that depend on "today" get the fixed TODAY below, so tests
never depend on the wall clock.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_tracker import dependencies
from portfolio_tracker.database import get_db
from portfolio_tracker.main import app
from portfolio_tracker.models import (
    Account,
    AccountType,
    Base,
    CashAccount,
    Transaction,
    TransactionType,
)
from portfolio_tracker.services.analytics import AnalyticsService
from portfolio_tracker.services.exceptions import TickerNotFoundError
from portfolio_tracker.services.ledger import AccountService, CashAccountService, LedgerService, TargetService
from portfolio_tracker.services.market_data import MarketDataGateway
from portfolio_tracker.services.market_data.base import (
    ClosePrice,
    MarketDataProvider,
    OpenClose,
    Quote,
)
from portfolio_tracker.services.overview import OverviewService
from portfolio_tracker.services.snapshots import (
    OrchestratorStatus,
    RecomputeReport,
    SnapshotStore,
)
from portfolio_tracker.services.snapshots.orchestrator import RecomputeJob
from portfolio_tracker.services.valuation import ValuationEngine
from portfolio_tracker.utils.context import get_correlation_id, record_recompute_job

# Friday
TODAY = date(2024, 3, 15)


def fixed_today() -> date:
    return TODAY


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Iterator[Session]:
    """Create a database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# MOCK MARKET DATA PROVIDER
# =============================================================================

class MockMarketDataProvider(MarketDataProvider):
    """
    Mock implementation of MarketDataProvider for testing.

    Prices are configured per symbol (quotes), per (symbol, date) (open and
    close bars) and per symbol (close series). Errors can be configured per
    operation to simulate outages.
    """

    def __init__(self, name: str = "mock"):
        self._name = name
        self._quotes: dict[str, Decimal] = {}
        self._bars: dict[tuple[str, date], tuple[Decimal, Decimal]] = {}
        self._closes: dict[str, list[ClosePrice]] = {}
        self._names: dict[str, str] = {}
        self._errors: dict[str, Exception] = {}
        self._unknown: set[str] = set()
        self.calls: dict[str, int] = {
            "get_quote": 0,
            "get_quotes": 0,
            "get_historical_price_range": 0,
            "get_historical_open_close": 0,
            "get_symbol_name": 0,
        }

    @property
    def name(self) -> str:
        return self._name

    # -- configuration ---------------------------------------------------------

    def set_quote(self, symbol: str, price: str | Decimal) -> None:
        self._quotes[symbol.upper()] = Decimal(str(price))

    def set_bar(self, symbol: str, on: date, open_price: str | Decimal, close: str | Decimal) -> None:
        self._bars[(symbol.upper(), on)] = (Decimal(str(open_price)), Decimal(str(close)))

    def set_closes(self, symbol: str, closes: dict[date, str | Decimal]) -> None:
        self._closes[symbol.upper()] = [
            ClosePrice(date=d, close=Decimal(str(c))) for d, c in sorted(closes.items())
        ]

    def set_name(self, symbol: str, name: str) -> None:
        self._names[symbol.upper()] = name

    def set_error(self, operation: str, error: Exception) -> None:
        """Raise ``error`` from every call of ``operation``."""
        self._errors[operation] = error

    def clear_errors(self) -> None:
        self._errors.clear()

    def set_unknown(self, symbol: str) -> None:
        self._unknown.add(symbol.upper())

    def _enter(self, operation: str, symbol: str | None = None) -> None:
        self.calls[operation] += 1
        if operation in self._errors:
            raise self._errors[operation]
        if symbol is not None and symbol.upper() in self._unknown:
            raise TickerNotFoundError(ticker=symbol, provider=self.name)

    # -- provider interface ----------------------------------------------------

    def get_quote(self, symbol: str) -> Quote | None:
        self._enter("get_quote", symbol)
        price = self._quotes.get(symbol.upper())
        if price is None:
            return None
        return Quote(
            symbol=symbol.upper(),
            price=price,
            change=Decimal("0"),
            change_pct=Decimal("0"),
            volume=None,
            timestamp=datetime.now(timezone.utc),
            provider=self.name,
        )

    def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        self._enter("get_quotes")
        result = {}
        for symbol in symbols:
            price = self._quotes.get(symbol.upper())
            if price is not None and symbol.upper() not in self._unknown:
                result[symbol.upper()] = Quote(
                    symbol=symbol.upper(),
                    price=price,
                    change=Decimal("0"),
                    change_pct=Decimal("0"),
                    volume=None,
                    timestamp=datetime.now(timezone.utc),
                    provider=self.name,
                )
        return result

    def get_historical_price_range(self, symbol: str, start_date: date, end_date: date) -> list[ClosePrice]:
        self._enter("get_historical_price_range", symbol)
        return [c for c in self._closes.get(symbol.upper(), []) if start_date <= c.date <= end_date]

    def get_historical_open_close(self, symbol: str, on: date) -> OpenClose | None:
        self._enter("get_historical_open_close", symbol)
        bar = self._bars.get((symbol.upper(), on))
        if bar is None:
            return None
        return OpenClose(date=on, open=bar[0], close=bar[1])

    def get_symbol_name(self, symbol: str) -> str | None:
        self._enter("get_symbol_name", symbol)
        return self._names.get(symbol.upper())


@pytest.fixture
def mock_provider() -> MockMarketDataProvider:
    """Create a fresh mock provider for each test."""
    return MockMarketDataProvider()


@pytest.fixture
def gateway(mock_provider: MockMarketDataProvider) -> MarketDataGateway:
    """Gateway over the mock provider, with caching and throttling off."""
    return MarketDataGateway([mock_provider], cache_ttl_seconds=0, min_request_interval_seconds=0)


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def store() -> SnapshotStore:
    return SnapshotStore()


@pytest.fixture
def valuation_engine(gateway: MarketDataGateway, store: SnapshotStore) -> ValuationEngine:
    return ValuationEngine(gateway=gateway, snapshot_writer=store, today=fixed_today)


@pytest.fixture
def ledger(gateway: MarketDataGateway) -> LedgerService:
    """Ledger without a recompute trigger."""
    return LedgerService(gateway=gateway, today=fixed_today)


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

def create_account(
        db: Session,
        name: str = "Brokerage",
        account_type: AccountType = AccountType.MIXED,
) -> Account:
    """Factory function for creating Account entities in the database."""
    account = Account(name=name, account_type=account_type)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def create_cash_account(
        db: Session,
        account: Account,
        amount: str | Decimal = "1000",
        created_on: date = TODAY - timedelta(days=60),
        name: str = "Cash",
) -> CashAccount:
    """
    Factory function for cash accounts.

    ``created_on`` is stored as noon UTC, which falls on the same calendar
    date in the trading timezone.
    """
    cash = CashAccount(
        account_id=account.id,
        name=name,
        amount=Decimal(str(amount)),
        currency="USD",
        created_at=datetime(created_on.year, created_on.month, created_on.day, 16, tzinfo=timezone.utc),
    )
    db.add(cash)
    db.commit()
    db.refresh(cash)
    return cash


def create_transaction(
        db: Session,
        account: Account,
        symbol: str = "AAPL",
        transaction_type: TransactionType = TransactionType.BUY,
        quantity: str | Decimal = "10",
        price: str | Decimal = "100",
        trade_date: date = date(2024, 3, 1),
        fee: str | Decimal = "0",
        name: str | None = None,
) -> Transaction:
    """
    Insert a raw transaction row, bypassing the ledger.

    Used to set up trade logs for the valuation and analytics tests;
    ledger behaviour is tested through LedgerService itself.
    """
    txn = Transaction(
        account_id=account.id,
        symbol=symbol,
        name=name,
        transaction_type=transaction_type,
        trade_date=trade_date,
        price=Decimal(str(price)),
        quantity=Decimal(str(quantity)),
        fee=Decimal(str(fee)),
        currency="USD",
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn


@pytest.fixture
def sample_account(db: Session) -> Account:
    """Provide a sample Account for tests."""
    return create_account(db)


# =============================================================================
# API CLIENT
# =============================================================================

class RecordingOrchestrator:
    """Stands in for RecomputeOrchestrator in API tests; no threads."""

    def __init__(self):
        self.submitted: list[date] = []
        self.jobs: list[RecomputeJob] = []
        self.rebuild_error: Exception | None = None
        self._status = OrchestratorStatus(running=None, pending_start=None, last_report=None)

    def submit(self, start_date: date):
        self.submitted.append(start_date)
        job = RecomputeJob(len(self.submitted), start_date, get_correlation_id())
        self.jobs.append(job)
        record_recompute_job(job.job_id)
        return job

    def status(self):
        return self._status

    def rebuild_all(self):
        if self.rebuild_error is not None:
            raise self.rebuild_error
        return RecomputeReport(start_date=date(2024, 3, 1), end_date=TODAY, days_processed=11)

    def shutdown(self, timeout=None) -> None:
        pass


@pytest.fixture
def orchestrator() -> RecordingOrchestrator:
    return RecordingOrchestrator()


@pytest.fixture
def client(session_factory, gateway, store, valuation_engine, ledger, orchestrator):
    """
    TestClient with every service dependency pointed at the test database
    and the mock provider. The app lifespan is not run.
    """
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    ledger.set_trigger(orchestrator)
    app.dependency_overrides = {
        get_db: override_get_db,
        dependencies.get_gateway: lambda: gateway,
        dependencies.get_snapshot_store: lambda: store,
        dependencies.get_valuation_engine: lambda: valuation_engine,
        dependencies.get_orchestrator: lambda: orchestrator,
        dependencies.get_ledger_service: lambda: ledger,
        dependencies.get_account_service: lambda: AccountService(),
        dependencies.get_cash_account_service: lambda: CashAccountService(),
        dependencies.get_target_service: lambda: TargetService(),
        dependencies.get_analytics_service: lambda: AnalyticsService(
            engine=valuation_engine, store=store, gateway=gateway,
            risk_free_rate=Decimal("0"), today=fixed_today,
        ),
        dependencies.get_overview_service: lambda: OverviewService(valuation_engine, store),
    }
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides = {}
