# backend/portfolio_tracker/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- Existing classes satisfy protocols without modification
- Test mocks work without explicit inheritance
- Clear documentation of required interfaces

Wiring (see dependencies.py):
    MarketDataGateway     -> PriceGateway
    TransactionLog        -> TransactionSource
    SnapshotStore         -> SnapshotWriter
    ValuationEngine       -> ValuationProvider
    RecomputeOrchestrator -> RecomputeTrigger
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from portfolio_tracker.models import RawSnapshot, SnapshotSource, Transaction
    from portfolio_tracker.services.market_data.base import ClosePrice, OpenClose, Quote
    from portfolio_tracker.services.valuation.types import ValuationMode, ValuationResult


class PriceGateway(Protocol):
    """Interface required by ValuationEngine, LedgerService and OverviewService."""

    def get_quote(self, symbol: str) -> Quote | None:
        ...

    def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        ...

    def get_historical_price_range(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[ClosePrice]:
        ...

    def get_historical_open_close(self, symbol: str, on: date) -> OpenClose | None:
        ...

    def get_symbol_name(self, symbol: str) -> str | None:
        ...


class TransactionSource(Protocol):
    """Read-only view of the trade log, required by ValuationEngine and the curve builder."""

    def transactions_up_to(
        self,
        db: Session,
        target_date: date,
        account_ids: list[int] | None = None,
    ) -> list[Transaction]:
        ...

    def first_trade_date(self, db: Session, account_ids: list[int] | None = None) -> date | None:
        ...

    def trade_dates_between(self, db: Session, start_date: date, end_date: date) -> set[date]:
        ...


class SnapshotWriter(Protocol):
    """Interface required by ValuationEngine (persist) and RecomputeOrchestrator (wipe)."""

    def record(
        self,
        db: Session,
        snapshot_date: date,
        total_market_value: Decimal,
        cash_balance: Decimal,
        currency: str,
        source: SnapshotSource,
    ) -> RawSnapshot:
        ...

    def delete_all(self, db: Session) -> tuple[int, int]:
        ...


class ValuationProvider(Protocol):
    """Interface required by RecomputeOrchestrator, AnalyticsService and OverviewService."""

    def compute_valuation(
        self,
        db: Session,
        target_date: date,
        mode: ValuationMode,
        account_ids: list[int] | None = None,
        persist: bool = True,
        source: SnapshotSource | None = None,
    ) -> ValuationResult:
        ...


class RecomputeTrigger(Protocol):
    """Interface required by LedgerService to start a best-effort recompute."""

    def submit(self, start_date: date):
        ...
