# backend/tests/services/analytics/test_analytics_service.py
"""
Tests for AnalyticsService.

Daily snapshots are written directly through the store and live points
come from a stub valuation provider, so the curve builder, statistics
and daily P&L are tested without market data.
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_tracker.models import SnapshotSource
from portfolio_tracker.services.exceptions import ProviderUnavailableError
from portfolio_tracker.services.market_data import MarketDataGateway
from portfolio_tracker.services.analytics import AnalyticsService, NetValuePoint, is_plausible_snapshot
from portfolio_tracker.services.valuation import ValuationMode, ValuationResult
from tests.conftest import (
    TODAY,
    MockMarketDataProvider,
    create_account,
    create_cash_account,
    create_transaction,
    fixed_today,
)


class StubEngine:
    """Returns preset (stock, cash) values; records every call."""

    def __init__(self, live=("0", "0"), historical: dict[date, tuple[str, str]] | None = None):
        self.live = live
        self.historical = historical or {}
        self.calls: list[tuple[date, ValuationMode, list[int] | None, bool]] = []

    def compute_valuation(self, db, target_date, mode, account_ids=None, persist=True, source=None):
        self.calls.append((target_date, mode, account_ids, persist))
        stock, cash = self.live if mode == ValuationMode.LIVE else self.historical.get(target_date, ("0", "0"))
        return ValuationResult(
            date=target_date,
            mode=mode,
            total_market_value=Decimal(stock),
            cash_balance=Decimal(cash),
            currency="USD",
        )


def record(db, store, day: date, stock: str, cash: str = "0") -> None:
    store.record(db, day, Decimal(stock), Decimal(cash), "USD", SnapshotSource.BACKFILL)


@pytest.fixture
def portfolio(db, store, sample_account):
    """
    Buy 10 @ 100 on Friday 2024-03-08 with 500 cash opened the same day.

    Daily snapshots 03-08 .. 03-14, including a Saturday and an
    implausible 03-13.
    """
    create_transaction(db, sample_account, quantity="10", price="100", trade_date=date(2024, 3, 8))
    create_cash_account(db, sample_account, amount="500", created_on=date(2024, 3, 8))
    record(db, store, date(2024, 3, 8), "1000", "500")
    record(db, store, date(2024, 3, 9), "999", "500")
    record(db, store, date(2024, 3, 11), "1050", "500")
    record(db, store, date(2024, 3, 12), "1100", "500")
    record(db, store, date(2024, 3, 13), "20000000000", "500")
    record(db, store, date(2024, 3, 14), "1200", "500")
    return sample_account


def make_service(store, engine=None, provider=None) -> AnalyticsService:
    gateway = MarketDataGateway(
        [provider or MockMarketDataProvider()], cache_ttl_seconds=0, min_request_interval_seconds=0,
    )
    return AnalyticsService(
        engine=engine or StubEngine(live=("1250", "500")),
        store=store,
        gateway=gateway,
        risk_free_rate=Decimal("0"),
        today=fixed_today,
    )


# =============================================================================
# NET VALUE CURVE
# =============================================================================

class TestNetValueCurve:
    """Tests for get_net_value_curve."""

    def test_curve_points(self, db, store, portfolio):
        """Should pad, drop weekend and implausible snapshots, and add a live point."""
        points = make_service(store).get_net_value_curve(db, date(2024, 3, 6), TODAY)

        assert [p.date for p in points] == [
            date(2024, 3, 6), date(2024, 3, 7),
            date(2024, 3, 8), date(2024, 3, 11), date(2024, 3, 12), date(2024, 3, 14),
            TODAY,
        ]

    def test_zero_padding_before_first_record(self, db, store, portfolio):
        points = make_service(store).get_net_value_curve(db, date(2024, 3, 6), TODAY)

        assert all(p.total_value == Decimal("0") and p.cost_basis == Decimal("0") for p in points[:2])

    def test_costs_and_pnl(self, db, store, portfolio):
        points = make_service(store).get_net_value_curve(db, date(2024, 3, 8), TODAY)
        by_date = {p.date: p for p in points}

        point = by_date[date(2024, 3, 12)]
        assert point.stock_value == Decimal("1100")
        assert point.cash_value == Decimal("500")
        assert point.total_value == Decimal("1600")
        assert point.stock_cost == Decimal("1000")
        assert point.cost_basis == Decimal("1500")
        assert point.pnl_pct == Decimal("10")

    def test_live_point_from_engine(self, db, store, portfolio):
        """Should build today's point from a non-persisted live valuation."""
        engine = StubEngine(live=("1250", "500"))
        record(db, store, TODAY, "1", "0")

        points = make_service(store, engine).get_net_value_curve(db, date(2024, 3, 8), TODAY)

        last = points[-1]
        assert last.date == TODAY
        assert last.is_live is True
        assert last.total_value == Decimal("1750")
        assert engine.calls == [(TODAY, ValuationMode.LIVE, None, False)]

    def test_range_before_first_record_is_all_padding(self, db, store, portfolio):
        engine = StubEngine()

        points = make_service(store, engine).get_net_value_curve(db, date(2024, 3, 4), date(2024, 3, 6))

        assert [p.date for p in points] == [date(2024, 3, 4), date(2024, 3, 5), date(2024, 3, 6)]
        assert engine.calls == []

    def test_account_subset_priced_from_close_series(self, db, store, portfolio):
        """Should value the requested accounts from one close series per symbol."""
        other = create_account(db, name="Other")
        create_transaction(db, other, symbol="MSFT", quantity="10", price="100", trade_date=date(2024, 3, 12))
        provider = MockMarketDataProvider()
        provider.set_closes("MSFT", {date(2024, 3, 11): "90", date(2024, 3, 12): "95", date(2024, 3, 13): "110"})
        engine = StubEngine(live=("1150", "0"))

        points = make_service(store, engine, provider).get_net_value_curve(
            db, date(2024, 3, 12), TODAY, [other.id],
        )

        assert [(p.date, p.stock_value) for p in points] == [
            (date(2024, 3, 12), Decimal("950")),
            (date(2024, 3, 13), Decimal("1100")),
            (date(2024, 3, 14), Decimal("1100")),
            (TODAY, Decimal("1150")),
        ]
        assert provider.calls["get_historical_price_range"] == 1
        assert provider.calls["get_historical_open_close"] == 0
        assert engine.calls == [(TODAY, ValuationMode.LIVE, [other.id], False)]

    def test_account_subset_without_prices_uses_avg_cost(self, db, store, portfolio):
        other = create_account(db, name="Other")
        create_transaction(db, other, symbol="NOPE", quantity="4", price="25", trade_date=date(2024, 3, 13))

        points = make_service(store, StubEngine(live=("100", "0"))).get_net_value_curve(
            db, date(2024, 3, 13), date(2024, 3, 14), [other.id],
        )

        assert [(p.date, p.stock_value) for p in points] == [
            (date(2024, 3, 13), Decimal("100")),
            (date(2024, 3, 14), Decimal("100")),
        ]

    def test_empty_portfolio(self, db, store):
        assert make_service(store).get_net_value_curve(db, date(2024, 3, 1), TODAY) == []

    def test_inverted_range(self, db, store, portfolio):
        with pytest.raises(ValueError):
            make_service(store).get_net_value_curve(db, TODAY, date(2024, 3, 1))

    def test_first_record_date_uses_cash(self, db, store, sample_account):
        create_transaction(db, sample_account, trade_date=date(2024, 3, 8))
        create_cash_account(db, sample_account, created_on=date(2024, 2, 1))

        assert make_service(store).first_record_date(db) == date(2024, 2, 1)


# =============================================================================
# STATISTICS
# =============================================================================

class TestStats:
    """Tests for calculate_stats / get_stats."""

    def test_stats_over_curve(self, db, store, portfolio):
        stats = make_service(store).get_stats(db, date(2024, 3, 6), TODAY)

        assert stats.data_points == 7
        assert stats.start_date == date(2024, 3, 6)
        assert stats.end_date == TODAY
        assert stats.total_return == Decimal("250.00")
        assert stats.total_return_pct == Decimal("25.00")
        assert stats.max_drawdown == Decimal("0")
        assert stats.volatility is not None
        assert stats.sharpe_ratio is not None
        assert stats.warnings == []

    def test_drawdown_uses_stock_values(self, store):
        points = [
            NetValuePoint(date(2024, 3, d), Decimal(v) + Decimal("1000"), Decimal("0"),
                          Decimal(v), Decimal("1000"), Decimal("100"))
            for d, v in [(11, "100"), (12, "200"), (13, "150"), (14, "180")]
        ]

        stats = make_service(store).calculate_stats(points)

        assert stats.max_drawdown == Decimal("0.25")
        assert stats.max_drawdown_pct == Decimal("25.00")
        assert stats.peak_date == date(2024, 3, 12)
        assert stats.trough_date == date(2024, 3, 13)

    def test_empty_curve(self, store):
        stats = make_service(store).calculate_stats([])

        assert stats.data_points == 0
        assert stats.warnings == ["No data in range"]

    def test_single_point_warns(self, store):
        point = NetValuePoint(TODAY, Decimal("1"), Decimal("1"), Decimal("1"), Decimal("0"), Decimal("1"))

        stats = make_service(store).calculate_stats([point])

        assert stats.volatility is None
        assert any("Insufficient data" in w for w in stats.warnings)


# =============================================================================
# DAILY P&L
# =============================================================================

class TestDailyPnL:
    """Tests for get_daily_pnl."""

    def test_change_against_previous_snapshot(self, db, store):
        """Should compare the first row with the snapshot before the range."""
        record(db, store, date(2024, 3, 11), "1000")
        record(db, store, date(2024, 3, 12), "1000", "100")
        record(db, store, date(2024, 3, 13), "990")

        rows = make_service(store).get_daily_pnl(db, date(2024, 3, 12), date(2024, 3, 13))

        assert [r.date for r in rows] == [date(2024, 3, 12), date(2024, 3, 13)]
        assert rows[0].change == Decimal("100")
        assert rows[0].change_pct == Decimal("10.00")
        assert rows[1].change == Decimal("-110")
        assert rows[1].change_pct == Decimal("-10.00")

    def test_first_row_without_history(self, db, store):
        record(db, store, date(2024, 3, 12), "1000")

        rows = make_service(store).get_daily_pnl(db, date(2024, 3, 1), TODAY)

        assert rows[0].change is None
        assert rows[0].change_pct is None

    def test_empty_range(self, db, store):
        assert make_service(store).get_daily_pnl(db, date(2024, 3, 1), TODAY) == []


# =============================================================================
# BENCHMARK COMPARISON
# =============================================================================

class TestComparison:
    """Tests for get_comparison."""

    @pytest.fixture
    def provider(self) -> MockMarketDataProvider:
        provider = MockMarketDataProvider()
        provider.set_closes("^GSPC", {
            date(2024, 3, 8): "5000",
            date(2024, 3, 11): "5100",
            date(2024, 3, 12): "5050",
            date(2024, 3, 14): "5200",
        })
        return provider

    def test_curve_and_index_side_by_side(self, db, store, portfolio, provider):
        result = make_service(store, provider=provider).get_comparison(
            db, date(2024, 3, 8), TODAY, "^GSPC",
        )

        assert [p.date for p in result.portfolio] == [
            date(2024, 3, 8), date(2024, 3, 11), date(2024, 3, 12), date(2024, 3, 14), TODAY,
        ]
        assert [(p.date, p.change_pct) for p in result.index] == [
            (date(2024, 3, 8), Decimal("0.00")),
            (date(2024, 3, 11), Decimal("2.00")),
            (date(2024, 3, 12), Decimal("1.00")),
            (date(2024, 3, 14), Decimal("4.00")),
        ]
        assert result.metrics.data_points == 3
        assert result.metrics.portfolio_return == Decimal("0.2000")
        assert result.metrics.benchmark_return == Decimal("0.0400")
        assert not result.metrics.has_sufficient_data
        assert provider.calls["get_historical_price_range"] == 1

    def test_index_outage_keeps_portfolio(self, db, store, portfolio, provider):
        """Should return the curve with an empty index when no provider has closes."""
        provider.set_error("get_historical_price_range", ProviderUnavailableError("mock", "down"))

        result = make_service(store, provider=provider).get_comparison(
            db, date(2024, 3, 8), TODAY, "^GSPC",
        )

        assert len(result.portfolio) == 5
        assert result.index == []
        assert result.metrics.warnings == ["No index data for ^GSPC"]


class TestIsPlausibleSnapshot:

    @pytest.mark.parametrize("market, cash, expected", [
        ("100", "0", True),
        ("0", "50", True),
        ("0", "0", False),
        ("-1", "10", False),
        ("100", "-1", False),
        ("10000000001", "0", False),
    ])
    def test_bounds(self, market, cash, expected):
        assert is_plausible_snapshot(Decimal(market), Decimal(cash)) is expected
