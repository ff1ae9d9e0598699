# tests/routers/test_snapshots_api.py
"""
API tests for /snapshots.

The recompute orchestrator is replaced by a recording stand-in, so
these tests check the HTTP contract, not job scheduling.
"""

from datetime import date
from decimal import Decimal

from portfolio_tracker.models import TransactionType
from portfolio_tracker.services.exceptions import RecomputeInProgressError
from portfolio_tracker.services.ledger import TransactionDraft
from tests.conftest import create_account


class TestRefreshApi:

    def test_refresh_records_manual_snapshot(self, client, db, ledger, mock_provider):
        account = create_account(db)
        ledger.create_transaction(db, TransactionDraft(
            account_id=account.id,
            symbol="AAPL",
            transaction_type=TransactionType.BUY,
            price=Decimal("100"),
            quantity=Decimal("10"),
            trade_date=date(2024, 3, 1),
        ))
        mock_provider.set_quote("AAPL", "150")

        response = client.post("/snapshots/refresh")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "LIVE"
        assert Decimal(body["total_market_value"]) == Decimal("1500")
        assert body["positions"][0]["symbol"] == "AAPL"

        raw = client.get("/snapshots/raw", params={"date": "2024-03-15"}).json()
        assert [r["source"] for r in raw] == ["MANUAL"]


class TestRecomputeApi:

    def test_schedule(self, client, orchestrator):
        response = client.post("/snapshots/recompute", params={"from_date": "2024-03-01"})

        assert response.status_code == 202
        assert response.json()["state"] == "PENDING"
        assert orchestrator.submitted == [date(2024, 3, 1)]

    def test_future_start_rejected(self, client, orchestrator):
        response = client.post("/snapshots/recompute", params={"from_date": "2999-01-01"})

        assert response.status_code == 400
        assert orchestrator.submitted == []

    def test_start_required(self, client):
        assert client.post("/snapshots/recompute").status_code == 422

    def test_status(self, client):
        response = client.get("/snapshots/recompute/status")

        assert response.json() == {"running": None, "pending_start": None, "last_report": None}


class TestRebuildApi:

    def test_rebuild(self, client):
        response = client.post("/snapshots/rebuild")

        assert response.status_code == 200
        assert response.json()["days_processed"] == 11

    def test_rebuild_while_running(self, client, orchestrator):
        """Should return 409 while a background recompute holds the slot."""
        orchestrator.rebuild_error = RecomputeInProgressError(date(2024, 3, 4))

        response = client.post("/snapshots/rebuild")

        assert response.status_code == 409
        assert response.json()["details"] == {"running_from": "2024-03-04"}
