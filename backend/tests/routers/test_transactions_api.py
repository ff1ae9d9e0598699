# tests/routers/test_transactions_api.py
"""
API tests for /transactions and /accounts.

These tests verify the HTTP layer: status codes, error bodies and that
every ledger write schedules a recompute. Ledger semantics themselves
are covered by the service tests.
"""

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient


def create_account(client: TestClient, name: str = "Main") -> int:
    response = client.post("/accounts/", json={"name": name, "account_type": "stock"})
    assert response.status_code == 201
    return response.json()["id"]


def trade(account_id: int, **overrides) -> dict:
    payload = {
        "account_id": account_id,
        "symbol": "aapl",
        "transaction_type": "buy",
        "trade_date": "2024-03-01",
        "price": "100",
        "quantity": "10",
        "fee": "1",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def account_id(client) -> int:
    return create_account(client)


# =============================================================================
# ACCOUNTS
# =============================================================================

class TestAccountsApi:

    def test_create_and_list(self, client):
        create_account(client, "Main")

        response = client.get("/accounts/")

        assert response.status_code == 200
        assert [(a["name"], a["account_type"]) for a in response.json()] == [("Main", "STOCK")]

    def test_duplicate_name(self, client):
        """Should return 400 with the offending field."""
        create_account(client, "Main")

        response = client.post("/accounts/", json={"name": "Main"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["details"] == {"field": "name"}

    def test_missing_account(self, client):
        response = client.get("/accounts/999")

        assert response.status_code == 404
        assert response.json()["details"] == {"resource_type": "Account", "resource_id": 999}

    def test_delete_with_transactions_refused(self, client, account_id):
        client.post("/transactions/", json=trade(account_id))

        response = client.delete(f"/accounts/{account_id}")

        assert response.status_code == 400

    def test_cash_account_edit_schedules_recompute(self, client, account_id, orchestrator):
        response = client.post("/cash-accounts/", json={"account_id": account_id, "name": "Cash", "amount": "500"})

        assert response.status_code == 201
        assert Decimal(response.json()["amount"]) == Decimal("500")
        assert len(orchestrator.submitted) == 1


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TestTransactionsApi:

    def test_create_buy(self, client, account_id, orchestrator):
        """Should record the trade and schedule a recompute from its date."""
        response = client.post("/transactions/", json=trade(account_id))

        assert response.status_code == 201
        body = response.json()
        assert body["symbol"] == "AAPL"
        assert body["transaction_type"] == "BUY"
        assert Decimal(body["price"]) == Decimal("100")
        assert orchestrator.submitted == [date(2024, 3, 1)]

    def test_future_trade_date(self, client, account_id):
        response = client.post("/transactions/", json=trade(account_id, trade_date="2024-03-16"))

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "trade_date"}

    def test_oversell_is_conflict(self, client, account_id):
        client.post("/transactions/", json=trade(account_id))

        response = client.post("/transactions/", json=trade(account_id, transaction_type="sell", quantity="11"))

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "InsufficientHoldingsError"
        assert body["details"]["symbol"] == "AAPL"
        assert Decimal(body["details"]["available"]) == Decimal("10")

    def test_unknown_account(self, client):
        response = client.post("/transactions/", json=trade(999))

        assert response.status_code == 404

    @pytest.mark.parametrize("field, value", [
        ("price", "-1"),
        ("quantity", "0"),
        ("symbol", "AA PL"),
        ("transaction_type", "hold"),
    ])
    def test_request_validation(self, client, account_id, field, value):
        """Should return 422 with per-field details."""
        response = client.post("/transactions/", json=trade(account_id, **{field: value}))

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "ValidationError"
        assert any(field in d["field"] for d in body["details"])

    def test_list_paginated(self, client, account_id):
        for day in ("2024-03-01", "2024-03-04", "2024-03-05"):
            client.post("/transactions/", json=trade(account_id, trade_date=day))

        response = client.get("/transactions/", params={"limit": 2})

        body = response.json()
        assert [t["trade_date"] for t in body["items"]] == ["2024-03-05", "2024-03-04"]
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["has_next"] is True

    def test_update_and_delete(self, client, account_id, orchestrator):
        txn_id = client.post("/transactions/", json=trade(account_id)).json()["id"]

        updated = client.put(f"/transactions/{txn_id}", json={"quantity": "4"})
        deleted = client.delete(f"/transactions/{txn_id}")

        assert updated.status_code == 200
        assert Decimal(updated.json()["quantity"]) == Decimal("4")
        assert deleted.status_code == 204
        assert client.get(f"/transactions/{txn_id}").status_code == 404
        assert len(orchestrator.submitted) == 3
