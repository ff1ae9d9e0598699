# tests/routers/test_targets_api.py
"""
API tests for /targets.
"""

from datetime import date
from decimal import Decimal

import pytest

from tests.conftest import create_account, create_transaction


@pytest.fixture
def account_id(db) -> int:
    account = create_account(db)
    create_transaction(db, account, quantity="10", price="100", trade_date=date(2024, 3, 1))
    return account.id


class TestTargetsApi:

    def test_create_reports_progress(self, client, account_id):
        response = client.post("/targets/", json={"symbol": "aapl", "target_amount": "4000"})

        assert response.status_code == 201
        body = response.json()
        assert body["symbol"] == "AAPL"
        assert body["scope_type"] == "ALL"
        assert body["scope_display"] == "All Accounts"
        assert Decimal(body["invested"]) == Decimal("1000")
        assert Decimal(body["remaining"]) == Decimal("3000")
        assert Decimal(body["progress"]) == Decimal("0.25")
        assert body["status"] == "PENDING"

    def test_account_scope(self, client, account_id):
        response = client.post("/targets/", json={
            "symbol": "AAPL", "target_amount": "800", "scope_type": "account", "account_id": account_id,
        })

        assert response.status_code == 201
        assert response.json()["status"] == "EXCEEDED"
        assert response.json()["scope_display"] == "Brokerage"

    def test_account_scope_without_account(self, client):
        response = client.post("/targets/", json={"symbol": "AAPL", "target_amount": "800", "scope_type": "ACCOUNT"})

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "account_id"}

    def test_non_positive_amount(self, client):
        response = client.post("/targets/", json={"symbol": "AAPL", "target_amount": "0"})

        assert response.status_code == 422

    def test_duplicate(self, client):
        client.post("/targets/", json={"symbol": "AAPL", "target_amount": "100"})

        response = client.post("/targets/", json={"symbol": "AAPL", "target_amount": "200"})

        assert response.status_code == 400

    def test_update_list_delete(self, client, account_id):
        target_id = client.post("/targets/", json={"symbol": "AAPL", "target_amount": "4000"}).json()["id"]

        updated = client.put(f"/targets/{target_id}", json={"target_amount": "1000"})
        assert updated.status_code == 200
        assert updated.json()["status"] == "COMPLETED"

        assert [t["id"] for t in client.get("/targets/").json()] == [target_id]
        assert client.delete(f"/targets/{target_id}").status_code == 204
        assert client.get(f"/targets/{target_id}").status_code == 404
