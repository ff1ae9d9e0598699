# tests/routers/test_market_api.py
"""
API tests for /quote, /holdings/distribution and /analytics/comparison.
"""

from datetime import date
from decimal import Decimal

from portfolio_tracker.models import SnapshotSource, TransactionType
from portfolio_tracker.services.exceptions import ProviderUnavailableError
from portfolio_tracker.services.ledger import TransactionDraft
from tests.conftest import create_account, create_transaction


class TestQuoteApi:

    def test_quote(self, client, mock_provider):
        mock_provider.set_quote("AAPL", "187.5")

        response = client.get("/quote/aapl")

        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "AAPL"
        assert Decimal(body["price"]) == Decimal("187.5")
        assert body["provider"] == "mock"

    def test_unpriced_symbol(self, client):
        response = client.get("/quote/NOPE")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_invalid_symbol(self, client):
        response = client.get("/quote/a$b")

        assert response.status_code == 400

    def test_provider_outage(self, client, mock_provider):
        mock_provider.set_error("get_quote", ProviderUnavailableError("mock", "down"))

        response = client.get("/quote/AAPL")

        assert response.status_code == 503


class TestDistributionApi:

    def test_weights_of_stock_value(self, client, db, ledger, mock_provider):
        account = create_account(db)
        for symbol, quantity, name in [("AAPL", "10", "Apple Inc."), ("MSFT", "1", None)]:
            ledger.create_transaction(db, TransactionDraft(
                account_id=account.id,
                symbol=symbol,
                transaction_type=TransactionType.BUY,
                price=Decimal("100"),
                quantity=Decimal(quantity),
                trade_date=date(2024, 3, 1),
                name=name,
            ))
        mock_provider.set_quote("AAPL", "150")
        mock_provider.set_quote("MSFT", "500")

        response = client.get("/holdings/distribution")

        assert response.status_code == 200
        body = response.json()
        assert [(s["symbol"], s["name"]) for s in body] == [("AAPL", "Apple Inc."), ("MSFT", "MSFT")]
        assert [Decimal(s["value"]) for s in body] == [Decimal("1500"), Decimal("500")]
        assert [Decimal(s["weight_pct"]) for s in body] == [Decimal("75.00"), Decimal("25.00")]

    def test_empty_portfolio(self, client):
        assert client.get("/holdings/distribution").json() == []


class TestComparisonApi:

    def test_default_index(self, client, db, store, mock_provider):
        account = create_account(db)
        create_transaction(db, account, quantity="10", price="100", trade_date=date(2024, 3, 1))
        for day, value in [(11, "1000"), (12, "1100"), (13, "1045")]:
            store.record(db, date(2024, 3, day), Decimal(value), Decimal("0"), "USD", SnapshotSource.BACKFILL)
        mock_provider.set_closes("^GSPC", {
            date(2024, 3, 11): "5000",
            date(2024, 3, 12): "5100",
            date(2024, 3, 13): "5049",
        })

        response = client.get("/analytics/comparison", params={"from_date": "2024-03-11", "to_date": "2024-03-13"})

        assert response.status_code == 200
        body = response.json()
        assert body["index_symbol"] == "^GSPC"
        assert [p["date"] for p in body["portfolio"]] == ["2024-03-11", "2024-03-12", "2024-03-13"]
        assert [Decimal(p["change_pct"]) for p in body["index"]] == [
            Decimal("0.00"), Decimal("2.00"), Decimal("0.98"),
        ]
        assert body["metrics"]["data_points"] == 2
        assert Decimal(body["metrics"]["portfolio_return"]) == Decimal("0.045")
        assert body["metrics"]["has_sufficient_data"] is False

    def test_unknown_index(self, client, db):
        create_transaction(db, create_account(db), trade_date=date(2024, 3, 1))

        response = client.get(
            "/analytics/comparison",
            params={"from_date": "2024-03-11", "to_date": "2024-03-13", "index": "nope"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["index_symbol"] == "NOPE"
        assert body["index"] == []
        assert body["metrics"]["warnings"] == ["No index data for NOPE"]

    def test_reversed_range(self, client):
        response = client.get("/analytics/comparison", params={"from_date": "2024-03-13", "to_date": "2024-03-11"})

        assert response.status_code == 400
