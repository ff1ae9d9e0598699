# tests/services/test_target_service.py
"""
Tests for TargetService.
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_tracker.models import InvestmentTarget, TargetScope, TransactionType
from portfolio_tracker.services.exceptions import NotFoundError, ValidationError
from portfolio_tracker.services.ledger import AccountService, TargetService, TargetStatus
from tests.conftest import create_account, create_transaction


@pytest.fixture
def targets() -> TargetService:
    return TargetService()


@pytest.fixture
def two_accounts(db):
    """Main holds AAPL bought for 1000 + 5 fee; Other holds AAPL bought for 500."""
    main = create_account(db, name="Main")
    other = create_account(db, name="Other")
    create_transaction(db, main, quantity="10", price="100", fee="5", trade_date=date(2024, 3, 1))
    create_transaction(db, other, quantity="5", price="100", trade_date=date(2024, 3, 4))
    return main, other


class TestProgress:
    """Invested, remaining, progress and status."""

    def test_all_scope_counts_every_account(self, db, targets, two_accounts):
        target = targets.create_target(db, "aapl", Decimal("3000"))

        assert target.symbol == "AAPL"
        assert target.scope_type == TargetScope.ALL
        assert target.account_id is None
        assert target.scope_display == "All Accounts"
        assert target.invested == Decimal("1505")
        assert target.remaining == Decimal("1495")
        assert target.progress == Decimal("0.5017")
        assert target.status == TargetStatus.PENDING

    def test_account_scope_counts_one_account(self, db, targets, two_accounts):
        main, _ = two_accounts

        target = targets.create_target(db, "AAPL", Decimal("1005"), TargetScope.ACCOUNT, main.id)

        assert target.invested == Decimal("1005")
        assert target.remaining == Decimal("0")
        assert target.status == TargetStatus.COMPLETED
        assert target.scope_display == "Main"

    def test_sell_reduces_invested_net_of_fee(self, db, targets, two_accounts):
        """Should subtract sell proceeds less the sell fee."""
        main, _ = two_accounts
        create_transaction(
            db, main, transaction_type=TransactionType.SELL,
            quantity="2", price="150", fee="3", trade_date=date(2024, 3, 5),
        )

        target = targets.create_target(db, "AAPL", Decimal("500"), "account", main.id)

        assert target.invested == Decimal("708")
        assert target.remaining == Decimal("-208")
        assert target.status == TargetStatus.EXCEEDED

    def test_no_trades(self, db, targets, sample_account):
        target = targets.create_target(db, "MSFT", Decimal("100"))

        assert target.invested == Decimal("0")
        assert target.progress == Decimal("0.0000")
        assert target.status == TargetStatus.PENDING


class TestValidation:

    def test_amount_must_be_positive(self, db, targets):
        with pytest.raises(ValidationError) as exc_info:
            targets.create_target(db, "AAPL", Decimal("0"))
        assert exc_info.value.field == "target_amount"

    def test_account_scope_needs_account(self, db, targets):
        with pytest.raises(ValidationError) as exc_info:
            targets.create_target(db, "AAPL", Decimal("100"), TargetScope.ACCOUNT)
        assert exc_info.value.field == "account_id"

    def test_unknown_account(self, db, targets):
        with pytest.raises(NotFoundError):
            targets.create_target(db, "AAPL", Decimal("100"), TargetScope.ACCOUNT, 999)

    def test_unknown_scope(self, db, targets):
        with pytest.raises(ValidationError) as exc_info:
            targets.create_target(db, "AAPL", Decimal("100"), "portfolio")
        assert exc_info.value.field == "scope_type"

    def test_all_scope_drops_account(self, db, targets, sample_account):
        target = targets.create_target(db, "AAPL", Decimal("100"), TargetScope.ALL, sample_account.id)

        assert target.account_id is None

    def test_duplicate_rejected(self, db, targets, sample_account):
        """Should allow one target per symbol, scope and account."""
        targets.create_target(db, "AAPL", Decimal("100"))
        targets.create_target(db, "AAPL", Decimal("100"), TargetScope.ACCOUNT, sample_account.id)

        with pytest.raises(ValidationError):
            targets.create_target(db, "AAPL", Decimal("200"))
        with pytest.raises(ValidationError):
            targets.create_target(db, "AAPL", Decimal("200"), TargetScope.ACCOUNT, sample_account.id)


class TestCrud:

    def test_update_amount_and_scope(self, db, targets, two_accounts):
        _, other = two_accounts
        created = targets.create_target(db, "AAPL", Decimal("3000"))

        updated = targets.update_target(
            db, created.id, {"target_amount": Decimal("250"), "scope_type": "ACCOUNT", "account_id": other.id},
        )

        assert updated.scope_type == TargetScope.ACCOUNT
        assert updated.invested == Decimal("500")
        assert updated.progress == Decimal("2.0000")
        assert updated.status == TargetStatus.EXCEEDED

    def test_update_unknown_field(self, db, targets):
        created = targets.create_target(db, "AAPL", Decimal("100"))

        with pytest.raises(ValidationError):
            targets.update_target(db, created.id, {"invested": Decimal("1")})

    def test_list_and_delete(self, db, targets):
        first = targets.create_target(db, "AAPL", Decimal("100"))
        targets.create_target(db, "MSFT", Decimal("100"))

        targets.delete_target(db, first.id)

        assert [t.symbol for t in targets.list_targets(db)] == ["MSFT"]
        with pytest.raises(NotFoundError):
            targets.get_target(db, first.id)

    def test_account_delete_removes_its_targets(self, db, targets):
        account = create_account(db, name="Closing")
        targets.create_target(db, "AAPL", Decimal("100"), TargetScope.ACCOUNT, account.id)
        targets.create_target(db, "AAPL", Decimal("100"))

        AccountService().delete_account(db, account.id)

        assert db.query(InvestmentTarget).count() == 1
