# backend/portfolio_tracker/models.py
import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class AccountType(str, enum.Enum):
    STOCK = "STOCK"
    CASH = "CASH"
    MIXED = "MIXED"


class TargetScope(str, enum.Enum):
    ALL = "ALL"          # Every account
    ACCOUNT = "ACCOUNT"  # One account


class SnapshotSource(str, enum.Enum):
    """What produced a raw snapshot. Informational only; averaging ignores it."""
    LIVE = "LIVE"          # On-demand refresh
    OPEN = "OPEN"          # Scheduled market-open capture
    CLOSE = "CLOSE"        # Scheduled market-close capture
    BACKFILL = "BACKFILL"  # Historical recompute step
    MANUAL = "MANUAL"


class Account(Base):
    """
    A brokerage account. Groups transactions, holdings and cash accounts.
    """
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, unique=True)
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType), default=AccountType.MIXED)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    transactions: Mapped[list["Transaction"]] = relationship(back_populates="account")
    holdings: Mapped[list["Holding"]] = relationship(back_populates="account")
    cash_accounts: Mapped[list["CashAccount"]] = relationship(back_populates="account")


class Transaction(Base):
    """
    One entry of the append-only trade log.

    Rows are only written through the ledger service, which keeps holdings
    and snapshots consistent with them.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        # Replay of one (symbol, account) pair in trade order
        Index('ix_transaction_symbol_account_date', 'symbol', 'account_id', 'trade_date'),
        CheckConstraint('price > 0', name='ck_transaction_price_positive'),
        CheckConstraint('quantity > 0', name='ck_transaction_quantity_positive'),
        CheckConstraint('fee >= 0', name='ck_transaction_fee_non_negative'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="RESTRICT"), index=True)
    symbol: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))
    trade_date: Mapped[date] = mapped_column(Date, index=True)

    # Numeric(18, 8) supports values up to 9,999,999,999.99999999
    price: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    fee: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    currency: Mapped[str] = mapped_column(String, default="USD")

    # Optional cash account debited on buys and credited on sells
    cash_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("cash_accounts.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    account: Mapped["Account"] = relationship(back_populates="transactions")


class Holding(Base):
    """
    Current position for one (symbol, account) pair.

    Derived data: rebuilt from the transaction log by the ledger service
    after every mutation. ``last_price`` is the only column written from
    elsewhere (live valuation).
    """
    __tablename__ = "holdings"
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='ck_holding_quantity_non_negative'),
        CheckConstraint('avg_cost >= 0', name='ck_holding_avg_cost_non_negative'),
    )

    symbol: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="RESTRICT"), primary_key=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    avg_cost: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    last_price: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    currency: Mapped[str] = mapped_column(String, default="USD")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    account: Mapped["Account"] = relationship(back_populates="holdings")


class CashAccount(Base):
    """
    Current cash balance held in an account.

    There is no balance history: historical valuations count the current
    amount from the day the cash account was created.
    """
    __tablename__ = "cash_accounts"
    __table_args__ = (
        CheckConstraint('amount >= 0', name='ck_cash_amount_non_negative'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="RESTRICT"), index=True)
    name: Mapped[str] = mapped_column(String)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    currency: Mapped[str] = mapped_column(String, default="USD")
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    account: Mapped["Account"] = relationship(back_populates="cash_accounts")


class RawSnapshot(Base):
    """
    One valuation capture. Append-only; pruned after the retention window.

    ``date`` is the trading-calendar date the capture belongs to, which for
    a backfill step is the date being reconstructed rather than the date of
    ``timestamp``.
    """
    __tablename__ = "raw_snapshots"
    __table_args__ = (
        Index('ix_raw_snapshot_date_timestamp', 'date', 'timestamp'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    date: Mapped[date] = mapped_column(Date, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    total_market_value: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    cash_balance: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    currency: Mapped[str] = mapped_column(String, default="USD")
    source: Mapped[SnapshotSource] = mapped_column(Enum(SnapshotSource), default=SnapshotSource.LIVE)


class DailySnapshot(Base):
    """
    Canonical value for one calendar date: the mean of that date's raw snapshots.
    """
    __tablename__ = "daily_snapshots"

    date: Mapped[date] = mapped_column(Date, primary_key=True)
    total_market_value: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    cash_balance: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    currency: Mapped[str] = mapped_column(String, default="USD")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class InvestmentTarget(Base):
    """
    Amount an investor plans to put into one symbol.

    Progress is not stored: it is derived from the trade log on read.
    An ALL-scope target has no account_id; an ACCOUNT-scope target
    counts only that account's trades.
    """
    __tablename__ = "investment_targets"
    __table_args__ = (
        UniqueConstraint('symbol', 'scope_type', 'account_id', name='uq_target_symbol_scope_account'),
        CheckConstraint('target_amount > 0', name='ck_target_amount_positive'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    symbol: Mapped[str] = mapped_column(String, index=True)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    scope_type: Mapped[TargetScope] = mapped_column(Enum(TargetScope), default=TargetScope.ALL)
    account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    account: Mapped["Account | None"] = relationship()
