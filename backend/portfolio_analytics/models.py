# backend/portfolio_analytics/models.py
import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Date, DateTime, ForeignKey, Enum, Numeric, UniqueConstraint, Boolean, Index, CheckConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Enums help enforce data integrity at the database level
class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    FEE = "FEE"


class FundingSource(str, enum.Enum):
    """Where the money for a buy came from."""
    CASH = "CASH"          # Paid from the account's cash balance
    EXTERNAL = "EXTERNAL"  # Paid from outside; the ledger writes a funding deposit alongside


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    accounts: Mapped[list["Account"]] = relationship(back_populates="owner", cascade="all, delete-orphan")
    sub_portfolios: Mapped[list["SubPortfolio"]] = relationship(back_populates="owner", cascade="all, delete-orphan")
    assets: Mapped[list["Asset"]] = relationship(back_populates="owner", cascade="all, delete-orphan")


class Account(Base):
    """A brokerage or bank account. Owns a cash balance and tax lots."""
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    account_type: Mapped[str | None] = mapped_column(String, nullable=True)  # e.g. "Brokerage", "IRA"
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    owner: Mapped["User"] = relationship(back_populates="accounts")


class SubPortfolio(Base):
    """User-defined bucket of assets (e.g. "Core", "Satellite")."""
    __tablename__ = "sub_portfolios"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String)

    owner: Mapped["User"] = relationship(back_populates="sub_portfolios")
    assets: Mapped[list["Asset"]] = relationship(back_populates="sub_portfolio")


class Asset(Base):
    """
    A holding the user tracks.

    The tag columns (asset_type ... factor_tag) are free-form labels used
    only as grouping keys by the performance lenses.
    """
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint('user_id', 'ticker', name='uq_asset_user_ticker'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    ticker: Mapped[str] = mapped_column(String, index=True)  # e.g. "VTI"
    name: Mapped[str | None] = mapped_column(String, nullable=True)

    asset_type: Mapped[str | None] = mapped_column(String, nullable=True)     # e.g. "Equity", "Bond"
    asset_subtype: Mapped[str | None] = mapped_column(String, nullable=True)  # e.g. "ETF", "Treasury"
    geography: Mapped[str | None] = mapped_column(String, nullable=True)      # e.g. "US", "International"
    size_tag: Mapped[str | None] = mapped_column(String, nullable=True)       # e.g. "Large Cap"
    factor_tag: Mapped[str | None] = mapped_column(String, nullable=True)     # e.g. "Value", "Growth"
    sub_portfolio_id: Mapped[int | None] = mapped_column(ForeignKey("sub_portfolios.id"), nullable=True, index=True)

    owner: Mapped["User"] = relationship(back_populates="assets")
    sub_portfolio: Mapped["SubPortfolio | None"] = relationship(back_populates="assets")
    transactions: Mapped[list["Transaction"]] = relationship(back_populates="asset")


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        # Point-in-time loads: "all transactions of user X up to date Y"
        Index('ix_transaction_user_date', 'user_id', 'date'),
        Index('ix_transaction_account_asset_date', 'account_id', 'asset_id', 'date'),
        CheckConstraint('amount >= 0', name='ck_transaction_amount_non_negative'),
        CheckConstraint('fees >= 0', name='ck_transaction_fees_non_negative'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id"), nullable=True, index=True)
    asset_id: Mapped[int | None] = mapped_column(ForeignKey("assets.id"), nullable=True, index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))
    date: Mapped[date] = mapped_column(Date, index=True)

    # Non-negative magnitudes; direction comes from transaction_type
    # Numeric(18, 8) supports values up to 9,999,999,999.99999999
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    price_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    fees: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))

    # Written by the ledger when a sell consumes lots
    realized_gain: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)

    funding_source: Mapped[FundingSource] = mapped_column(Enum(FundingSource), default=FundingSource.CASH)
    # True on the deposit the ledger auto-creates for an externally funded buy
    is_funding_record: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    account: Mapped["Account | None"] = relationship()
    asset: Mapped["Asset | None"] = relationship(back_populates="transactions")


class TaxLot(Base):
    """
    Open purchase lot as maintained by the ledger.

    remaining_quantity is the CURRENT state only; historical composition is
    rebuilt by FIFO replay of transactions.
    """
    __tablename__ = "tax_lots"
    __table_args__ = (
        Index('ix_tax_lot_account_asset_date', 'account_id', 'asset_id', 'purchase_date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id"), nullable=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id"), index=True)
    purchase_date: Mapped[date] = mapped_column(Date)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    cost_basis_per_unit: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    remaining_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8))

    asset: Mapped["Asset"] = relationship()


class HistoricalPrice(Base):
    """
    Daily close cache keyed by ticker.

    Filled from the market data provider on cache miss; read by the price
    store before any live fetch.
    """
    __tablename__ = "historical_prices"
    __table_args__ = (
        UniqueConstraint('ticker', 'date', name='uq_price_ticker_date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    ticker: Mapped[str] = mapped_column(String, index=True)
    date: Mapped[date] = mapped_column(Date, index=True)
    close_price: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    provider: Mapped[str] = mapped_column(String(50), default="yahoo")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
