# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Mock market data provider
- ORM factories (users, accounts, assets, transactions, lots, prices)
- Engine-type factories and in-memory stores for PerformanceService tests
"""

import os

# Must run before portfolio_analytics.config is imported anywhere
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_analytics.models import (
    Base,
    Account,
    Asset,
    FundingSource,
    HistoricalPrice,
    SubPortfolio,
    TaxLot as TaxLotModel,
    Transaction as TransactionModel,
    TransactionType,
    User,
)
from portfolio_analytics.services.exceptions import TickerNotFoundError
from portfolio_analytics.services.market_data.base import (
    DailyClose,
    HistoricalPricesResult,
    MarketDataProvider,
)
from portfolio_analytics.services.performance.types import (
    AccountInfo,
    AssetInfo,
    Ledger,
    PricePoint,
    TaxLot,
    Transaction,
)


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
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
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

    Serves configured closes per ticker; unknown tickers raise
    TickerNotFoundError. Errors can be injected per ticker. Calls may come
    from the price store's worker threads, so counters are locked.
    """

    def __init__(self):
        self._prices: dict[str, list[DailyClose]] = {}
        self._latest: dict[str, Decimal] = {}
        self._errors: dict[str, Exception] = {}
        self._lock = threading.Lock()
        self.historical_calls: list[tuple[str, date, date]] = []
        self.latest_calls: list[str] = []

    @property
    def name(self) -> str:
        return "mock"

    def set_prices(self, ticker: str, closes: dict[date, str | Decimal]) -> None:
        """Configure daily closes for a ticker."""
        self._prices[ticker.upper()] = [
            DailyClose(date=d, close=Decimal(str(price)))
            for d, price in sorted(closes.items())
        ]

    def set_latest(self, ticker: str, price: str | Decimal) -> None:
        self._latest[ticker.upper()] = Decimal(str(price))

    def set_error(self, ticker: str, error: Exception) -> None:
        """Configure an error for every call on a ticker."""
        self._errors[ticker.upper()] = error

    def reset(self) -> None:
        self._prices.clear()
        self._latest.clear()
        self._errors.clear()
        self.historical_calls.clear()
        self.latest_calls.clear()

    @property
    def historical_call_count(self) -> int:
        return len(self.historical_calls)

    def get_historical_prices(
            self,
            ticker: str,
            start_date: date,
            end_date: date,
    ) -> HistoricalPricesResult:
        ticker = ticker.upper()
        with self._lock:
            self.historical_calls.append((ticker, start_date, end_date))

        if ticker in self._errors:
            raise self._errors[ticker]
        if ticker not in self._prices:
            raise TickerNotFoundError(ticker=ticker, provider=self.name)

        return HistoricalPricesResult(
            ticker=ticker,
            prices=[p for p in self._prices[ticker] if start_date <= p.date <= end_date],
            from_date=start_date,
            to_date=end_date,
        )

    def get_latest_price(self, ticker: str) -> Decimal | None:
        ticker = ticker.upper()
        with self._lock:
            self.latest_calls.append(ticker)

        if ticker in self._errors:
            raise self._errors[ticker]
        if ticker in self._latest:
            return self._latest[ticker]
        if ticker in self._prices:
            return self._prices[ticker][-1].close if self._prices[ticker] else None
        raise TickerNotFoundError(ticker=ticker, provider=self.name)


@pytest.fixture
def mock_provider() -> MockMarketDataProvider:
    """Fresh mock provider for each test."""
    return MockMarketDataProvider()


# =============================================================================
# ORM FACTORIES
# =============================================================================

def create_user(db: Session, email: str = "investor@example.com", is_active: bool = True) -> User:
    user = User(email=email, display_name="Investor", is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_account(db: Session, user: User, name: str = "Brokerage") -> Account:
    account = Account(user_id=user.id, name=name, account_type="Brokerage")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def create_sub_portfolio(db: Session, user: User, name: str = "Core") -> SubPortfolio:
    sub_portfolio = SubPortfolio(user_id=user.id, name=name)
    db.add(sub_portfolio)
    db.commit()
    db.refresh(sub_portfolio)
    return sub_portfolio


def create_asset(
        db: Session,
        user: User,
        ticker: str = "VTI",
        sub_portfolio: SubPortfolio | None = None,
        **tags: str,
) -> Asset:
    """Create an asset; tags are asset_type, asset_subtype, geography, size_tag, factor_tag."""
    asset = Asset(
        user_id=user.id,
        ticker=ticker,
        name=f"{ticker} Fund",
        sub_portfolio_id=sub_portfolio.id if sub_portfolio else None,
        **tags,
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


def create_transaction(
        db: Session,
        user: User,
        transaction_type: TransactionType,
        tx_date: date,
        amount: str | Decimal = "0",
        account: Account | None = None,
        asset: Asset | None = None,
        quantity: str | Decimal | None = None,
        price: str | Decimal | None = None,
        fees: str | Decimal = "0",
        funding_source: FundingSource = FundingSource.CASH,
        is_funding_record: bool = False,
) -> TransactionModel:
    transaction = TransactionModel(
        user_id=user.id,
        account_id=account.id if account else None,
        asset_id=asset.id if asset else None,
        transaction_type=transaction_type,
        date=tx_date,
        quantity=Decimal(str(quantity)) if quantity is not None else None,
        price_per_unit=Decimal(str(price)) if price is not None else None,
        amount=Decimal(str(amount)),
        fees=Decimal(str(fees)),
        funding_source=funding_source,
        is_funding_record=is_funding_record,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction


def create_lot(
        db: Session,
        user: User,
        account: Account,
        asset: Asset,
        purchase_date: date,
        quantity: str | Decimal,
        cost: str | Decimal,
        remaining: str | Decimal | None = None,
) -> TaxLotModel:
    lot = TaxLotModel(
        user_id=user.id,
        account_id=account.id,
        asset_id=asset.id,
        purchase_date=purchase_date,
        quantity=Decimal(str(quantity)),
        cost_basis_per_unit=Decimal(str(cost)),
        remaining_quantity=Decimal(str(remaining if remaining is not None else quantity)),
    )
    db.add(lot)
    db.commit()
    db.refresh(lot)
    return lot


def create_price(
        db: Session,
        ticker: str,
        price_date: date,
        close: str | Decimal,
        created_at: datetime | None = None,
) -> HistoricalPrice:
    price = HistoricalPrice(
        ticker=ticker,
        date=price_date,
        close_price=Decimal(str(close)),
        provider="seed",
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.add(price)
    db.commit()
    return price


# =============================================================================
# ENGINE-TYPE FACTORIES
# =============================================================================

def make_tx(
        tx_id: int,
        tx_date: date,
        transaction_type: TransactionType,
        amount: str | Decimal = "0",
        asset_id: int | None = None,
        account_id: int | None = 1,
        quantity: str | Decimal | None = None,
        price: str | Decimal | None = None,
        fees: str | Decimal = "0",
        funding_source: FundingSource = FundingSource.CASH,
        is_funding_record: bool = False,
        realized_gain: str | Decimal | None = None,
) -> Transaction:
    """Engine Transaction with string-friendly numbers."""
    return Transaction(
        id=tx_id,
        date=tx_date,
        transaction_type=transaction_type,
        amount=Decimal(str(amount)),
        fees=Decimal(str(fees)),
        asset_id=asset_id,
        account_id=account_id,
        quantity=Decimal(str(quantity)) if quantity is not None else None,
        price_per_unit=Decimal(str(price)) if price is not None else None,
        realized_gain=Decimal(str(realized_gain)) if realized_gain is not None else None,
        funding_source=funding_source,
        is_funding_record=is_funding_record,
    )


def buy(tx_id, tx_date, asset_id, quantity, price, account_id=1, fees="0", **kwargs) -> Transaction:
    amount = Decimal(str(quantity)) * Decimal(str(price))
    return make_tx(
        tx_id, tx_date, TransactionType.BUY, amount,
        asset_id=asset_id, account_id=account_id,
        quantity=quantity, price=price, fees=fees, **kwargs,
    )


def sell(tx_id, tx_date, asset_id, quantity, price, account_id=1, fees="0", **kwargs) -> Transaction:
    amount = Decimal(str(quantity)) * Decimal(str(price))
    return make_tx(
        tx_id, tx_date, TransactionType.SELL, amount,
        asset_id=asset_id, account_id=account_id,
        quantity=quantity, price=price, fees=fees, **kwargs,
    )


def deposit(tx_id, tx_date, amount, account_id=1, **kwargs) -> Transaction:
    return make_tx(tx_id, tx_date, TransactionType.DEPOSIT, amount, account_id=account_id, **kwargs)


def withdraw(tx_id, tx_date, amount, account_id=1, **kwargs) -> Transaction:
    return make_tx(tx_id, tx_date, TransactionType.WITHDRAWAL, amount, account_id=account_id, **kwargs)


def points(ticker: str, closes: dict[date, str]) -> list[PricePoint]:
    return [PricePoint(ticker=ticker, date=d, close=Decimal(price)) for d, price in sorted(closes.items())]


def sample_ledger(
        transactions: list[Transaction],
        lots: list[TaxLot] | None = None,
) -> Ledger:
    """
    Two accounts and three tagged assets.

        1 VTI   Equity / US        / Core
        2 VXUS  Equity / Intl      / Satellite
        3 TLT   Bond   / (no geo)  / (no sub-portfolio)
    """
    return Ledger(
        transactions=transactions,
        lots=lots or [],
        assets={
            1: AssetInfo(id=1, ticker="VTI", asset_type="Equity", geography="US",
                         sub_portfolio_id=1, sub_portfolio_name="Core"),
            2: AssetInfo(id=2, ticker="VXUS", asset_type="Equity", geography="International",
                         sub_portfolio_id=2, sub_portfolio_name="Satellite"),
            3: AssetInfo(id=3, ticker="TLT", asset_type="Bond"),
        },
        accounts={
            1: AccountInfo(id=1, name="Brokerage"),
            2: AccountInfo(id=2, name="IRA"),
        },
    )


# =============================================================================
# IN-MEMORY STORES
# =============================================================================

class InMemoryLedgerStore:
    """LedgerStoreProtocol over a fixed Ledger."""

    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self.calls: list[tuple[int, date]] = []

    def load_ledger(self, db, user_id: int, end_date: date) -> Ledger:
        self.calls.append((user_id, end_date))
        return Ledger(
            transactions=[tx for tx in self.ledger.transactions if tx.date <= end_date],
            lots=list(self.ledger.lots),
            assets=dict(self.ledger.assets),
            accounts=dict(self.ledger.accounts),
        )


class InMemoryPriceStore:
    """PriceStoreProtocol over fixed series and quotes."""

    def __init__(
            self,
            series: dict[str, list[PricePoint]] | None = None,
            current: dict[str, Decimal] | None = None,
    ):
        self.series = series or {}
        self.current = current or {}
        self.series_calls: list[tuple[list[str], date, date]] = []
        self.current_calls: list[list[str]] = []
        self.latest_calls: list[tuple[list[str], date]] = []

    def get_price_series(self, db, tickers, start_date: date, end_date: date) -> dict[str, list[PricePoint]]:
        tickers = list(tickers)
        self.series_calls.append((tickers, start_date, end_date))
        result = {}
        for ticker in tickers:
            in_range = [p for p in self.series.get(ticker, []) if start_date <= p.date <= end_date]
            if in_range:
                result[ticker] = in_range
        return result

    def get_current_prices(self, db, tickers) -> dict[str, Decimal]:
        tickers = list(tickers)
        self.current_calls.append(tickers)
        return {t: self.current[t] for t in tickers if t in self.current}

    def get_latest_on_or_before(self, db, tickers, as_of: date) -> dict[str, PricePoint]:
        tickers = list(tickers)
        self.latest_calls.append((tickers, as_of))
        result = {}
        for ticker in tickers:
            earlier = [p for p in self.series.get(ticker, []) if p.date <= as_of]
            if earlier:
                result[ticker] = max(earlier, key=lambda p: p.date)
        return result
