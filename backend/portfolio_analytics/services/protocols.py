# backend/portfolio_analytics/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- SqlLedgerStore and CachedPriceStore satisfy these without inheriting
- Tests pass in-memory fakes to PerformanceService
- The engine depends on the shape of its collaborators, not on SQLAlchemy

Stores are long-lived singletons; the request's Session is passed per call.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from portfolio_analytics.services.performance.types import Ledger, PricePoint


class LedgerStoreProtocol(Protocol):
    """Interface required by PerformanceService to read a user's ledger."""

    def load_ledger(
        self,
        db: Session,
        user_id: int,
        end_date: date,
    ) -> Ledger:
        ...


class PriceStoreProtocol(Protocol):
    """Interface required by PerformanceService to read prices."""

    def get_price_series(
        self,
        db: Session,
        tickers: Iterable[str],
        start_date: date,
        end_date: date,
    ) -> dict[str, list[PricePoint]]:
        ...

    def get_current_prices(
        self,
        db: Session,
        tickers: Iterable[str],
    ) -> dict[str, Decimal]:
        ...

    def get_latest_on_or_before(
        self,
        db: Session,
        tickers: Iterable[str],
        as_of: date,
    ) -> dict[str, PricePoint]:
        ...
