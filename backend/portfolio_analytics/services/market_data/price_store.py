# backend/portfolio_analytics/services/market_data/price_store.py
"""
Cached price store.

Implements PriceStoreProtocol on top of the historical_prices table and a
MarketDataProvider:

1. Read cached closes for every ticker in one query
2. Decide which tickers need a provider round trip:
   - nothing cached in the range
   - the cache stops short of the range end (or starts well after the
     range start) and was last written more than PRICE_STALENESS_HOURS ago
3. Fetch those tickers in parallel (ThreadPoolExecutor, one ticker per
   task, PRICE_FETCH_MAX_WORKERS workers)
4. Upsert the fetched closes on the caller's session and merge them into
   the result

get_latest_on_or_before() answers the open-ended "last close at or before a
date" lookup from the cache, for series too sparse to reach back into the
lookback window.

Only provider calls run in worker threads. The SQLAlchemy session is used
exclusively from the calling thread.

Failure handling:
- TickerNotFoundError: logged, the ticker is simply absent from the result
  (the engine reports it as a missing price)
- Any other MarketDataError or CircuitBreakerOpen: propagated
"""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from portfolio_analytics.config import Settings, settings as default_settings
from portfolio_analytics.models import HistoricalPrice
from portfolio_analytics.services.exceptions import TickerNotFoundError
from portfolio_analytics.services.market_data.base import DailyClose, MarketDataProvider
from portfolio_analytics.services.performance.types import PricePoint

logger = logging.getLogger(__name__)

# Weekends and holidays: a cache ending this close to the range end is complete
_COVERAGE_SLACK_DAYS = 4


class CachedPriceStore:
    """
    Database-backed price store with live fetch on cache miss.

    Attributes:
        _provider: Market data source used on cache miss
        _settings: Live-fetch switch, worker count and staleness threshold
    """

    def __init__(
            self,
            provider: MarketDataProvider,
            settings: Settings | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings or default_settings

    @property
    def provider(self) -> MarketDataProvider:
        return self._provider

    # =========================================================================
    # PriceStoreProtocol
    # =========================================================================

    def get_price_series(
            self,
            db: Session,
            tickers: Iterable[str],
            start_date: date,
            end_date: date,
    ) -> dict[str, list[PricePoint]]:
        """
        Daily closes per ticker for [start_date, end_date].

        Args:
            db: Database session (also used to write fetched prices back)
            tickers: Ticker symbols
            start_date: First date (inclusive)
            end_date: Last date (inclusive)

        Returns:
            ticker -> closes in date order; tickers without any price are
            absent

        Raises:
            MarketDataError: Provider failure other than an unknown ticker
            CircuitBreakerOpen: Provider circuit is open
        """
        symbols = sorted({t.strip().upper() for t in tickers if t and t.strip()})
        if not symbols:
            return {}

        cached = self._read_cache(db, symbols, start_date, end_date)
        result = {ticker: points for ticker, points in cached.items() if points}

        if not self._settings.price_live_fetch_enabled:
            return result

        to_fetch = [
            ticker for ticker in symbols
            if self._needs_fetch(db, ticker, cached.get(ticker, []), start_date, end_date)
        ]
        if not to_fetch:
            return result

        logger.info(f"Fetching prices for {len(to_fetch)} tickers from {self._provider.name}")

        fetched = self._fetch_parallel(
            to_fetch,
            lambda ticker: self._provider.get_historical_prices(ticker, start_date, end_date).prices,
        )

        if fetched:
            self._store_prices(db, fetched)

        for ticker, closes in fetched.items():
            merged = {p.date: p for p in result.get(ticker, [])}
            for close in closes:
                merged[close.date] = PricePoint(ticker=ticker, date=close.date, close=close.close)
            result[ticker] = [merged[d] for d in sorted(merged)]

        return result

    def get_current_prices(
            self,
            db: Session,
            tickers: Iterable[str],
    ) -> dict[str, Decimal]:
        """
        Latest quote per ticker from the provider.

        Returns an empty mapping when live fetching is disabled; the engine
        then values today at the last cached close.
        """
        symbols = sorted({t.strip().upper() for t in tickers if t and t.strip()})
        if not symbols or not self._settings.price_live_fetch_enabled:
            return {}

        quotes = self._fetch_parallel(symbols, self._provider.get_latest_price)
        return {ticker: price for ticker, price in quotes.items() if price is not None and price > 0}

    def get_latest_on_or_before(
            self,
            db: Session,
            tickers: Iterable[str],
            as_of: date,
    ) -> dict[str, PricePoint]:
        """
        Most recent cached close at or before as_of, per ticker, with no
        lower bound on its date.

        Seeds forward fill when a series has nothing early enough inside
        the lookback window (sparse or monthly closes). Cache only: the
        provider is never asked for open-ended history.
        """
        symbols = sorted({t.strip().upper() for t in tickers if t and t.strip()})
        if not symbols:
            return {}

        latest = (
            select(HistoricalPrice.ticker, func.max(HistoricalPrice.date).label("latest_date"))
            .where(HistoricalPrice.ticker.in_(symbols), HistoricalPrice.date <= as_of)
            .group_by(HistoricalPrice.ticker)
            .subquery()
        )
        rows = db.execute(
            select(HistoricalPrice.ticker, HistoricalPrice.date, HistoricalPrice.close_price)
            .join(
                latest,
                (HistoricalPrice.ticker == latest.c.ticker)
                & (HistoricalPrice.date == latest.c.latest_date),
            )
        ).all()

        return {
            ticker: PricePoint(ticker=ticker, date=price_date, close=Decimal(close))
            for ticker, price_date, close in rows
        }

    # =========================================================================
    # CACHE
    # =========================================================================

    def _read_cache(
            self,
            db: Session,
            tickers: list[str],
            start_date: date,
            end_date: date,
    ) -> dict[str, list[PricePoint]]:
        rows = db.execute(
            select(HistoricalPrice.ticker, HistoricalPrice.date, HistoricalPrice.close_price)
            .where(
                HistoricalPrice.ticker.in_(tickers),
                HistoricalPrice.date >= start_date,
                HistoricalPrice.date <= end_date,
            )
            .order_by(HistoricalPrice.ticker, HistoricalPrice.date)
        ).all()

        cached: dict[str, list[PricePoint]] = {}
        for ticker, price_date, close in rows:
            cached.setdefault(ticker, []).append(
                PricePoint(ticker=ticker, date=price_date, close=Decimal(close))
            )

        logger.debug(f"Price cache: {len(rows)} rows for {len(cached)}/{len(tickers)} tickers")
        return cached

    def _needs_fetch(
            self,
            db: Session,
            ticker: str,
            cached: list[PricePoint],
            start_date: date,
            end_date: date,
    ) -> bool:
        if not cached:
            return True

        slack = timedelta(days=_COVERAGE_SLACK_DAYS)
        effective_end = min(end_date, date.today())
        covers_end = cached[-1].date >= effective_end - slack
        covers_start = cached[0].date <= start_date + slack
        if covers_end and covers_start:
            return False

        # Coverage gaps may be permanent (young ticker, market closed);
        # refetch at most once per staleness window
        last_written = db.scalar(
            select(HistoricalPrice.created_at)
            .where(HistoricalPrice.ticker == ticker)
            .order_by(HistoricalPrice.created_at.desc())
            .limit(1)
        )
        return self._is_stale(last_written)

    def _is_stale(self, written_at: datetime | None) -> bool:
        if written_at is None:
            return True
        if written_at.tzinfo is None:
            # SQLite drops the offset
            written_at = written_at.replace(tzinfo=timezone.utc)
        threshold = timedelta(hours=self._settings.price_staleness_hours)
        return datetime.now(timezone.utc) - written_at > threshold

    def _store_prices(self, db: Session, fetched: dict[str, list[DailyClose]]) -> int:
        """
        Upsert fetched closes in one statement and commit.

        Returns:
            Number of rows written
        """
        records = [
            {
                "ticker": ticker,
                "date": close.date,
                "close_price": close.close,
                "provider": self._provider.name,
                "created_at": datetime.now(timezone.utc),
            }
            for ticker, closes in fetched.items()
            for close in closes
        ]
        if not records:
            return 0

        insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert

        try:
            stmt = insert(HistoricalPrice).values(records)
            stmt = stmt.on_conflict_do_update(
                index_elements=["ticker", "date"],
                set_={
                    "close_price": stmt.excluded.close_price,
                    "provider": stmt.excluded.provider,
                    "created_at": stmt.excluded.created_at,
                },
            )
            db.execute(stmt)
            db.commit()
        except Exception as e:
            logger.error(f"Error storing fetched prices: {e}")
            db.rollback()
            raise

        logger.info(f"Stored {len(records)} prices for {len(fetched)} tickers")
        return len(records)

    # =========================================================================
    # PROVIDER FAN-OUT
    # =========================================================================

    def _fetch_parallel(
            self,
            tickers: list[str],
            fetch: Callable[[str], Any],
    ) -> dict[str, Any]:
        """
        Run fetch(ticker) for every ticker on a worker pool.

        Unknown tickers are dropped from the result. The first other
        failure is re-raised once the pool has drained.
        """
        results: dict[str, Any] = {}
        first_error: Exception | None = None
        workers = min(self._settings.price_fetch_max_workers, len(tickers))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="price-fetch") as executor:
            futures = {executor.submit(fetch, ticker): ticker for ticker in tickers}

            for future in as_completed(futures):
                ticker = futures[future]
                try:
                    results[ticker] = future.result()
                except TickerNotFoundError:
                    logger.warning(f"Ticker {ticker} not found at {self._provider.name}; treated as missing")
                except Exception as e:
                    logger.error(f"Price fetch failed for {ticker}: {e}")
                    if first_error is None:
                        first_error = e

        if first_error is not None:
            raise first_error

        return results
