# backend/portfolio_analytics/services/performance/prices.py
"""
Price resolver: point-in-time price lookup over sparse daily series.

Given a ticker and a date, returns the latest known close AT OR BEFORE that
date (forward fill). If the ticker's history starts after the date, the
earliest available close is used instead, so a position bought shortly
before its first recorded price is not valued at zero. A ticker with no
prices at all resolves to None and is remembered as missing.

An optional current-price feed (one fresh quote per ticker) takes over for
dates on or after `today`, so today's valuation uses the freshest quote
while history uses closes.

The resolver is built once per request from what the price store returned
and discarded afterwards; it never fetches anything itself.

Usage:
    resolver = PriceResolver.from_points(points, current_prices={"VTI": Decimal("251.30")})
    resolver.resolve("VTI", date(2024, 6, 30))
    resolver.missing_tickers  # tickers that resolved to None
"""

import logging
from bisect import bisect_right
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from portfolio_analytics.services.performance.types import PricePoint

logger = logging.getLogger(__name__)


class PriceResolver:
    """
    Forward-fill price lookup for a fixed set of ticker series.

    Each series is kept as two parallel sorted lists (dates, closes) and
    searched with bisect, so every lookup is O(log n).
    """

    def __init__(
            self,
            series: Mapping[str, Iterable[PricePoint]],
            current_prices: Mapping[str, Decimal] | None = None,
            today: date | None = None,
    ) -> None:
        self._dates: dict[str, list[date]] = {}
        self._closes: dict[str, list[Decimal]] = {}

        for ticker, points in series.items():
            # Last point wins on duplicate dates
            by_date = {p.date: p.close for p in points if p.close is not None}
            if not by_date:
                continue
            ordered = sorted(by_date)
            self._dates[ticker] = ordered
            self._closes[ticker] = [by_date[d] for d in ordered]

        self._current: dict[str, Decimal] = {
            ticker: price
            for ticker, price in (current_prices or {}).items()
            if price is not None and price > 0
        }
        self._today = today or date.today()
        self._missing: set[str] = set()

    @classmethod
    def from_points(
            cls,
            points: Iterable[PricePoint],
            current_prices: Mapping[str, Decimal] | None = None,
            today: date | None = None,
    ) -> "PriceResolver":
        """Build from a flat iterable of points (any ticker, any order)."""
        series: dict[str, list[PricePoint]] = defaultdict(list)
        for point in points:
            series[point.ticker].append(point)
        return cls(series, current_prices=current_prices, today=today)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def has_prices(self, ticker: str) -> bool:
        return ticker in self._dates or ticker in self._current

    def price_at(self, ticker: str, as_of: date) -> Decimal | None:
        """
        Historical close at or before as_of, else the earliest close.

        Returns:
            Price, or None when the ticker has no historical prices
        """
        dates = self._dates.get(ticker)
        if not dates:
            return None

        idx = bisect_right(dates, as_of) - 1
        if idx < 0:
            # Nothing precedes as_of: earliest known price
            return self._closes[ticker][0]
        return self._closes[ticker][idx]

    def current_price(self, ticker: str) -> Decimal | None:
        return self._current.get(ticker)

    def resolve(self, ticker: str, as_of: date) -> Decimal | None:
        """
        Price used to value a position on as_of.

        The current-price feed wins for today (and later); otherwise the
        forward-filled close. None marks the ticker as missing.
        """
        price = None
        if as_of >= self._today:
            price = self._current.get(ticker)
        if price is None:
            price = self.price_at(ticker, as_of)

        if price is None and ticker not in self._missing:
            logger.warning(f"No price data for {ticker}; valuing at 0")
            self._missing.add(ticker)

        return price

    def first_date(self, ticker: str) -> date | None:
        dates = self._dates.get(ticker)
        return dates[0] if dates else None

    @property
    def missing_tickers(self) -> list[str]:
        """Tickers that resolved to no price, sorted."""
        return sorted(self._missing)

    @property
    def tickers(self) -> list[str]:
        return sorted(set(self._dates) | set(self._current))
