# backend/tests/services/test_price_store.py
"""
Tests for CachedPriceStore.

Covers the read-through cache on the historical_prices table:
- Cache hits never reach the provider
- Misses are fetched, stored and served from the cache afterwards
- Unknown tickers are dropped, other provider failures propagate
- Partial coverage is refetched only once the cache is stale
- Current quotes and the live-fetch switch
- Open-ended latest close at or before a date
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from portfolio_analytics.config import Settings
from portfolio_analytics.models import HistoricalPrice
from portfolio_analytics.services.exceptions import ProviderUnavailableError
from portfolio_analytics.services.market_data.price_store import CachedPriceStore
from tests.conftest import create_price

START = date(2024, 1, 2)
END = date(2024, 1, 31)

CLOSES = {
    date(2024, 1, 2): "100",
    date(2024, 1, 16): "104",
    date(2024, 1, 31): "108",
}


def make_store(provider, **overrides) -> CachedPriceStore:
    return CachedPriceStore(provider, Settings(environment="test", **overrides))


def stored_rows(db, ticker: str) -> int:
    return db.scalar(select(func.count()).select_from(HistoricalPrice).where(HistoricalPrice.ticker == ticker))


# =============================================================================
# PRICE SERIES
# =============================================================================

class TestGetPriceSeries:

    def test_cache_hit_skips_provider(self, db, mock_provider):
        for d, close in CLOSES.items():
            create_price(db, "VTI", d, close)

        result = make_store(mock_provider).get_price_series(db, ["VTI"], START, END)

        assert [p.close for p in result["VTI"]] == [Decimal("100"), Decimal("104"), Decimal("108")]
        assert mock_provider.historical_call_count == 0

    def test_miss_fetches_stores_then_hits(self, db, mock_provider):
        mock_provider.set_prices("VTI", CLOSES)
        store = make_store(mock_provider)

        first = store.get_price_series(db, ["vti"], START, END)
        second = store.get_price_series(db, ["VTI"], START, END)

        assert [p.date for p in first["VTI"]] == sorted(CLOSES)
        assert second == first
        assert mock_provider.historical_calls == [("VTI", START, END)]
        assert stored_rows(db, "VTI") == 3

    def test_only_range_is_returned(self, db, mock_provider):
        for d, close in CLOSES.items():
            create_price(db, "VTI", d, close)
        create_price(db, "VTI", date(2023, 12, 29), "99")

        result = make_store(mock_provider).get_price_series(db, ["VTI"], START, END)

        assert result["VTI"][0].date == START

    def test_unknown_ticker_is_dropped(self, db, mock_provider):
        mock_provider.set_prices("VTI", CLOSES)

        result = make_store(mock_provider).get_price_series(db, ["VTI", "NOPE"], START, END)

        assert list(result) == ["VTI"]
        assert stored_rows(db, "NOPE") == 0

    def test_provider_failure_propagates(self, db, mock_provider):
        mock_provider.set_prices("VTI", CLOSES)
        mock_provider.set_error("VXUS", ProviderUnavailableError("mock", "connection reset"))

        with pytest.raises(ProviderUnavailableError):
            make_store(mock_provider).get_price_series(db, ["VTI", "VXUS"], START, END)

    def test_parallel_fetch_covers_every_ticker(self, db, mock_provider):
        tickers = ["AAA", "BBB", "CCC", "DDD", "EEE", "FFF"]
        for ticker in tickers:
            mock_provider.set_prices(ticker, CLOSES)

        result = make_store(mock_provider, price_fetch_max_workers=3).get_price_series(db, tickers, START, END)

        assert sorted(result) == tickers
        assert sorted(call[0] for call in mock_provider.historical_calls) == tickers

    def test_live_fetch_disabled_serves_cache_only(self, db, mock_provider):
        create_price(db, "VTI", START, "100")
        mock_provider.set_prices("VXUS", CLOSES)

        result = make_store(mock_provider, price_live_fetch_enabled=False).get_price_series(
            db, ["VTI", "VXUS"], START, END
        )

        assert list(result) == ["VTI"]
        assert mock_provider.historical_call_count == 0

    def test_empty_ticker_list(self, db, mock_provider):
        assert make_store(mock_provider).get_price_series(db, ["", "  "], START, END) == {}


class TestStaleness:

    def test_recent_partial_cache_not_refetched(self, db, mock_provider):
        # Cache stops two weeks short of the range end but was just written
        create_price(db, "VTI", START, "100")
        create_price(db, "VTI", date(2024, 1, 16), "104")
        mock_provider.set_prices("VTI", CLOSES)

        result = make_store(mock_provider).get_price_series(db, ["VTI"], START, END)

        assert len(result["VTI"]) == 2
        assert mock_provider.historical_call_count == 0

    def test_stale_partial_cache_is_refetched_and_merged(self, db, mock_provider):
        written = datetime.now(timezone.utc) - timedelta(hours=48)
        create_price(db, "VTI", START, "100", created_at=written)
        create_price(db, "VTI", date(2024, 1, 16), "104", created_at=written)
        mock_provider.set_prices("VTI", {**CLOSES, date(2024, 1, 16): "105"})

        result = make_store(mock_provider).get_price_series(db, ["VTI"], START, END)

        assert mock_provider.historical_call_count == 1
        assert [p.close for p in result["VTI"]] == [Decimal("100"), Decimal("105"), Decimal("108")]
        assert stored_rows(db, "VTI") == 3

    def test_staleness_window_is_configurable(self, db, mock_provider):
        written = datetime.now(timezone.utc) - timedelta(hours=48)
        create_price(db, "VTI", START, "100", created_at=written)
        mock_provider.set_prices("VTI", CLOSES)

        make_store(mock_provider, price_staleness_hours=72).get_price_series(db, ["VTI"], START, END)

        assert mock_provider.historical_call_count == 0


# =============================================================================
# CURRENT PRICES
# =============================================================================

class TestGetCurrentPrices:

    def test_latest_quotes(self, db, mock_provider):
        mock_provider.set_latest("VTI", "250.5")
        mock_provider.set_latest("VXUS", "60")

        quotes = make_store(mock_provider).get_current_prices(db, ["vti", "VXUS"])

        assert quotes == {"VTI": Decimal("250.5"), "VXUS": Decimal("60")}

    def test_unknown_and_non_positive_quotes_dropped(self, db, mock_provider):
        mock_provider.set_latest("VTI", "250")
        mock_provider.set_latest("ZERO", "0")

        quotes = make_store(mock_provider).get_current_prices(db, ["VTI", "ZERO", "NOPE"])

        assert quotes == {"VTI": Decimal("250")}

    def test_disabled_returns_empty(self, db, mock_provider):
        mock_provider.set_latest("VTI", "250")

        quotes = make_store(mock_provider, price_live_fetch_enabled=False).get_current_prices(db, ["VTI"])

        assert quotes == {}
        assert mock_provider.latest_calls == []


class TestGetLatestOnOrBefore:

    def test_latest_close_regardless_of_age(self, db, mock_provider):
        create_price(db, "VTI", date(2022, 11, 30), "90")
        create_price(db, "VTI", date(2022, 12, 30), "95")
        create_price(db, "VTI", date(2023, 1, 31), "99")
        create_price(db, "BND", date(2021, 6, 30), "80")

        result = make_store(mock_provider).get_latest_on_or_before(db, ["vti", "BND"], date(2023, 1, 20))

        assert result["VTI"].date == date(2022, 12, 30)
        assert result["VTI"].close == Decimal("95")
        assert result["BND"].close == Decimal("80")
        assert mock_provider.historical_call_count == 0

    def test_same_day_close_counts(self, db, mock_provider):
        create_price(db, "VTI", START, "100")

        result = make_store(mock_provider).get_latest_on_or_before(db, ["VTI"], START)

        assert result["VTI"].close == Decimal("100")

    def test_nothing_earlier(self, db, mock_provider):
        create_price(db, "VTI", END, "108")

        assert make_store(mock_provider).get_latest_on_or_before(db, ["VTI", "QQQ"], START) == {}
        assert make_store(mock_provider).get_latest_on_or_before(db, [], START) == {}
