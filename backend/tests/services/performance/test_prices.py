# backend/tests/services/performance/test_prices.py
"""
Tests for the forward-fill price resolver.
"""

from datetime import date
from decimal import Decimal

from portfolio_analytics.services.performance.prices import PriceResolver
from portfolio_analytics.services.performance.types import PricePoint
from tests.conftest import points

TODAY = date(2024, 6, 30)


def resolver(current=None) -> PriceResolver:
    return PriceResolver.from_points(
        points("VTI", {
            date(2024, 1, 2): "100",
            date(2024, 1, 5): "105",
            date(2024, 1, 10): "110",
        }),
        current_prices=current,
        today=TODAY,
    )


class TestPriceAt:

    def test_exact_date(self):
        assert resolver().price_at("VTI", date(2024, 1, 5)) == Decimal("105")

    def test_forward_fills_gaps(self):
        assert resolver().price_at("VTI", date(2024, 1, 7)) == Decimal("105")
        assert resolver().price_at("VTI", date(2024, 5, 1)) == Decimal("110")

    def test_falls_back_to_earliest_before_history(self):
        assert resolver().price_at("VTI", date(2023, 12, 1)) == Decimal("100")

    def test_unknown_ticker(self):
        assert resolver().price_at("XYZ", date(2024, 1, 5)) is None

    def test_unsorted_input_and_duplicates(self):
        r = PriceResolver({
            "VTI": [
                PricePoint("VTI", date(2024, 1, 10), Decimal("110")),
                PricePoint("VTI", date(2024, 1, 2), Decimal("100")),
                PricePoint("VTI", date(2024, 1, 2), Decimal("101")),
            ]
        }, today=TODAY)

        assert r.price_at("VTI", date(2024, 1, 3)) == Decimal("101")
        assert r.first_date("VTI") == date(2024, 1, 2)


class TestResolve:

    def test_missing_ticker_is_recorded_once(self):
        r = resolver()
        assert r.resolve("XYZ", date(2024, 1, 5)) is None
        assert r.resolve("XYZ", date(2024, 1, 6)) is None
        assert r.missing_tickers == ["XYZ"]

    def test_known_ticker_is_not_missing(self):
        r = resolver()
        r.resolve("VTI", date(2024, 1, 5))
        assert r.missing_tickers == []

    def test_current_price_wins_today(self):
        r = resolver(current={"VTI": Decimal("120")})
        assert r.resolve("VTI", TODAY) == Decimal("120")

    def test_current_price_ignored_for_past_dates(self):
        r = resolver(current={"VTI": Decimal("120")})
        assert r.resolve("VTI", date(2024, 1, 5)) == Decimal("105")

    def test_non_positive_current_price_ignored(self):
        r = resolver(current={"VTI": Decimal("0")})
        assert r.resolve("VTI", TODAY) == Decimal("110")

    def test_current_price_alone_counts_as_prices(self):
        r = PriceResolver({}, current_prices={"QQQ": Decimal("400")}, today=TODAY)
        assert r.has_prices("QQQ")
        assert r.resolve("QQQ", TODAY) == Decimal("400")
        assert r.resolve("QQQ", date(2024, 1, 1)) is None
        assert r.tickers == ["QQQ"]
