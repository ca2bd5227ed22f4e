# backend/tests/services/performance/test_valuation.py
"""
Tests for the valuation engine.
"""

from datetime import date
from decimal import Decimal

from portfolio_analytics.services.performance.positions import PositionReconstructor
from portfolio_analytics.services.performance.prices import PriceResolver
from portfolio_analytics.services.performance.types import FlowScope
from portfolio_analytics.services.performance.valuation import ValuationEngine
from tests.conftest import buy, deposit, points, sell

TICKERS = {1: "VTI", 2: "XYZ"}


def prices() -> PriceResolver:
    return PriceResolver.from_points(
        points("VTI", {date(2023, 1, 1): "100", date(2023, 12, 31): "150"}),
        today=date(2024, 6, 30),
    )


class TestValueAt:

    def test_unrealized_gain(self):
        txs = [buy(1, date(2023, 1, 1), 1, "10", "100")]
        state = ValuationEngine(TICKERS).value_at(date(2023, 12, 31), txs, FlowScope.SLEEVE, prices())

        assert state.market_value == Decimal("1500")
        assert state.total_basis == Decimal("1000")
        assert state.unrealized == Decimal("500")
        assert state.cash == Decimal("0")
        assert state.portfolio_value == Decimal("1500")

    def test_ledger_scope_adds_cash(self):
        txs = [
            deposit(1, date(2023, 1, 1), "10000"),
            buy(2, date(2023, 1, 1), 1, "10", "100"),
        ]
        state = ValuationEngine(TICKERS).value_at(date(2023, 12, 31), txs, FlowScope.LEDGER, prices())

        assert state.cash == Decimal("9000")
        assert state.portfolio_value == Decimal("10500")

    def test_transactions_after_as_of_ignored(self):
        txs = [
            buy(1, date(2023, 1, 1), 1, "10", "100"),
            sell(2, date(2023, 12, 31), 1, "10", "150"),
        ]
        state = ValuationEngine(TICKERS).value_at(date(2023, 6, 1), txs, FlowScope.SLEEVE, prices())
        assert state.market_value == Decimal("1000")

    def test_missing_price_values_at_zero_and_is_reported(self):
        txs = [buy(1, date(2023, 1, 1), 2, "10", "50")]
        resolver = prices()
        state = ValuationEngine(TICKERS).value_at(date(2023, 6, 1), txs, FlowScope.SLEEVE, resolver)

        assert state.market_value == Decimal("0")
        assert state.total_basis == Decimal("500")
        assert state.unrealized == Decimal("-500")
        assert resolver.missing_tickers == ["XYZ"]


class TestValuePositions:

    def test_lots_of_same_asset_share_one_price(self):
        lots = PositionReconstructor().reconstruct([
            buy(1, date(2023, 1, 1), 1, "10", "100", account_id=1),
            buy(2, date(2023, 2, 1), 1, "5", "120", account_id=2),
        ])
        state = ValuationEngine(TICKERS).value_positions(
            date(2023, 12, 31), lots, Decimal("25"), prices()
        )

        assert state.market_value == Decimal("2250")
        assert state.total_basis == Decimal("1600")
        assert state.portfolio_value == Decimal("2275")

    def test_asset_without_ticker_is_valued_at_zero(self):
        lots = PositionReconstructor().reconstruct([buy(1, date(2023, 1, 1), 9, "1", "10")])
        state = ValuationEngine(TICKERS).value_positions(date(2023, 6, 1), lots, Decimal("0"), prices())

        assert state.market_value == Decimal("0")
        assert state.total_basis == Decimal("10")
