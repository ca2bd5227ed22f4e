# backend/portfolio_analytics/services/performance/valuation.py
"""
Valuation Engine: positions + prices -> PortfolioState.

    market_value    = sum(remaining_quantity x price)
    total_basis     = sum(remaining_quantity x cost_basis_per_unit)
    unrealized      = market_value - total_basis
    cash            = running cash balance (ledger scope), 0 (sleeve scope)
    portfolio_value = market_value + cash

A lot whose ticker has no price at all contributes 0 to market value (its
basis still counts) and the resolver records the ticker as missing.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from portfolio_analytics.services.constants import ZERO
from portfolio_analytics.services.performance.cash_flows import cash_balance
from portfolio_analytics.services.performance.positions import PositionReconstructor
from portfolio_analytics.services.performance.prices import PriceResolver
from portfolio_analytics.services.performance.types import (
    FlowScope,
    OpenLot,
    PortfolioState,
    Transaction,
)

logger = logging.getLogger(__name__)


class ValuationEngine:
    """
    Values open lots at a date.

    Attributes:
        _tickers: asset_id -> ticker, used to look prices up
        _reconstructor: FIFO replay for value_at
    """

    def __init__(
            self,
            tickers: Mapping[int, str],
            reconstructor: PositionReconstructor | None = None,
    ) -> None:
        self._tickers = tickers
        self._reconstructor = reconstructor or PositionReconstructor()

    def value_positions(
            self,
            as_of: date,
            lots: Iterable[OpenLot],
            cash: Decimal,
            resolver: PriceResolver,
    ) -> PortfolioState:
        """
        Snapshot valuation of already-reconstructed lots.

        Args:
            as_of: Valuation date
            lots: Open lots at as_of
            cash: Cash balance to add (0 for sleeves)
            resolver: Price lookup

        Returns:
            PortfolioState for as_of
        """
        market_value = ZERO
        total_basis = ZERO
        prices: dict[int, Decimal | None] = {}

        for lot in lots:
            total_basis += lot.cost_basis

            if lot.asset_id not in prices:
                prices[lot.asset_id] = self._price_for(lot.asset_id, as_of, resolver)

            price = prices[lot.asset_id]
            if price is not None:
                market_value += lot.remaining_quantity * price

        return PortfolioState(
            date=as_of,
            market_value=market_value,
            total_basis=total_basis,
            unrealized=market_value - total_basis,
            cash=cash,
            portfolio_value=market_value + cash,
        )

    def value_at(
            self,
            as_of: date,
            transactions: Iterable[Transaction],
            scope: FlowScope,
            resolver: PriceResolver,
    ) -> PortfolioState:
        """
        Replay a group's transactions up to as_of and value the result.

        Point-in-time form, used for the current-state endpoint and for
        cross-checks. The time-series builder keeps a rolling state instead.
        """
        upto = [tx for tx in transactions if tx.date <= as_of]
        lots = self._reconstructor.reconstruct(upto)
        cash = cash_balance(upto) if scope == FlowScope.LEDGER else ZERO
        return self.value_positions(as_of, lots, cash, resolver)

    def _price_for(self, asset_id: int, as_of: date, resolver: PriceResolver) -> Decimal | None:
        ticker = self._tickers.get(asset_id)
        if ticker is None:
            logger.warning(f"Asset {asset_id} has no ticker; valuing at 0")
            return None
        return resolver.resolve(ticker, as_of)
