# backend/portfolio_analytics/services/performance/time_series.py
"""
Time-Series Builder.

Drives FIFO replay, valuation and the return calculators across a date grid
and produces one ReturnRecord per grid date for a group.

Rolling State pattern, O(D + T):
    Transactions are sorted once. For each grid date (ascending) only the
    transactions dated on or before it that were not applied yet are fed to
    the FIFO state, the cash balance and the flow totals, then the state is
    valued. No transaction is replayed twice.

Rebasing (second pass, everything relative to point 0 of the range):
    net_contributions_i = C_i - C_0
    realized_i          = R_i - R_0
    income_i            = I_i - I_0
    unrealized_i        = (PV_i - PV_0) - net_contributions_i - realized_i - income_i
    net_gain_i          = unrealized_i + realized_i + income_i

    total_return_pct_i  = net_gain_i / (max(PV_0, 0) + max(net_contributions_i, 0)) x 100
                          (total basis when that is 0, 0 when both are 0)
    twr_i               = rebase_twr(PV)
    irr_i               = period_irr(-PV_0, scope flows in (d_0, d_i], +PV_i)

The same builder serves group series, per-asset series and the aggregate
"Portfolio" series.
"""

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from portfolio_analytics.services.constants import HUNDRED, ZERO
from portfolio_analytics.services.performance.cash_flows import (
    cash_delta,
    contribution,
    fee_amount,
    income_amount,
    irr_flow,
)
from portfolio_analytics.services.performance.positions import (
    PositionReconstructor,
    sort_transactions,
)
from portfolio_analytics.services.performance.prices import PriceResolver
from portfolio_analytics.services.performance.returns import (
    annualize_return,
    period_irr,
    rebase_twr,
)
from portfolio_analytics.services.performance.types import (
    ExternalBuyFlow,
    FlowScope,
    FlowTotals,
    GroupSlice,
    Granularity,
    PortfolioState,
    ReturnRecord,
    TotalsRecord,
    Transaction,
)
from portfolio_analytics.services.performance.valuation import ValuationEngine
from portfolio_analytics.utils.date_utils import daily_dates, month_ends_between

logger = logging.getLogger(__name__)


def build_date_grid(start_date: date, end_date: date, granularity: Granularity) -> list[date]:
    """
    Report dates for a range.

    DAILY: every calendar day. MONTHLY: every month end in the range plus
    both range ends. Sorted, unique, empty if start > end.
    """
    if start_date > end_date:
        return []

    if granularity == Granularity.DAILY:
        return daily_dates(start_date, end_date)

    grid = {start_date, end_date, *month_ends_between(start_date, end_date)}
    return sorted(grid)


@dataclass
class _RawPoint:
    state: PortfolioState
    totals: FlowTotals


class TimeSeriesBuilder:
    """
    Builds rebased return series for group slices.

    One builder serves one request: warnings from every replay are collected
    on the instance.

    Attributes:
        warnings: Replay problems (oversells, sells without lots)
    """

    def __init__(
            self,
            tickers: Mapping[int, str],
            external_buy_flow: ExternalBuyFlow = ExternalBuyFlow.EXCLUDE,
            irr_fallback: str = "annualized",
            reconstructor: PositionReconstructor | None = None,
    ) -> None:
        self._reconstructor = reconstructor or PositionReconstructor()
        self._valuation = ValuationEngine(tickers, self._reconstructor)
        self._external_buy_flow = external_buy_flow
        self._irr_fallback = irr_fallback
        self.warnings: list[str] = []

    def build(
            self,
            slice_: GroupSlice,
            scope: FlowScope,
            grid: Sequence[date],
            resolver: PriceResolver,
    ) -> list[ReturnRecord]:
        """
        One ReturnRecord per grid date for a group.

        Args:
            slice_: The group's transactions
            scope: Which flows cross the group's boundary
            grid: Sorted report dates
            resolver: Price lookup

        Returns:
            Records in grid order, [] for an empty slice or grid
        """
        if slice_.is_empty or not grid:
            return []

        transactions = sort_transactions(slice_.transactions)
        raw, flows = self._roll(transactions, scope, grid, resolver)
        records = self._rebase(raw, flows)

        logger.debug(
            f"Built {len(records)} point(s) for '{slice_.label}' "
            f"({scope.value} scope, {len(transactions)} transactions)"
        )
        return records

    # =========================================================================
    # ROLLING PASS
    # =========================================================================

    def _roll(
            self,
            transactions: Sequence[Transaction],
            scope: FlowScope,
            grid: Sequence[date],
            resolver: PriceResolver,
    ) -> tuple[list[_RawPoint], list[tuple[date, Decimal]]]:
        """Apply transactions incrementally and snapshot at each grid date."""
        fifo = self._reconstructor.new_state()
        cash = ZERO
        totals = FlowTotals()
        flows: list[tuple[date, Decimal]] = []
        raw: list[_RawPoint] = []

        tx_index = 0
        num_txs = len(transactions)

        for grid_date in grid:
            while tx_index < num_txs:
                tx = transactions[tx_index]
                if tx.date > grid_date:
                    break

                totals.realized += self._reconstructor.apply_transaction(fifo, tx)
                totals.net_contributions += contribution(tx, scope, self._external_buy_flow)
                totals.income += income_amount(tx)
                totals.fees += fee_amount(tx)

                if scope == FlowScope.LEDGER:
                    cash += cash_delta(tx)

                flow = irr_flow(tx, scope, self._external_buy_flow)
                if flow is not None:
                    flows.append((tx.date, flow))

                tx_index += 1

            state = self._valuation.value_positions(
                grid_date,
                self._reconstructor.open_lots(fifo),
                cash,
                resolver,
            )
            raw.append(
                _RawPoint(
                    state=state,
                    totals=FlowTotals(
                        net_contributions=totals.net_contributions,
                        realized=totals.realized,
                        income=totals.income,
                        fees=totals.fees,
                    ),
                )
            )

        self.warnings.extend(fifo.warnings)
        return raw, flows

    # =========================================================================
    # REBASING
    # =========================================================================

    def _rebase(
            self,
            raw: list[_RawPoint],
            flows: list[tuple[date, Decimal]],
    ) -> list[ReturnRecord]:
        first = raw[0]
        pv_0 = first.state.portfolio_value
        date_0 = first.state.date

        twr_series = rebase_twr([point.state.portfolio_value for point in raw])
        records: list[ReturnRecord] = []
        fallbacks = 0

        for i, point in enumerate(raw):
            state = point.state
            net_contributions = point.totals.net_contributions - first.totals.net_contributions
            realized = point.totals.realized - first.totals.realized
            income = point.totals.income - first.totals.income

            unrealized = (state.portfolio_value - pv_0) - net_contributions - realized - income
            net_gain = unrealized + realized + income

            total_return_pct = self._total_return_pct(net_gain, pv_0, net_contributions, state)

            if i == 0:
                irr, is_estimate = ZERO, False
            else:
                irr, is_estimate = self._irr(
                    pv_0, date_0, flows, state, total_return_pct
                )
                fallbacks += is_estimate

            records.append(
                ReturnRecord(
                    state=state,
                    net_contributions=net_contributions,
                    realized=realized,
                    income=income,
                    unrealized=unrealized,
                    net_gain=net_gain,
                    total_return_pct=total_return_pct,
                    twr=twr_series[i],
                    irr=irr,
                    irr_is_estimate=is_estimate,
                )
            )

        if fallbacks:
            logger.warning(
                f"IRR undefined at {fallbacks} of {len(records)} point(s); "
                f"using annualized total return"
            )

        return records

    @staticmethod
    def _total_return_pct(
            net_gain: Decimal,
            pv_0: Decimal,
            net_contributions: Decimal,
            state: PortfolioState,
    ) -> Decimal:
        base = max(pv_0, ZERO) + max(net_contributions, ZERO)
        if base == 0:
            base = state.total_basis
        if base == 0:
            return ZERO
        return net_gain / base * HUNDRED

    def _irr(
            self,
            pv_0: Decimal,
            date_0: date,
            flows: list[tuple[date, Decimal]],
            state: PortfolioState,
            total_return_pct: Decimal,
    ) -> tuple[Decimal | None, bool]:
        """IRR in percent for one point, with the configured fallback."""
        rate = period_irr(pv_0, date_0, flows, state.portfolio_value, state.date)
        if not math.isnan(rate):
            return Decimal(str(rate)) * HUNDRED, False

        if self._irr_fallback == "none":
            return None, False

        estimate = annualize_return(total_return_pct, (state.date - date_0).days)
        if estimate is None:
            return None, False
        return estimate, True


def totals_from_series(series: Sequence[ReturnRecord]) -> TotalsRecord:
    """Summary metrics of a series: its last point, zeros when empty."""
    if not series:
        return TotalsRecord()

    last = series[-1]
    return TotalsRecord(
        market_value=last.state.market_value,
        total_basis=last.state.total_basis,
        cash=last.state.cash,
        portfolio_value=last.state.portfolio_value,
        net_contributions=last.net_contributions,
        realized=last.realized,
        income=last.income,
        unrealized=last.unrealized,
        net_gain=last.net_gain,
        total_return_pct=last.total_return_pct,
        twr=last.twr,
        irr=last.irr,
        irr_is_estimate=last.irr_is_estimate,
    )


def dedupe_warnings(warnings: Iterable[str]) -> list[str]:
    """Drop repeated warnings, first occurrence order."""
    return list(dict.fromkeys(warnings))
