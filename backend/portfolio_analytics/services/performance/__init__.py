# backend/portfolio_analytics/services/performance/__init__.py
"""
Performance engine.

Reconstructs historical positions by FIFO replay, values them against
forward-filled prices, and computes money-weighted (IRR) and time-weighted
(TWR) returns with a realized / unrealized / income decomposition, per group
of a grouping lens.

Usage:
    from portfolio_analytics.services.performance import (
        PerformanceService,
        PerformanceRequest,
    )

    report = service.get_report(db, user_id, PerformanceRequest(lens="geography"))
"""

from portfolio_analytics.services.performance.benchmarks import (
    benchmark_series,
    build_benchmarks,
    parse_benchmarks,
    valid_benchmarks,
)
from portfolio_analytics.services.performance.cash_flows import (
    cash_balance,
    cash_balances_by_account,
    cash_delta,
    contribution,
    irr_flow,
    is_irr_flow,
    normalize,
)
from portfolio_analytics.services.performance.grouping import (
    Lens,
    group,
    group_assets,
    union_slices,
)
from portfolio_analytics.services.performance.positions import (
    FifoState,
    PositionReconstructor,
    reconcile_lots,
    sort_transactions,
)
from portfolio_analytics.services.performance.prices import PriceResolver
from portfolio_analytics.services.performance.returns import (
    annualize_return,
    net_flows_by_date,
    period_irr,
    rebase_twr,
    simple_return_pct,
    solve_irr,
)
from portfolio_analytics.services.performance.service import (
    PerformanceService,
    parse_granularity,
    parse_period,
)
from portfolio_analytics.services.performance.time_series import (
    TimeSeriesBuilder,
    build_date_grid,
    totals_from_series,
)
from portfolio_analytics.services.performance.types import (
    AccountInfo,
    AssetInfo,
    BenchmarkPoint,
    ExternalBuyFlow,
    FlowScope,
    Granularity,
    GroupSlice,
    Ledger,
    OpenLot,
    PerformanceReport,
    PerformanceRequest,
    PortfolioState,
    PricePoint,
    ReturnRecord,
    StateReport,
    TaxLot,
    TotalsRecord,
    Transaction,
)
from portfolio_analytics.services.performance.valuation import ValuationEngine

__all__ = [
    # Service
    "PerformanceService",
    "PerformanceRequest",
    "parse_period",
    "parse_granularity",
    # Engine
    "PositionReconstructor",
    "FifoState",
    "sort_transactions",
    "reconcile_lots",
    "PriceResolver",
    "ValuationEngine",
    "TimeSeriesBuilder",
    "build_date_grid",
    "totals_from_series",
    "Lens",
    "group",
    "group_assets",
    "union_slices",
    # Cash flows
    "normalize",
    "is_irr_flow",
    "cash_delta",
    "cash_balance",
    "cash_balances_by_account",
    "irr_flow",
    "contribution",
    # Returns
    "solve_irr",
    "net_flows_by_date",
    "period_irr",
    "rebase_twr",
    "annualize_return",
    "simple_return_pct",
    # Benchmarks
    "parse_benchmarks",
    "valid_benchmarks",
    "benchmark_series",
    "build_benchmarks",
    # Types
    "Transaction",
    "TaxLot",
    "AssetInfo",
    "AccountInfo",
    "PricePoint",
    "Ledger",
    "OpenLot",
    "PortfolioState",
    "ReturnRecord",
    "TotalsRecord",
    "BenchmarkPoint",
    "GroupSlice",
    "PerformanceReport",
    "StateReport",
    "Granularity",
    "FlowScope",
    "ExternalBuyFlow",
]
