# backend/portfolio_analytics/routers/performance.py
"""
Portfolio performance endpoints.

- GET /performance/reports - Series, totals and benchmarks for a lens
- GET /performance/state - Current valuation per group of a lens
- GET /performance/lenses - Accepted option values
- GET /performance/lenses/{lens}/values - Group keys available to the user

The caller is identified by the X-User-Id header (see dependencies.py).

List options accept repeated parameters or comma-separated values:
    ?selected=US&selected=Europe
    ?benchmarks=sp500,6040

Validation of lens / period / granularity / benchmark / policy values
happens in the service; its ValidationError subclasses become 400s in
main.py.
"""

import logging
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from portfolio_analytics.config import settings
from portfolio_analytics.database import get_db
from portfolio_analytics.dependencies import get_current_user, get_performance_service
from portfolio_analytics.middleware.rate_limit import limiter, RATE_LIMIT_ANALYTICS, RATE_LIMIT_DEFAULT
from portfolio_analytics.models import User
from portfolio_analytics.schemas.performance import (
    BenchmarkPointResponse,
    LensOptionsResponse,
    PerformanceReportResponse,
    PortfolioStateResponse,
    ReturnPointResponse,
    StateReportResponse,
    TotalsResponse,
)
from portfolio_analytics.services.constants import (
    MONEY_QUANTUM,
    PERCENT_QUANTUM,
    PERIOD_ALIASES,
    VALID_PERIODS,
)
from portfolio_analytics.services.performance import (
    PerformanceRequest,
    PerformanceService,
    valid_benchmarks,
)
from portfolio_analytics.services.performance.grouping import Lens
from portfolio_analytics.services.performance.types import (
    BenchmarkPoint,
    ExternalBuyFlow,
    Granularity,
    PerformanceReport,
    PortfolioState,
    ReturnRecord,
    StateReport,
    TotalsRecord,
)
from portfolio_analytics.utils.context import set_current_user_id

logger = logging.getLogger(__name__)

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/performance",
    tags=["Performance"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM)


def _rate(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(value.quantize(PERCENT_QUANTUM))


def _split_values(values: Iterable[str] | None) -> list[str]:
    """Flatten repeated and comma-separated query values, order kept."""
    result = []
    for value in values or []:
        result.extend(part.strip() for part in value.split(",") if part.strip())
    return result


# =============================================================================
# MAPPER FUNCTIONS (Engine types -> Pydantic Schemas)
# =============================================================================

def _map_point(record: ReturnRecord) -> ReturnPointResponse:
    state = record.state
    return ReturnPointResponse(
        date=record.date,
        market_value=_money(state.market_value),
        total_basis=_money(state.total_basis),
        cash=_money(state.cash),
        portfolio_value=_money(state.portfolio_value),
        net_contributions=_money(record.net_contributions),
        realized=_money(record.realized),
        income=_money(record.income),
        unrealized=_money(record.unrealized),
        net_gain=_money(record.net_gain),
        total_return_pct=_rate(record.total_return_pct),
        twr=_rate(record.twr),
        irr=_rate(record.irr),
        irr_is_estimate=record.irr_is_estimate,
    )


def _map_totals(totals: TotalsRecord) -> TotalsResponse:
    return TotalsResponse(
        market_value=_money(totals.market_value),
        total_basis=_money(totals.total_basis),
        cash=_money(totals.cash),
        portfolio_value=_money(totals.portfolio_value),
        net_contributions=_money(totals.net_contributions),
        realized=_money(totals.realized),
        income=_money(totals.income),
        unrealized=_money(totals.unrealized),
        net_gain=_money(totals.net_gain),
        total_return_pct=_rate(totals.total_return_pct),
        twr=_rate(totals.twr),
        irr=_rate(totals.irr),
        irr_is_estimate=totals.irr_is_estimate,
    )


def _map_benchmark(points: list[BenchmarkPoint]) -> list[BenchmarkPointResponse]:
    return [
        BenchmarkPointResponse(date=point.date, value_pct=_rate(point.value_pct))
        for point in points
    ]


def _map_report(report: PerformanceReport) -> PerformanceReportResponse:
    """Map the engine's PerformanceReport to the response schema."""
    response = PerformanceReportResponse(
        lens=report.lens,
        aggregate=report.aggregate,
        start_date=report.start_date,
        end_date=report.end_date,
        granularity=report.granularity.value,
        dates=report.dates,
        series={
            label: [_map_point(record) for record in records]
            for label, records in report.series.items()
        },
        totals={label: _map_totals(totals) for label, totals in report.totals.items()},
        benchmarks={
            benchmark_id: _map_benchmark(points)
            for benchmark_id, points in report.benchmarks.items()
        },
        missing_prices=report.missing_prices,
        warnings=report.warnings,
    )

    if not report.aggregate:
        response.asset_series = {
            label: {
                ticker: [_map_point(record) for record in records]
                for ticker, records in by_ticker.items()
            }
            for label, by_ticker in report.asset_series.items()
        }
        response.asset_totals = {
            label: {ticker: _map_totals(totals) for ticker, totals in by_ticker.items()}
            for label, by_ticker in report.asset_totals.items()
        }

    return response


def _map_state(state: PortfolioState) -> PortfolioStateResponse:
    return PortfolioStateResponse(
        market_value=_money(state.market_value),
        total_basis=_money(state.total_basis),
        unrealized=_money(state.unrealized),
        cash=_money(state.cash),
        portfolio_value=_money(state.portfolio_value),
    )


def _map_state_report(report: StateReport) -> StateReportResponse:
    return StateReportResponse(
        lens=report.lens,
        as_of=report.as_of,
        states={label: _map_state(state) for label, state in report.states.items()},
        missing_prices=report.missing_prices,
        warnings=report.warnings,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "/reports",
    response_model=PerformanceReportResponse,
    summary="Get a performance report",
    response_description="Series and totals per group, benchmarks, diagnostics"
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
def get_performance_report(
        request: Request,  # Required for rate limiting
        lens: str = Query(
            default="total",
            description="Grouping lens (total, account, sub_portfolio, asset_type, "
                        "asset_subtype, geography, size_tag, factor_tag)"
        ),
        selected: list[str] | None = Query(
            default=None,
            description="Group keys to keep, in display order (default: all)"
        ),
        aggregate: bool = Query(
            default=True,
            description="One series per group; false adds per-asset breakdowns"
        ),
        include_portfolio: bool = Query(
            default=True,
            description="Add the combined 'Portfolio' series when there are 2+ groups"
        ),
        period: str | None = Query(
            default=None,
            description="1M, 3M, 6M, YTD, 1Y, 3Y, 5Y, ALL (ignored when start_date is given)"
        ),
        start_date: date | None = Query(default=None, description="Explicit range start"),
        end_date: date | None = Query(default=None, description="Range end (default: today)"),
        granularity: str | None = Query(default=None, description="daily or monthly"),
        benchmarks: list[str] | None = Query(
            default=None,
            description="Benchmark identifiers (sp500, nasdaq, tlt, vxus, 6040)"
        ),
        external_buy_flow: str | None = Query(
            default=None,
            description="IRR treatment of externally funded buys: exclude, zero or cost"
        ),
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        service: PerformanceService = Depends(get_performance_service),
) -> PerformanceReportResponse:
    """
    Build the performance report of the requesting user.

    **Returns (percent values):** total_return_pct, twr and irr per point,
    benchmark value_pct on the same dates.

    **Warnings:** oversold positions, lot mismatches and similar data
    problems are reported in `warnings`; tickers without prices are listed
    in `missing_prices` and valued at 0.
    """
    set_current_user_id(current_user.id)

    options = PerformanceRequest(
        lens=lens,
        selected_values=_split_values(selected),
        aggregate=aggregate,
        include_portfolio=include_portfolio,
        period=period,
        start_date=start_date,
        end_date=end_date,
        granularity=granularity,
        benchmarks=_split_values(benchmarks),
        external_buy_flow=external_buy_flow,
    )

    report = service.get_report(db, current_user.id, options)
    return _map_report(report)


@router.get(
    "/state",
    response_model=StateReportResponse,
    summary="Get current portfolio state per group",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
def get_portfolio_state(
        request: Request,  # Required for rate limiting
        lens: str = Query(default="total", description="Grouping lens"),
        selected: list[str] | None = Query(default=None, description="Group keys to keep"),
        as_of: date | None = Query(default=None, description="Valuation date (default: today)"),
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        service: PerformanceService = Depends(get_performance_service),
) -> StateReportResponse:
    """
    Market value, cost basis, unrealized gain and cash per group.

    Valued with the current-price feed when as_of is today.
    """
    set_current_user_id(current_user.id)

    report = service.get_current_state(
        db,
        current_user.id,
        lens=lens,
        selected_values=_split_values(selected),
        as_of=as_of,
    )
    return _map_state_report(report)


@router.get(
    "/lenses",
    response_model=LensOptionsResponse,
    summary="List accepted report options",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_lens_options(request: Request) -> LensOptionsResponse:
    """Vocabulary of lenses, periods, granularities, benchmarks and policies."""
    return LensOptionsResponse(
        lenses=[lens.value for lens in Lens],
        periods=VALID_PERIODS,
        period_aliases=PERIOD_ALIASES,
        granularities=[granularity.value for granularity in Granularity],
        benchmarks=valid_benchmarks(),
        external_buy_flows=[option.value for option in ExternalBuyFlow],
        default_period=settings.default_period,
        default_granularity=settings.default_granularity,
    )


@router.get(
    "/lenses/{lens}/values",
    response_model=list[str],
    summary="List the group keys of a lens",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_lens_values(
        request: Request,  # Required for rate limiting
        lens: str,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        service: PerformanceService = Depends(get_performance_service),
) -> list[str]:
    """Group keys present in the user's ledger, "Untagged" last."""
    set_current_user_id(current_user.id)
    return service.get_lens_values(db, current_user.id, lens)
