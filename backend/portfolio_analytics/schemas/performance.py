# backend/portfolio_analytics/schemas/performance.py
"""
Pydantic schemas for the Performance API.

These schemas define the response formats for:
- Performance reports (series per group, totals, benchmarks, breakdowns)
- Current portfolio state per group
- The option vocabularies (lenses, periods, granularities, benchmarks)

Design decisions:
- Money values are Decimals quantized to cents; pydantic serializes them as
  strings so no precision is lost in JSON
- Rates (total return, TWR, IRR, benchmark values) are floats in PERCENT
  (12.5 = 12.5%), already rounded to two decimals
- irr is null when it is undefined and the IRR fallback is disabled
- Group and ticker keys keep the engine's ordering
"""

import datetime
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


# =============================================================================
# SERIES POINTS
# =============================================================================

class ReturnPointResponse(BaseModel):
    """One point of a group's performance series."""

    date: datetime.date = Field(..., description="Grid date")

    market_value: Decimal = Field(..., description="Value of open positions")
    total_basis: Decimal = Field(..., description="Cost basis of open positions")
    cash: Decimal = Field(..., description="Cash balance (0 for asset-tag lenses)")
    portfolio_value: Decimal = Field(..., description="market_value + cash")

    net_contributions: Decimal = Field(
        ...,
        description="External money added since the first point of the range"
    )
    realized: Decimal = Field(..., description="Realized gains since the first point")
    income: Decimal = Field(..., description="Dividends and interest since the first point")
    unrealized: Decimal = Field(
        ...,
        description="Residual of the value change not explained by flows, realized and income"
    )
    net_gain: Decimal = Field(..., description="unrealized + realized + income")

    total_return_pct: float = Field(..., description="net_gain relative to capital at work, percent")
    twr: float = Field(..., description="Time-weighted return since the first point, percent")
    irr: float | None = Field(None, description="Annualized money-weighted return, percent")
    irr_is_estimate: bool = Field(
        False,
        description="True when irr is the annualized total return (IRR did not converge)"
    )


class TotalsResponse(BaseModel):
    """Summary of a series: the values of its last point."""

    market_value: Decimal
    total_basis: Decimal
    cash: Decimal
    portfolio_value: Decimal
    net_contributions: Decimal
    realized: Decimal
    income: Decimal
    unrealized: Decimal
    net_gain: Decimal
    total_return_pct: float
    twr: float
    irr: float | None = None
    irr_is_estimate: bool = False


class BenchmarkPointResponse(BaseModel):
    date: datetime.date
    value_pct: float = Field(..., description="Return since the first grid date, percent")


# =============================================================================
# REPORT
# =============================================================================

class PerformanceReportResponse(BaseModel):
    """
    Full performance report.

    series / totals are keyed by group label, plus "Portfolio" when the
    aggregate series was produced. asset_series / asset_totals are keyed
    group label -> ticker and are only present in non-aggregate mode.
    """

    lens: str = Field(..., description="Grouping lens used")
    aggregate: bool = Field(..., description="Aggregate mode (False adds per-asset breakdowns)")
    start_date: date
    end_date: date
    granularity: str = Field(..., description="daily or monthly")
    dates: list[date] = Field(default_factory=list, description="The date grid")

    series: dict[str, list[ReturnPointResponse]] = Field(default_factory=dict)
    totals: dict[str, TotalsResponse] = Field(default_factory=dict)
    benchmarks: dict[str, list[BenchmarkPointResponse]] = Field(default_factory=dict)

    asset_series: dict[str, dict[str, list[ReturnPointResponse]]] | None = Field(
        None,
        description="Per-asset series by group (non-aggregate mode only)"
    )
    asset_totals: dict[str, dict[str, TotalsResponse]] | None = Field(
        None,
        description="Per-asset totals by group (non-aggregate mode only)"
    )

    missing_prices: list[str] = Field(
        default_factory=list,
        description="Tickers valued at 0 somewhere in the range for lack of prices"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Data-integrity problems found while building the report"
    )


# =============================================================================
# CURRENT STATE
# =============================================================================

class PortfolioStateResponse(BaseModel):
    market_value: Decimal
    total_basis: Decimal
    unrealized: Decimal
    cash: Decimal
    portfolio_value: Decimal


class StateReportResponse(BaseModel):
    """Current valuation per group of a lens."""

    lens: str
    as_of: date
    states: dict[str, PortfolioStateResponse] = Field(default_factory=dict)
    missing_prices: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# OPTIONS
# =============================================================================

class LensOptionsResponse(BaseModel):
    """Accepted values of the report options."""

    lenses: list[str] = Field(..., description="Grouping lenses")
    periods: list[str] = Field(..., description="Named periods")
    period_aliases: dict[str, str] = Field(
        default_factory=dict,
        description="Alternative period names and the period they mean"
    )
    granularities: list[str]
    benchmarks: list[str]
    external_buy_flows: list[str]
    default_period: str
    default_granularity: str
