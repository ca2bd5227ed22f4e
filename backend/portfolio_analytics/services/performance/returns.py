# backend/portfolio_analytics/services/performance/returns.py
"""
Return calculation functions for the performance engine.

Pure functions, no state:
- net_flows_by_date: Collapse same-day flows before solving
- solve_irr: Money-weighted return (Newton-Raphson, bisection fallback)
- period_irr: IRR of one sub-period of a series (start value in, end value out)
- rebase_twr: Time-weighted series off the first positive reference value
- annualize_return / simple_return_pct: Percentage helpers

Formulas:
    IRR solves: sum(CF_i / (1 + r)^t_i) = 0, t_i = (d_i - d_0).days / 365.25

    TWR_i = (PV_i / PV_0 - 1) x 100

    Annualized = ((1 + R/100)^(1/years) - 1) x 100

Precision Note (Decimal vs Float):
    The IRR solver works in float: every iteration evaluates non-integer
    powers, which Decimal cannot do cheaply. Results come back as float (or
    math.nan when no rate exists) and callers convert to Decimal percent.
    Everything else (values, percentages) stays in Decimal.

IRR sign convention (investor perspective):
    negative = money the investor puts in
    positive = money the investor takes out (including the closing value)
"""

import logging
import math
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from portfolio_analytics.services.constants import (
    DAYS_PER_YEAR,
    HUNDRED,
    IRR_BISECTION_LOWER_BOUND,
    IRR_BISECTION_UPPER_BOUND,
    IRR_DEFAULT_GUESS,
    IRR_MAX_BISECTION_ITERATIONS,
    IRR_MAX_NEWTON_ITERATIONS,
    IRR_MIN_DERIVATIVE,
    IRR_NEWTON_LOWER_BOUND,
    IRR_NEWTON_UPPER_BOUND,
    IRR_NPV_TOLERANCE,
    ZERO,
)

logger = logging.getLogger(__name__)


# =============================================================================
# IRR (MONEY-WEIGHTED RETURN)
# =============================================================================

def net_flows_by_date(
        flows: Sequence[float | Decimal],
        dates: Sequence[date],
) -> tuple[list[float], list[date]]:
    """
    Sum flows sharing a date.

    Returns:
        (flows, dates), sorted by date, one entry per distinct date

    Raises:
        ValueError: If flows and dates differ in length
    """
    if len(flows) != len(dates):
        raise ValueError(
            f"flows and dates must have the same length ({len(flows)} != {len(dates)})"
        )

    netted: dict[date, float] = {}
    for flow, flow_date in zip(flows, dates):
        netted[flow_date] = netted.get(flow_date, 0.0) + float(flow)

    ordered = sorted(netted)
    return [netted[d] for d in ordered], ordered


def _npv(rate: float, flows: Sequence[float], years: Sequence[float]) -> float:
    base = 1.0 + rate
    return sum(cf / base ** t for cf, t in zip(flows, years))


def _npv_derivative(rate: float, flows: Sequence[float], years: Sequence[float]) -> float:
    # d/dr [CF / (1+r)^t] = -t * CF / (1+r)^(t+1)
    base = 1.0 + rate
    return sum(-t * cf / base ** (t + 1) for cf, t in zip(flows, years) if t > 0)


def _initial_guess(flows: Sequence[float], horizon: float) -> float:
    """(sum inflows / sum outflows)^(1/T) - 1, clamped into the Newton band."""
    inflows = sum(cf for cf in flows if cf > 0)
    outflows = -sum(cf for cf in flows if cf < 0)

    if horizon <= 0 or outflows <= 0 or inflows <= 0:
        return IRR_DEFAULT_GUESS

    try:
        guess = (inflows / outflows) ** (1.0 / horizon) - 1.0
    except OverflowError:
        return IRR_DEFAULT_GUESS

    if not math.isfinite(guess):
        return IRR_DEFAULT_GUESS

    margin = 1e-6
    return min(max(guess, IRR_NEWTON_LOWER_BOUND + margin), IRR_NEWTON_UPPER_BOUND - margin)


def _newton(flows: Sequence[float], years: Sequence[float]) -> float | None:
    rate = _initial_guess(flows, years[-1])

    for _ in range(IRR_MAX_NEWTON_ITERATIONS):
        try:
            npv = _npv(rate, flows, years)
            if abs(npv) < IRR_NPV_TOLERANCE:
                return rate

            derivative = _npv_derivative(rate, flows, years)
        except (OverflowError, ZeroDivisionError):
            return None

        if abs(derivative) < IRR_MIN_DERIVATIVE:
            return None

        next_rate = rate - npv / derivative
        if not (IRR_NEWTON_LOWER_BOUND < next_rate < IRR_NEWTON_UPPER_BOUND):
            return None
        rate = next_rate

    return None


def _bisection(flows: Sequence[float], years: Sequence[float]) -> float | None:
    low, high = IRR_BISECTION_LOWER_BOUND, IRR_BISECTION_UPPER_BOUND

    try:
        npv_low = _npv(low, flows, years)
        npv_high = _npv(high, flows, years)
    except (OverflowError, ZeroDivisionError):
        return None

    if abs(npv_low) < IRR_NPV_TOLERANCE:
        return low
    if abs(npv_high) < IRR_NPV_TOLERANCE:
        return high
    if (npv_low > 0) == (npv_high > 0):
        # No root in the bracket
        return None

    for _ in range(IRR_MAX_BISECTION_ITERATIONS):
        mid = (low + high) / 2.0
        npv_mid = _npv(mid, flows, years)

        if abs(npv_mid) < IRR_NPV_TOLERANCE:
            return mid

        if (npv_mid > 0) == (npv_low > 0):
            low, npv_low = mid, npv_mid
        else:
            high = mid

    return None


def solve_irr(
        flows: Sequence[float | Decimal],
        dates: Sequence[date],
) -> float:
    """
    Annualized internal rate of return of dated cash flows.

    Same-day flows are netted first. Newton-Raphson runs from a flow-ratio
    initial guess; if it stalls, diverges or leaves (-0.99, 50) the root is
    searched by bisection on [-0.99, 20].

    Args:
        flows: Signed flows (investor perspective)
        dates: Date of each flow

    Returns:
        Rate as a fraction (0.1 = 10%), or math.nan when undefined
        (fewer than two dates, no sign change, no convergence)

    Raises:
        ValueError: If flows and dates differ in length

    Example:
        >>> solve_irr([-1000, 1100], [date(2023, 1, 1), date(2024, 1, 1)])
        0.10006...  # 365 days = 0.9993 years
    """
    net, net_dates = net_flows_by_date(flows, dates)

    if len(net) < 2:
        return math.nan

    if not (any(cf > 0 for cf in net) and any(cf < 0 for cf in net)):
        return math.nan

    origin = net_dates[0]
    years = [(d - origin).days / DAYS_PER_YEAR for d in net_dates]

    rate = _newton(net, years)
    if rate is not None:
        return rate

    logger.debug("IRR: Newton-Raphson failed, falling back to bisection")
    rate = _bisection(net, years)
    if rate is not None:
        return rate

    logger.debug(f"IRR did not converge for {len(net)} flows")
    return math.nan


def period_irr(
        start_value: Decimal,
        start_date: date,
        flows: Sequence[tuple[date, Decimal]],
        end_value: Decimal,
        end_date: date,
) -> float:
    """
    IRR of the sub-period [start_date, end_date].

    The starting value is treated as money put in on start_date and the
    ending value as money taken out on end_date:

        -PV_0 @ start_date, flows with start_date < d <= end_date, +PV_i @ end_date
    """
    period_flows: list[Decimal] = [-start_value]
    period_dates: list[date] = [start_date]

    for flow_date, amount in flows:
        if start_date < flow_date <= end_date:
            period_flows.append(amount)
            period_dates.append(flow_date)

    period_flows.append(end_value)
    period_dates.append(end_date)

    return solve_irr(period_flows, period_dates)


# =============================================================================
# TIME-WEIGHTED RETURN (TWR)
# =============================================================================

def rebase_twr(values: Sequence[Decimal]) -> list[Decimal]:
    """
    TWR series in percent, rebased to the first positive value.

    twr_i = (PV_i / PV_base - 1) x 100

    The base is the first point, or, when the series starts at a
    non-positive value (before inception, negative cash), the first point
    with a positive value. Points before the base get 0.

    Example:
        >>> rebase_twr([Decimal("0"), Decimal("100"), Decimal("110")])
        [Decimal("0"), Decimal("0"), Decimal("10")]
    """
    base_index = next((i for i, v in enumerate(values) if v > 0), None)
    if base_index is None:
        return [ZERO for _ in values]

    base = values[base_index]
    twr = [ZERO] * base_index
    for value in values[base_index:]:
        twr.append((value / base - 1) * HUNDRED)
    return twr


# =============================================================================
# HELPERS
# =============================================================================

def simple_return_pct(start_value: Decimal, end_value: Decimal) -> Decimal | None:
    """
    (End - Start) / Start in percent, no cash-flow adjustment.

    Returns:
        Percentage, or None if start_value is not positive
    """
    if start_value <= 0:
        return None
    return (end_value / start_value - 1) * HUNDRED


def annualize_return(total_return_pct: Decimal, days: int) -> Decimal | None:
    """
    Annualize a total return in percent.

    Formula: ((1 + R/100)^(365.25/days) - 1) x 100

    Periods shorter than a day are treated as one day. A total loss
    (R <= -100) stays -100. None when the result overflows a float.
    """
    growth = 1.0 + float(total_return_pct) / 100.0
    if growth <= 0:
        return -HUNDRED

    years = max(days, 1) / DAYS_PER_YEAR
    try:
        annualized = growth ** (1.0 / years) - 1.0
    except OverflowError:
        logger.debug(f"Annualizing {total_return_pct}% over {days} days overflowed")
        return None

    return Decimal(str(annualized)) * HUNDRED
