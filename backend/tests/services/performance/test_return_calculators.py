# backend/tests/services/performance/test_return_calculators.py
"""
Tests for the return calculators (IRR, TWR, helpers).

Uses hand-checkable numbers; IRR round trips construct flows from a known
rate and check the solver recovers it.
"""

import math
from datetime import date, timedelta
from decimal import Decimal

import pytest

from portfolio_analytics.services.performance.returns import (
    annualize_return,
    net_flows_by_date,
    period_irr,
    rebase_twr,
    simple_return_pct,
    solve_irr,
)

D0 = date(2020, 1, 1)


def grown(amount: float, rate: float, days: int) -> float:
    return amount * (1 + rate) ** (days / 365.25)


# =============================================================================
# IRR
# =============================================================================

class TestSolveIrr:
    """Tests for solve_irr()."""

    @pytest.mark.parametrize("rate", [0.07, -0.25, 0.0, 1.5])
    def test_round_trip_single_period(self, rate):
        days = 730
        flows = [-1000.0, grown(1000.0, rate, days)]
        dates = [D0, D0 + timedelta(days=days)]

        assert solve_irr(flows, dates) == pytest.approx(rate, abs=1e-6)

    def test_round_trip_multiple_flows(self):
        rate = 0.12
        d1, d2, d3 = 200, 500, 1000
        flows = [
            -1000.0,
            -500.0,
            300.0,
            grown(1000.0, rate, d3) + grown(500.0, rate, d3 - d1) - grown(300.0, rate, d3 - d2),
        ]
        dates = [D0, D0 + timedelta(days=d1), D0 + timedelta(days=d2), D0 + timedelta(days=d3)]

        assert solve_irr(flows, dates) == pytest.approx(rate, abs=1e-6)

    def test_accepts_decimals(self):
        flows = [Decimal("-1000"), Decimal("1100")]
        dates = [D0, D0 + timedelta(days=365)]
        assert solve_irr(flows, dates) == pytest.approx(1.1 ** (365.25 / 365) - 1, abs=1e-6)

    def test_single_flow_is_nan(self):
        assert math.isnan(solve_irr([-1000.0], [D0]))

    def test_same_day_flows_are_netted(self):
        # Nets to a single date: undefined
        assert math.isnan(solve_irr([-1000.0, 1000.0], [D0, D0]))

    def test_no_sign_change_is_nan(self):
        assert math.isnan(solve_irr([-1000.0, -500.0], [D0, D0 + timedelta(days=10)]))

    def test_mismatched_lengths_raise(self):
        with pytest.raises(ValueError, match="same length"):
            solve_irr([-1.0, 2.0], [D0])

    def test_deep_loss(self):
        # 98% loss in one year, close to the lower bound of the band
        flows = [-1000.0, 20.0]
        dates = [D0, D0 + timedelta(days=365)]
        rate = solve_irr(flows, dates)
        assert rate == pytest.approx((0.02) ** (365.25 / 365) - 1, abs=1e-6)


class TestNetFlows:

    def test_nets_and_sorts(self):
        flows, dates = net_flows_by_date(
            [100, -50, 25],
            [date(2024, 2, 1), date(2024, 1, 1), date(2024, 2, 1)],
        )
        assert dates == [date(2024, 1, 1), date(2024, 2, 1)]
        assert flows == [-50.0, 125.0]


class TestPeriodIrr:

    def test_start_value_in_end_value_out(self):
        start = date(2023, 1, 1)
        end = date(2024, 1, 1)
        rate = period_irr(Decimal("1000"), start, [], Decimal("1100"), end)
        assert rate == pytest.approx(1.1 ** (365.25 / 365) - 1, abs=1e-6)

    def test_only_flows_inside_the_period_count(self):
        start = date(2023, 1, 1)
        end = date(2024, 1, 1)
        flows = [
            (date(2022, 6, 1), Decimal("-99999")),  # before: ignored
            (start, Decimal("-99999")),             # on start: part of PV_0
            (date(2025, 1, 1), Decimal("99999")),   # after: ignored
        ]
        rate = period_irr(Decimal("1000"), start, flows, Decimal("1100"), end)
        assert rate == pytest.approx(1.1 ** (365.25 / 365) - 1, abs=1e-6)


# =============================================================================
# TWR
# =============================================================================

class TestRebaseTwr:

    def test_rebases_to_first_value(self):
        twr = rebase_twr([Decimal("1000"), Decimal("1100"), Decimal("990")])
        assert twr == [Decimal("0"), Decimal("10"), Decimal("-1")]

    def test_matches_simple_growth_without_flows(self):
        values = [Decimal("250"), Decimal("300")]
        assert rebase_twr(values)[-1] == simple_return_pct(values[0], values[-1])

    def test_skips_leading_non_positive_values(self):
        twr = rebase_twr([Decimal("0"), Decimal("-5"), Decimal("100"), Decimal("110")])
        assert twr == [Decimal("0"), Decimal("0"), Decimal("0"), Decimal("10")]

    def test_all_zero(self):
        assert rebase_twr([Decimal("0"), Decimal("0")]) == [Decimal("0"), Decimal("0")]

    def test_empty(self):
        assert rebase_twr([]) == []


# =============================================================================
# HELPERS
# =============================================================================

class TestHelpers:

    def test_simple_return(self):
        assert simple_return_pct(Decimal("200"), Decimal("250")) == Decimal("25")

    def test_simple_return_undefined_for_non_positive_start(self):
        assert simple_return_pct(Decimal("0"), Decimal("250")) is None

    def test_annualize_one_year(self):
        result = annualize_return(Decimal("10"), 365)
        assert float(result) == pytest.approx(10.0, abs=0.01)

    def test_annualize_two_years(self):
        result = annualize_return(Decimal("21"), 730)
        assert float(result) == pytest.approx(10.0, abs=0.01)

    def test_total_loss_stays_minus_100(self):
        assert annualize_return(Decimal("-100"), 30) == Decimal("-100")
        assert annualize_return(Decimal("-150"), 30) == Decimal("-100")

    def test_zero_days_treated_as_one(self):
        assert annualize_return(Decimal("0"), 0) == Decimal("0")

    def test_overflow_returns_none(self):
        assert annualize_return(Decimal("1000"), 1) is None
