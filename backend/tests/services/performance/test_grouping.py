# backend/tests/services/performance/test_grouping.py
"""
Tests for lens parsing and partitioning.
"""

from datetime import date

import pytest

from portfolio_analytics.models import TransactionType
from portfolio_analytics.services.exceptions import InvalidLensError
from portfolio_analytics.services.performance.grouping import (
    Lens,
    account_label,
    available_keys,
    group,
    group_assets,
    union_slices,
)
from portfolio_analytics.services.performance.types import FlowScope
from tests.conftest import buy, deposit, make_tx, sample_ledger

D = date(2024, 1, 2)


@pytest.fixture
def ledger():
    return sample_ledger([
        deposit(1, D, "10000", account_id=1),
        deposit(2, D, "5000", account_id=2),
        buy(3, D, 1, "10", "100", account_id=1),   # VTI  US / Core
        buy(4, D, 2, "10", "50", account_id=2),    # VXUS International / Satellite
        buy(5, D, 3, "10", "90", account_id=2),    # TLT  no geography
        make_tx(6, D, TransactionType.FEE, "5", account_id=1),
    ])


class TestLens:

    @pytest.mark.parametrize("raw,expected", [
        ("total", Lens.TOTAL),
        ("Account", Lens.ACCOUNT),
        (" GEOGRAPHY ", Lens.GEOGRAPHY),
        ("asset-type", Lens.ASSET_TYPE),
        ("sub_portfolio", Lens.SUB_PORTFOLIO),
    ])
    def test_parse(self, raw, expected):
        assert Lens.parse(raw) == expected

    def test_parse_invalid(self):
        with pytest.raises(InvalidLensError) as exc_info:
            Lens.parse("sector")

        assert exc_info.value.field == "lens"
        assert "geography" in exc_info.value.valid_options

    def test_scopes(self):
        assert Lens.TOTAL.scope == FlowScope.LEDGER
        assert Lens.ACCOUNT.scope == FlowScope.LEDGER
        assert all(lens.scope == FlowScope.SLEEVE for lens in Lens if lens.is_asset_lens)


class TestGroup:

    def test_total_is_one_group_with_everything(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.TOTAL, None, ledger)

        assert list(slices) == ["Total"]
        assert len(slices["Total"].transactions) == 6

    def test_total_ignores_selection(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.TOTAL, ["Brokerage"], ledger)
        assert list(slices) == ["Total"]

    def test_account_groups(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.ACCOUNT, None, ledger)

        assert list(slices) == ["Brokerage", "IRA"]
        assert [tx.id for tx in slices["Brokerage"].transactions] == [1, 3, 6]

    def test_unnamed_account_label(self, ledger):
        assert account_label(7, ledger) == "Account 7"
        assert account_label(None, ledger) == "Untagged"

    def test_asset_lens_drops_cash_movements_and_puts_untagged_last(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.GEOGRAPHY, None, ledger)

        assert list(slices) == ["International", "US", "Untagged"]
        assert [tx.id for tx in slices["US"].transactions] == [3]
        assert [tx.id for tx in slices["Untagged"].transactions] == [5]

    def test_sub_portfolio_lens(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.SUB_PORTFOLIO, None, ledger)
        assert list(slices) == ["Core", "Satellite", "Untagged"]

    def test_selection_filters_and_orders(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.ASSET_TYPE, ["Bond", "Equity"], ledger)

        assert list(slices) == ["Bond", "Equity"]
        assert len(slices["Equity"].transactions) == 2

    def test_selected_key_without_data_is_empty(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.GEOGRAPHY, ["Japan"], ledger)

        assert list(slices) == ["Japan"]
        assert slices["Japan"].is_empty

    def test_available_keys(self, ledger):
        assert available_keys(Lens.ASSET_TYPE, ledger) == ["Bond", "Equity"]
        assert available_keys(Lens.TOTAL, ledger) == ["Total"]


class TestUnionAndBreakdown:

    def test_union_merges_without_duplicates(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.ACCOUNT, None, ledger)
        merged = union_slices([*slices.values(), slices["IRA"]])

        assert merged.label == "Portfolio"
        assert sorted(tx.id for tx in merged.transactions) == [1, 2, 3, 4, 5, 6]

    def test_group_assets_by_ticker(self, ledger):
        slices = group(ledger.transactions, ledger.lots, Lens.ACCOUNT, None, ledger)
        by_asset = group_assets(slices["IRA"], ledger)

        assert list(by_asset) == ["TLT", "VXUS"]
        assert [tx.id for tx in by_asset["TLT"].transactions] == [5]

    def test_group_assets_unknown_asset(self, ledger):
        unknown = group(
            [buy(9, D, 42, "1", "1")], [], Lens.TOTAL, None, ledger
        )["Total"]
        assert list(group_assets(unknown, ledger)) == ["Asset 42"]
