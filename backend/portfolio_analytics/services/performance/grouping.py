# backend/portfolio_analytics/services/performance/grouping.py
"""
Grouping / aggregation layer.

A lens partitions a user's transactions and lots into independent groups,
each of which gets its own valuation and return series:

    total          one group, "Total"
    account        one group per account (name, or "Account <id>")
    sub_portfolio  one group per sub-portfolio of the traded asset
    asset_type     ... and so on for every asset tag

Asset lenses only see asset-bearing transactions: deposits, withdrawals,
cash interest and unattributed fees have no key and are dropped. Assets
without the tag fall under "Untagged".

Every lens carries an explicit key extractor and a FlowScope (ledger for
total/account, sleeve for asset lenses), so nothing here resolves attribute
paths dynamically.

Usage:
    lens = Lens.parse("geography")
    slices = group(ledger.transactions, ledger.lots, lens, ["US"], ledger)
    portfolio = union_slices(slices.values())
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from enum import Enum

from portfolio_analytics.services.constants import (
    PORTFOLIO_GROUP_LABEL,
    TOTAL_GROUP_LABEL,
    UNTAGGED_GROUP_LABEL,
)
from portfolio_analytics.services.exceptions import InvalidLensError
from portfolio_analytics.services.performance.types import (
    AssetInfo,
    FlowScope,
    GroupSlice,
    Ledger,
    TaxLot,
    Transaction,
)

logger = logging.getLogger(__name__)


class Lens(str, Enum):
    """Grouping dimension of a performance report."""

    TOTAL = "total"
    ACCOUNT = "account"
    SUB_PORTFOLIO = "sub_portfolio"
    ASSET_TYPE = "asset_type"
    ASSET_SUBTYPE = "asset_subtype"
    GEOGRAPHY = "geography"
    SIZE_TAG = "size_tag"
    FACTOR_TAG = "factor_tag"

    @classmethod
    def parse(cls, value: str) -> "Lens":
        """
        Parse a lens name, case-insensitive, dashes accepted.

        Raises:
            InvalidLensError: If the name is not a known lens
        """
        normalized = value.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidLensError(value, [lens.value for lens in cls]) from None

    @property
    def scope(self) -> FlowScope:
        if self in (Lens.TOTAL, Lens.ACCOUNT):
            return FlowScope.LEDGER
        return FlowScope.SLEEVE

    @property
    def is_asset_lens(self) -> bool:
        return self in _ASSET_EXTRACTORS

    def asset_key(self, asset: AssetInfo | None) -> str:
        """Group label of an asset under this (asset) lens."""
        if asset is None:
            return UNTAGGED_GROUP_LABEL
        value = _ASSET_EXTRACTORS[self](asset)
        if value is None or not str(value).strip():
            return UNTAGGED_GROUP_LABEL
        return str(value).strip()


_ASSET_EXTRACTORS: dict[Lens, Callable[[AssetInfo], str | None]] = {
    Lens.SUB_PORTFOLIO: lambda asset: asset.sub_portfolio_name,
    Lens.ASSET_TYPE: lambda asset: asset.asset_type,
    Lens.ASSET_SUBTYPE: lambda asset: asset.asset_subtype,
    Lens.GEOGRAPHY: lambda asset: asset.geography,
    Lens.SIZE_TAG: lambda asset: asset.size_tag,
    Lens.FACTOR_TAG: lambda asset: asset.factor_tag,
}


def account_label(account_id: int | None, ledger: Ledger) -> str:
    """Account name, "Account <id>" when unnamed, "Untagged" without account."""
    if account_id is None:
        return UNTAGGED_GROUP_LABEL
    account = ledger.accounts.get(account_id)
    if account is not None and account.name:
        return account.name
    return f"Account {account_id}"


def _key_for(
        lens: Lens,
        account_id: int | None,
        asset_id: int | None,
        ledger: Ledger,
) -> str | None:
    if lens == Lens.TOTAL:
        return TOTAL_GROUP_LABEL
    if lens == Lens.ACCOUNT:
        return account_label(account_id, ledger)
    if asset_id is None:
        return None
    return lens.asset_key(ledger.assets.get(asset_id))


def _ordered_labels(keys: Iterable[str]) -> list[str]:
    """Alphabetical, "Untagged" last."""
    unique = set(keys)
    ordered = sorted(label for label in unique if label != UNTAGGED_GROUP_LABEL)
    if UNTAGGED_GROUP_LABEL in unique:
        ordered.append(UNTAGGED_GROUP_LABEL)
    return ordered


def group(
        transactions: Sequence[Transaction],
        lots: Sequence[TaxLot],
        lens: Lens,
        selected_keys: Sequence[str] | None,
        ledger: Ledger,
) -> dict[str, GroupSlice]:
    """
    Partition transactions and lots by lens key.

    Args:
        transactions: The user's transactions
        lots: The user's current lot snapshot
        lens: Grouping dimension
        selected_keys: Keys to keep, in display order (None/empty keeps all;
            ignored by the total lens)
        ledger: Asset and account metadata

    Returns:
        label -> GroupSlice, in selection order (else label order). A
        selected key with no matching data maps to an empty slice.
    """
    buckets: dict[str, GroupSlice] = {}

    for tx in transactions:
        key = _key_for(lens, tx.account_id, tx.asset_id, ledger)
        if key is None:
            continue
        buckets.setdefault(key, GroupSlice(label=key)).transactions.append(tx)

    for lot in lots:
        key = _key_for(lens, lot.account_id, lot.asset_id, ledger)
        if key is None:
            continue
        buckets.setdefault(key, GroupSlice(label=key)).lots.append(lot)

    if lens == Lens.TOTAL:
        return {TOTAL_GROUP_LABEL: buckets.get(TOTAL_GROUP_LABEL, GroupSlice(label=TOTAL_GROUP_LABEL))}

    selection = [key for key in (selected_keys or []) if key]
    if not selection:
        return {label: buckets[label] for label in _ordered_labels(buckets)}

    result: dict[str, GroupSlice] = {}
    for key in selection:
        if key in result:
            continue
        result[key] = buckets.get(key, GroupSlice(label=key))

    dropped = set(buckets) - set(result)
    if dropped:
        logger.debug(f"Lens {lens.value}: filtered out {len(dropped)} group(s)")

    return result


def available_keys(lens: Lens, ledger: Ledger) -> list[str]:
    """Every key the lens produces for the ledger, in label order."""
    return list(group(ledger.transactions, ledger.lots, lens, None, ledger).keys())


def union_slices(slices: Iterable[GroupSlice], label: str = PORTFOLIO_GROUP_LABEL) -> GroupSlice:
    """
    Merge several slices into one aggregate slice.

    The aggregate is re-valued from the merged transactions, never averaged
    from the groups' rates.
    """
    merged = GroupSlice(label=label)
    seen: set[int] = set()
    for slice_ in slices:
        for tx in slice_.transactions:
            if id(tx) in seen:
                continue
            seen.add(id(tx))
            merged.transactions.append(tx)
        merged.lots.extend(slice_.lots)
    return merged


def group_assets(slice_: GroupSlice, ledger: Ledger) -> dict[str, GroupSlice]:
    """
    Partition a group by asset for the per-asset breakdown.

    Keys are tickers ("Asset <id>" when the asset is unknown), in
    alphabetical order. Transactions without an asset are dropped.
    """
    by_asset: dict[str, GroupSlice] = {}

    for tx in slice_.transactions:
        if tx.asset_id is None:
            continue
        label = ledger.ticker_for(tx.asset_id) or f"Asset {tx.asset_id}"
        by_asset.setdefault(label, GroupSlice(label=label)).transactions.append(tx)

    for lot in slice_.lots:
        label = ledger.ticker_for(lot.asset_id) or f"Asset {lot.asset_id}"
        by_asset.setdefault(label, GroupSlice(label=label)).lots.append(lot)

    return {label: by_asset[label] for label in sorted(by_asset)}
