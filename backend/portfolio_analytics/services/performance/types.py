# backend/portfolio_analytics/services/performance/types.py
"""
Data types for the performance engine.

Everything the engine consumes or produces is a plain dataclass defined
here. The store boundary (ledger_store.py, market_data/price_store.py)
converts ORM rows into these shapes, so the engine never touches
SQLAlchemy objects and never has to guess the shape of a joined row.

Input types (from the stores):
    - Transaction: one ledger entry, non-negative magnitudes
    - TaxLot: current lot snapshot from the ledger
    - AssetInfo / AccountInfo: grouping metadata
    - PricePoint: one daily close
    - Ledger: everything above for one user

Intermediate types:
    - OpenLot: FIFO lot state during replay
    - FlowTotals: cumulative contribution / realized / income components
    - PortfolioState: instantaneous valuation of one group at one date

Output types:
    - ReturnRecord: PortfolioState + rebased components + returns
    - TotalsRecord: summary of a series' last point
    - BenchmarkPoint: normalized benchmark return on the grid
    - PerformanceReport: the full response of one request
    - StateReport: current valuation per group

Request type:
    - PerformanceRequest: raw request options
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from portfolio_analytics.models import FundingSource, TransactionType


# =============================================================================
# ENUMS
# =============================================================================

class Granularity(str, Enum):
    """Date grid spacing."""
    DAILY = "daily"
    MONTHLY = "monthly"


class FlowScope(str, Enum):
    """
    Which cash flows are external to a group.

    LEDGER: the group owns cash (total, account). Deposits and withdrawals
            cross its boundary; trades and income stay inside.
    SLEEVE: the group owns securities only (asset-tag lenses, per-asset
            breakdowns). Buys flow in; sells and income flow out.
    """
    LEDGER = "ledger"
    SLEEVE = "sleeve"


class ExternalBuyFlow(str, Enum):
    """IRR treatment of externally funded buys."""
    EXCLUDE = "exclude"  # Omitted from the IRR flow list
    ZERO = "zero"        # Present as a zero flow on its date
    COST = "cost"        # Sleeve scope only: a regular -(amount + fees) outflow


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class Transaction:
    """
    One ledger entry as seen by the engine.

    amount and fees are non-negative magnitudes; the sign is derived from
    transaction_type by the cash-flow normalizer.

    Attributes:
        id: Ledger id, secondary sort key after date
        date: Trade / booking date
        transaction_type: BUY, SELL, DEPOSIT, WITHDRAWAL, DIVIDEND, INTEREST, FEE
        amount: Gross amount (quantity x price for trades)
        fees: Fees charged on top of / deducted from the amount
        asset_id: Asset traded or paying income (None for cash movements)
        account_id: Account booking the entry
        quantity: Units bought or sold
        price_per_unit: Trade price
        realized_gain: Ledger-computed gain of a sale, if recorded
        funding_source: CASH or EXTERNAL (buys only)
        is_funding_record: Deposit auto-created for an externally funded buy
    """

    id: int
    date: date
    transaction_type: TransactionType
    amount: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    asset_id: int | None = None
    account_id: int | None = None
    quantity: Decimal | None = None
    price_per_unit: Decimal | None = None
    realized_gain: Decimal | None = None
    funding_source: FundingSource = FundingSource.CASH
    is_funding_record: bool = False

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Transaction {self.id}: amount must be a non-negative magnitude, got {self.amount}")
        if self.fees < 0:
            raise ValueError(f"Transaction {self.id}: fees must be non-negative, got {self.fees}")
        if self.quantity is not None and self.quantity < 0:
            raise ValueError(f"Transaction {self.id}: quantity must be non-negative, got {self.quantity}")

    @property
    def gross_amount(self) -> Decimal:
        """Amount, or quantity x price when a trade was recorded without one."""
        if self.amount == 0 and self.quantity is not None and self.price_per_unit is not None:
            return self.quantity * self.price_per_unit
        return self.amount

    @property
    def is_external_buy(self) -> bool:
        return (
            self.transaction_type == TransactionType.BUY
            and self.funding_source == FundingSource.EXTERNAL
        )


@dataclass(frozen=True)
class TaxLot:
    """
    Current lot snapshot from the ledger.

    remaining_quantity is authoritative for TODAY only. The engine uses it to
    cross-check FIFO replay, never to value historical dates.
    """

    id: int
    asset_id: int
    account_id: int | None
    purchase_date: date
    quantity: Decimal
    cost_basis_per_unit: Decimal
    remaining_quantity: Decimal

    def __post_init__(self) -> None:
        if not (Decimal("0") <= self.remaining_quantity <= self.quantity):
            raise ValueError(
                f"TaxLot {self.id}: remaining_quantity {self.remaining_quantity} "
                f"outside [0, {self.quantity}]"
            )


@dataclass(frozen=True)
class AssetInfo:
    """Asset metadata used as grouping keys."""

    id: int
    ticker: str
    name: str | None = None
    asset_type: str | None = None
    asset_subtype: str | None = None
    geography: str | None = None
    size_tag: str | None = None
    factor_tag: str | None = None
    sub_portfolio_id: int | None = None
    sub_portfolio_name: str | None = None


@dataclass(frozen=True)
class AccountInfo:
    id: int
    name: str | None = None


@dataclass(frozen=True)
class PricePoint:
    """One daily close for one ticker."""
    ticker: str
    date: date
    close: Decimal


@dataclass
class Ledger:
    """Everything the engine needs from the transaction/lot store for one user."""

    transactions: list[Transaction] = field(default_factory=list)
    lots: list[TaxLot] = field(default_factory=list)
    assets: dict[int, AssetInfo] = field(default_factory=dict)
    accounts: dict[int, AccountInfo] = field(default_factory=dict)

    def ticker_for(self, asset_id: int | None) -> str | None:
        asset = self.assets.get(asset_id) if asset_id is not None else None
        return asset.ticker if asset else None


# =============================================================================
# INTERMEDIATE TYPES
# =============================================================================

@dataclass
class OpenLot:
    """
    A FIFO lot during replay.

    Mutable: sales reduce remaining_quantity in place.
    """

    asset_id: int
    account_id: int | None
    purchase_date: date
    remaining_quantity: Decimal
    cost_basis_per_unit: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.remaining_quantity * self.cost_basis_per_unit


@dataclass
class FlowTotals:
    """
    Cumulative (not rebased) flow components of one group up to a date.

    Attributes:
        net_contributions: Money put in minus money taken out, from the
            group's point of view (see FlowScope)
        realized: Gains realized by sales
        income: Dividends and interest, net of their fees
        fees: Standalone FEE transactions charged to the group
    """

    net_contributions: Decimal = Decimal("0")
    realized: Decimal = Decimal("0")
    income: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")


@dataclass(frozen=True)
class PortfolioState:
    """
    Instantaneous valuation of one group at one date.

    portfolio_value = market_value + cash
    unrealized = market_value - total_basis
    """

    date: date
    market_value: Decimal
    total_basis: Decimal
    unrealized: Decimal
    cash: Decimal
    portfolio_value: Decimal

    @classmethod
    def empty(cls, as_of: date) -> "PortfolioState":
        zero = Decimal("0")
        return cls(
            date=as_of,
            market_value=zero,
            total_basis=zero,
            unrealized=zero,
            cash=zero,
            portfolio_value=zero,
        )


# =============================================================================
# OUTPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class ReturnRecord:
    """
    One point of a group's performance series.

    Flow components are rebased to the first point of the range, so
    net_gain == unrealized + realized + income holds at every point and
    unrealized is the residual of the portfolio value change.

    Attributes:
        state: Raw valuation at this date
        net_contributions: Contributions since the first point
        realized: Realized gains since the first point
        income: Income since the first point
        unrealized: (PV - PV_0) - net_contributions - realized - income
        net_gain: unrealized + realized + income
        total_return_pct: net_gain relative to capital at work, in percent
        twr: Time-weighted return since the first point, in percent
        irr: Annualized money-weighted return, in percent (None if undefined
             and no fallback is configured)
        irr_is_estimate: True when irr is the annualized-total-return fallback
    """

    state: PortfolioState
    net_contributions: Decimal
    realized: Decimal
    income: Decimal
    unrealized: Decimal
    net_gain: Decimal
    total_return_pct: Decimal
    twr: Decimal
    irr: Decimal | None
    irr_is_estimate: bool = False

    @property
    def date(self) -> date:
        return self.state.date


@dataclass(frozen=True)
class TotalsRecord:
    """Summary metrics of a series (its last point, or zeros when empty)."""

    market_value: Decimal = Decimal("0")
    total_basis: Decimal = Decimal("0")
    cash: Decimal = Decimal("0")
    portfolio_value: Decimal = Decimal("0")
    net_contributions: Decimal = Decimal("0")
    realized: Decimal = Decimal("0")
    income: Decimal = Decimal("0")
    unrealized: Decimal = Decimal("0")
    net_gain: Decimal = Decimal("0")
    total_return_pct: Decimal = Decimal("0")
    twr: Decimal = Decimal("0")
    irr: Decimal | None = Decimal("0")
    irr_is_estimate: bool = False


@dataclass(frozen=True)
class BenchmarkPoint:
    date: date
    value_pct: Decimal


@dataclass
class GroupSlice:
    """Transactions and lots assigned to one group."""

    label: str
    transactions: list[Transaction] = field(default_factory=list)
    lots: list[TaxLot] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.transactions


@dataclass
class PerformanceReport:
    """
    Complete result of one performance request.

    series / totals are keyed by group label (plus "Portfolio" when an
    aggregate series was requested). asset_series / asset_totals are keyed
    group label -> ticker and only filled in non-aggregate mode.
    """

    lens: str
    aggregate: bool
    start_date: date
    end_date: date
    granularity: Granularity
    dates: list[date] = field(default_factory=list)
    series: dict[str, list[ReturnRecord]] = field(default_factory=dict)
    totals: dict[str, TotalsRecord] = field(default_factory=dict)
    benchmarks: dict[str, list[BenchmarkPoint]] = field(default_factory=dict)
    asset_series: dict[str, dict[str, list[ReturnRecord]]] = field(default_factory=dict)
    asset_totals: dict[str, dict[str, TotalsRecord]] = field(default_factory=dict)
    missing_prices: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class StateReport:
    """Current PortfolioState per group of a lens (no series, no returns)."""

    lens: str
    as_of: date
    states: dict[str, PortfolioState] = field(default_factory=dict)
    missing_prices: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# REQUEST OPTIONS
# =============================================================================

@dataclass
class PerformanceRequest:
    """
    Options of one performance request, as received (unvalidated strings).

    PerformanceService parses and validates every field; None means "use
    the configured default".

    Attributes:
        lens: Grouping dimension name
        selected_values: Group keys to keep, in display order
        aggregate: One series per group (+ "Portfolio"); False adds the
            per-asset breakdown
        include_portfolio: Add the "Portfolio" aggregate series
        period: Named period (1M ... ALL), ignored when start_date is given
        start_date / end_date: Explicit range (end defaults to today)
        granularity: "daily" or "monthly"
        benchmarks: Benchmark identifiers
        external_buy_flow: Override of Settings.external_buy_flow
    """

    lens: str = "total"
    selected_values: list[str] = field(default_factory=list)
    aggregate: bool = True
    include_portfolio: bool = True
    period: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    granularity: str | None = None
    benchmarks: list[str] = field(default_factory=list)
    external_buy_flow: str | None = None
