# backend/portfolio_analytics/services/performance/positions.py
"""
Position Reconstructor: FIFO lot replay.

The ledger's tax-lot table only knows what is open TODAY. To value a
portfolio on a historical date we replay the transactions up to that date
and rebuild the lots FIFO accounting would have produced.

Two entry points:

    reconstruct(transactions, as_of)
        One-shot replay, returns the open lots at as_of.

    new_state() / apply_transaction(state, tx) / open_lots(state)
        Incremental form for the time-series builder, which advances one
        FifoState across a sorted date grid (Rolling State pattern, O(D + T)).

Rules:
    - Replay order is (date, id, input position), a stable sort
    - One lot queue per asset_id; a sale consumes the asset's oldest lots
      whatever account they were bought in
    - BUY appends a lot at price_per_unit (gross amount / quantity when the
      price is missing)
    - SELL consumes from the front and may span lots; emptied lots are dropped
    - Selling more than is open floors at zero and records a warning
    - Realized gain: the ledger's stored realized_gain when present, else
      (amount - fees) - consumed cost basis
"""

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from portfolio_analytics.models import TransactionType
from portfolio_analytics.services.constants import QUANTITY_EPSILON, ZERO
from portfolio_analytics.services.performance.types import OpenLot, TaxLot, Transaction

logger = logging.getLogger(__name__)

LotKey = tuple[int | None, int]


@dataclass
class FifoState:
    """
    Mutable replay state.

    Attributes:
        queues: asset_id -> lots, oldest first
        warnings: Data-integrity problems met during replay
    """

    queues: dict[int, deque[OpenLot]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """
    Chronological replay order.

    Ties on date are broken by ledger id, then by input position, which
    keeps FIFO deterministic for same-day trades.
    """
    indexed = list(enumerate(transactions))
    indexed.sort(key=lambda item: (item[1].date, item[1].id, item[0]))
    return [tx for _, tx in indexed]


class PositionReconstructor:
    """Replays buys and sells into FIFO lot queues."""

    def new_state(self) -> FifoState:
        return FifoState()

    def reconstruct(
            self,
            transactions: Iterable[Transaction],
            as_of: date | None = None,
            state: FifoState | None = None,
    ) -> list[OpenLot]:
        """
        Open lots after replaying every transaction dated on or before as_of.

        Args:
            transactions: Transactions in any order
            as_of: Cut-off date (inclusive), None replays everything
            state: Optional state to replay into (its warnings are kept)

        Returns:
            Open lots with remaining_quantity > 0
        """
        state = state if state is not None else self.new_state()
        for tx in sort_transactions(transactions):
            if as_of is not None and tx.date > as_of:
                break
            self.apply_transaction(state, tx)
        return self.open_lots(state)

    def apply_transaction(self, state: FifoState, tx: Transaction) -> Decimal:
        """
        Apply one transaction to the lot queues (mutates state).

        Transactions other than BUY / SELL and transactions without an
        asset leave the queues untouched.

        Returns:
            Realized gain of the transaction (0 unless it is a SELL)
        """
        if tx.asset_id is None:
            return ZERO

        if tx.transaction_type == TransactionType.BUY:
            self._apply_buy(state, tx)
            return ZERO

        if tx.transaction_type == TransactionType.SELL:
            return self._apply_sell(state, tx)

        return ZERO

    def open_lots(self, state: FifoState) -> list[OpenLot]:
        """Snapshot of the open lots, queue order preserved."""
        return [
            lot
            for queue in state.queues.values()
            for lot in queue
            if lot.remaining_quantity > QUANTITY_EPSILON
        ]

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _trade_quantity(tx: Transaction) -> Decimal | None:
        if tx.quantity is not None:
            return tx.quantity
        if tx.price_per_unit:
            return tx.gross_amount / tx.price_per_unit
        return None

    def _apply_buy(self, state: FifoState, tx: Transaction) -> None:
        quantity = self._trade_quantity(tx)
        if quantity is None or quantity <= QUANTITY_EPSILON:
            logger.debug(f"Buy {tx.id} has no quantity; no lot created")
            return

        if tx.price_per_unit is not None:
            unit_cost = tx.price_per_unit
        else:
            unit_cost = tx.gross_amount / quantity

        state.queues.setdefault(tx.asset_id, deque()).append(
            OpenLot(
                asset_id=tx.asset_id,
                account_id=tx.account_id,
                purchase_date=tx.date,
                remaining_quantity=quantity,
                cost_basis_per_unit=unit_cost,
            )
        )

    def _apply_sell(self, state: FifoState, tx: Transaction) -> Decimal:
        quantity = self._trade_quantity(tx)
        if quantity is None or quantity <= QUANTITY_EPSILON:
            logger.debug(f"Sell {tx.id} has no quantity; nothing consumed")
            return tx.realized_gain if tx.realized_gain is not None else ZERO

        queue = state.queues.get(tx.asset_id)

        if not queue:
            message = (
                f"Sell {tx.id} on {tx.date} of asset {tx.asset_id} has no open lots; "
                f"quantity {quantity} ignored"
            )
            logger.warning(message)
            state.warnings.append(message)
            return tx.realized_gain if tx.realized_gain is not None else ZERO

        to_sell = quantity
        consumed_basis = ZERO

        while to_sell > QUANTITY_EPSILON and queue:
            lot = queue[0]
            take = min(lot.remaining_quantity, to_sell)
            consumed_basis += take * lot.cost_basis_per_unit
            lot.remaining_quantity -= take
            to_sell -= take
            if lot.remaining_quantity <= QUANTITY_EPSILON:
                queue.popleft()

        if not queue:
            del state.queues[tx.asset_id]

        if to_sell > QUANTITY_EPSILON:
            message = (
                f"Sell {tx.id} on {tx.date} of asset {tx.asset_id} exceeds open quantity "
                f"by {to_sell}; position floored at zero"
            )
            logger.warning(message)
            state.warnings.append(message)

        if tx.realized_gain is not None:
            return tx.realized_gain
        return (tx.gross_amount - tx.fees) - consumed_basis


def quantities_by_asset(lots: Iterable[OpenLot]) -> dict[int, Decimal]:
    """Total open quantity per asset across accounts."""
    totals: dict[int, Decimal] = {}
    for lot in lots:
        totals[lot.asset_id] = totals.get(lot.asset_id, ZERO) + lot.remaining_quantity
    return totals


def reconcile_lots(
        replayed: Iterable[OpenLot],
        snapshot: Iterable[TaxLot],
) -> list[str]:
    """
    Compare replayed open quantities with the ledger's current lot snapshot.

    Only meaningful when the replay ran up to today. Differences are
    reported per (account_id, asset_id); the replay result is kept.

    Returns:
        Warning messages, empty when both agree
    """
    replay_qty: dict[LotKey, Decimal] = {}
    for lot in replayed:
        key = (lot.account_id, lot.asset_id)
        replay_qty[key] = replay_qty.get(key, ZERO) + lot.remaining_quantity

    snapshot_qty: dict[LotKey, Decimal] = {}
    for lot in snapshot:
        key = (lot.account_id, lot.asset_id)
        snapshot_qty[key] = snapshot_qty.get(key, ZERO) + lot.remaining_quantity

    warnings = []
    for key in sorted(set(replay_qty) | set(snapshot_qty), key=lambda k: (k[0] or 0, k[1])):
        replayed_qty = replay_qty.get(key, ZERO)
        stored_qty = snapshot_qty.get(key, ZERO)
        if abs(replayed_qty - stored_qty) > QUANTITY_EPSILON:
            account_id, asset_id = key
            message = (
                f"Lot mismatch for asset {asset_id} (account {account_id}): "
                f"replay has {replayed_qty}, ledger lots have {stored_qty}"
            )
            logger.warning(message)
            warnings.append(message)
    return warnings
