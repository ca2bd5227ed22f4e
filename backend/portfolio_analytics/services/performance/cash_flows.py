# backend/portfolio_analytics/services/performance/cash_flows.py
"""
Cash-flow normalizer.

Turns a transaction (non-negative magnitudes + a type) into signed numbers:

1. normalize(tx): the signed flow of the transaction on the portfolio's
   cash ledger, used to build IRR flows.

       BUY (cash funded)    -(amount + fees)
       BUY (external)        0   (the position still enters FIFO lots)
       SELL                 +(amount - fees)
       DIVIDEND / INTEREST  +(amount - fees)
       DEPOSIT              +(amount - fees)
       WITHDRAWAL           -(amount + fees)
       FEE                  not an IRR flow

2. cash_delta(tx): the transaction's effect on the running cash balance.
   Same signs; FEE reduces cash by (amount + fees); the deposit the ledger
   auto-creates for an externally funded buy is skipped, because the buy
   itself never drew on cash.

3. irr_flow(tx, scope, policy): the flow as the INVESTOR sees it for a
   group of the given FlowScope, or None when the transaction does not
   cross the group's boundary.

       LEDGER scope: deposits/withdrawals only, sign flipped
                     (a deposit is money leaving the investor's pocket)
       SLEEVE scope: buys, sells and income, normalize() sign

   Externally funded buys follow ExternalBuyFlow.

4. contribution(tx, scope, policy): the transaction's effect on the group's
   net contributions, consistent with irr_flow (contribution = -flow),
   plus standalone fees charged to a sleeve.

All functions are pure.
"""

from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal

from portfolio_analytics.models import TransactionType
from portfolio_analytics.services.constants import ZERO
from portfolio_analytics.services.performance.types import (
    ExternalBuyFlow,
    FlowScope,
    Transaction,
)

_INCOME_TYPES = frozenset({TransactionType.DIVIDEND, TransactionType.INTEREST})
_TRADE_TYPES = frozenset({TransactionType.BUY, TransactionType.SELL})
_CONTRIBUTION_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.WITHDRAWAL})


# =============================================================================
# SIGNED FLOWS
# =============================================================================

def normalize(tx: Transaction) -> Decimal:
    """
    Signed cash flow of a transaction on the portfolio's cash ledger.

    Fees always push the flow in the direction that costs the investor more.
    FEE transactions return their (negative) cash effect here; use
    is_irr_flow() to exclude them from IRR flow lists.

    Returns:
        Signed Decimal flow
    """
    tx_type = tx.transaction_type
    amount = tx.gross_amount

    if tx_type == TransactionType.BUY:
        if tx.is_external_buy:
            return ZERO
        return -(amount + tx.fees)

    if tx_type == TransactionType.SELL:
        return amount - tx.fees

    if tx_type in _INCOME_TYPES:
        return amount - tx.fees

    if tx_type == TransactionType.DEPOSIT:
        return amount - tx.fees

    if tx_type == TransactionType.WITHDRAWAL:
        return -(amount + tx.fees)

    # FEE
    return -(amount + tx.fees)


def is_irr_flow(tx: Transaction) -> bool:
    """Fee-only transactions are already netted into other flows."""
    return tx.transaction_type != TransactionType.FEE


def cash_delta(tx: Transaction) -> Decimal:
    """
    Effect of a transaction on the running cash balance.

    Returns 0 for the auto-generated funding deposit of an externally
    funded buy (and for the buy itself, via normalize).
    """
    if tx.is_funding_record:
        return ZERO
    return normalize(tx)


def cash_balance(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of cash deltas."""
    return sum((cash_delta(tx) for tx in transactions), ZERO)


def cash_balances_by_account(transactions: Iterable[Transaction]) -> dict[int | None, Decimal]:
    """
    Running cash balance per account.

    Transactions without an account are collected under None.
    """
    balances: dict[int | None, Decimal] = defaultdict(lambda: ZERO)
    for tx in transactions:
        balances[tx.account_id] += cash_delta(tx)
    return dict(balances)


# =============================================================================
# SCOPE-AWARE FLOWS
# =============================================================================

def irr_flow(
        tx: Transaction,
        scope: FlowScope,
        external_buy_flow: ExternalBuyFlow = ExternalBuyFlow.EXCLUDE,
) -> Decimal | None:
    """
    Investor-side IRR flow of a transaction for a group, or None.

    Args:
        tx: Transaction belonging to the group
        scope: The group's flow scope
        external_buy_flow: Treatment of externally funded buys

    Returns:
        Signed flow (negative = investor pays in), or None if the
        transaction is not an IRR flow for this scope
    """
    if not is_irr_flow(tx):
        return None

    tx_type = tx.transaction_type

    if tx.is_external_buy:
        if external_buy_flow == ExternalBuyFlow.EXCLUDE:
            return None
        if external_buy_flow == ExternalBuyFlow.COST and scope == FlowScope.SLEEVE:
            return -(tx.gross_amount + tx.fees)
        return ZERO

    if scope == FlowScope.LEDGER:
        if tx_type in _CONTRIBUTION_TYPES:
            return -normalize(tx)
        return None

    if tx_type in _TRADE_TYPES or tx_type in _INCOME_TYPES:
        return normalize(tx)
    return None


def contribution(
        tx: Transaction,
        scope: FlowScope,
        external_buy_flow: ExternalBuyFlow = ExternalBuyFlow.EXCLUDE,
) -> Decimal:
    """
    Change in a group's net contributions caused by a transaction.

    Mirrors irr_flow (contribution == -flow) so the gain decomposition and
    the IRR see the same money crossing the group boundary, with two sleeve
    exceptions: a standalone fee charged to the group counts as money paid
    in, and an externally funded buy always contributes its cost (the
    ExternalBuyFlow policy only governs the IRR flow list).
    """
    if scope == FlowScope.SLEEVE:
        if tx.transaction_type == TransactionType.FEE or tx.is_external_buy:
            return tx.gross_amount + tx.fees

    flow = irr_flow(tx, scope, external_buy_flow)
    if flow is None:
        return ZERO
    return -flow


def income_amount(tx: Transaction) -> Decimal:
    """Net income of a dividend / interest transaction, 0 otherwise."""
    if tx.transaction_type in _INCOME_TYPES:
        return tx.gross_amount - tx.fees
    return ZERO


def fee_amount(tx: Transaction) -> Decimal:
    """Amount of a standalone FEE transaction, 0 otherwise."""
    if tx.transaction_type == TransactionType.FEE:
        return tx.gross_amount + tx.fees
    return ZERO
