# backend/portfolio_analytics/services/ledger_store.py
"""
SQLAlchemy ledger store.

Implements LedgerStoreProtocol: loads one user's transactions, current tax
lots, assets and accounts, and converts every row into the engine's plain
dataclasses (services/performance/types.py). This is the only place ORM
rows and engine types meet.

Normalization rules:
- NULL amount / fees become 0
- Negative amount, fees or quantity (legacy signed rows) become their
  magnitude, with a warning
- Decimal columns are passed through unchanged (Numeric(18, 8))
- Asset rows carry their sub-portfolio name (outer join)
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_analytics.models import (
    Account,
    Asset,
    FundingSource,
    SubPortfolio,
    TaxLot as TaxLotModel,
    Transaction as TransactionModel,
)
from portfolio_analytics.services.constants import ZERO
from portfolio_analytics.services.performance.types import (
    AccountInfo,
    AssetInfo,
    Ledger,
    TaxLot,
    Transaction,
)

logger = logging.getLogger(__name__)


class SqlLedgerStore:
    """Reads a user's ledger up to a date."""

    def load_ledger(self, db: Session, user_id: int, end_date: date) -> Ledger:
        """
        Load everything the performance engine needs for one user.

        Args:
            db: Database session
            user_id: Owner of the ledger
            end_date: Last transaction date included

        Returns:
            Ledger with transactions ordered by (date, id), the current lot
            snapshot, and asset / account metadata keyed by id
        """
        transactions = self._load_transactions(db, user_id, end_date)
        lots = self._load_lots(db, user_id)
        assets = self._load_assets(db, user_id)
        accounts = self._load_accounts(db, user_id)

        logger.debug(
            f"Loaded ledger for user {user_id} up to {end_date}: "
            f"{len(transactions)} transactions, {len(lots)} lots, "
            f"{len(assets)} assets, {len(accounts)} accounts"
        )

        return Ledger(
            transactions=transactions,
            lots=lots,
            assets=assets,
            accounts=accounts,
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _load_transactions(self, db: Session, user_id: int, end_date: date) -> list[Transaction]:
        query = (
            select(TransactionModel)
            .where(
                TransactionModel.user_id == user_id,
                TransactionModel.date <= end_date,
            )
            .order_by(TransactionModel.date, TransactionModel.id)
        )
        return [self._map_transaction(row) for row in db.scalars(query).all()]

    def _load_lots(self, db: Session, user_id: int) -> list[TaxLot]:
        query = (
            select(TaxLotModel)
            .where(TaxLotModel.user_id == user_id)
            .order_by(TaxLotModel.purchase_date, TaxLotModel.id)
        )
        return [
            TaxLot(
                id=row.id,
                asset_id=row.asset_id,
                account_id=row.account_id,
                purchase_date=row.purchase_date,
                quantity=row.quantity,
                cost_basis_per_unit=row.cost_basis_per_unit,
                remaining_quantity=row.remaining_quantity,
            )
            for row in db.scalars(query).all()
        ]

    def _load_assets(self, db: Session, user_id: int) -> dict[int, AssetInfo]:
        query = (
            select(Asset, SubPortfolio.name)
            .outerjoin(SubPortfolio, Asset.sub_portfolio_id == SubPortfolio.id)
            .where(Asset.user_id == user_id)
        )
        assets = {}
        for asset, sub_portfolio_name in db.execute(query).all():
            assets[asset.id] = AssetInfo(
                id=asset.id,
                ticker=asset.ticker.strip().upper(),
                name=asset.name,
                asset_type=asset.asset_type,
                asset_subtype=asset.asset_subtype,
                geography=asset.geography,
                size_tag=asset.size_tag,
                factor_tag=asset.factor_tag,
                sub_portfolio_id=asset.sub_portfolio_id,
                sub_portfolio_name=sub_portfolio_name,
            )
        return assets

    def _load_accounts(self, db: Session, user_id: int) -> dict[int, AccountInfo]:
        query = select(Account).where(Account.user_id == user_id)
        return {
            account.id: AccountInfo(id=account.id, name=account.name)
            for account in db.scalars(query).all()
        }

    # =========================================================================
    # MAPPING
    # =========================================================================

    @staticmethod
    def _map_transaction(row: TransactionModel) -> Transaction:
        amount = _decimal_or_zero(row.amount)
        fees = _decimal_or_zero(row.fees)
        quantity = row.quantity

        # Legacy rows may carry signed values; the direction lives in the type
        if amount < 0 or fees < 0 or (quantity is not None and quantity < 0):
            logger.warning(
                f"Transaction {row.id} has signed values (amount={amount}, fees={fees}, "
                f"quantity={quantity}); using magnitudes"
            )
            amount, fees = abs(amount), abs(fees)
            quantity = abs(quantity) if quantity is not None else None

        return Transaction(
            id=row.id,
            date=row.date,
            transaction_type=row.transaction_type,
            amount=amount,
            fees=fees,
            asset_id=row.asset_id,
            account_id=row.account_id,
            quantity=quantity,
            price_per_unit=row.price_per_unit,
            realized_gain=row.realized_gain,
            funding_source=row.funding_source or FundingSource.CASH,
            is_funding_record=bool(row.is_funding_record),
        )


def _decimal_or_zero(value: Decimal | None) -> Decimal:
    return ZERO if value is None else Decimal(value)
