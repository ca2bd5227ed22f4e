#!/usr/bin/env python3
# backend/scripts/seed_sample_data.py
"""
Seed a demo ledger: one user, two accounts, three tagged assets, a year of
transactions, matching tax lots and a few cached closes.

    python backend/scripts/seed_sample_data.py

Then:
    curl -H "X-User-Id: <id>" "http://localhost:8000/performance/reports?lens=account&period=ALL"
"""
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Setup path to import portfolio_analytics modules
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from portfolio_analytics.database import SessionLocal
from portfolio_analytics.models import (
    Account,
    Asset,
    FundingSource,
    HistoricalPrice,
    SubPortfolio,
    TaxLot,
    Transaction,
    TransactionType,
    User,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@example.com"

ASSETS = [
    {"ticker": "VTI", "name": "Vanguard Total Stock Market ETF", "asset_type": "Equity",
     "asset_subtype": "ETF", "geography": "US", "size_tag": "Total Market", "factor_tag": "Blend",
     "sleeve": "Core"},
    {"ticker": "VXUS", "name": "Vanguard Total International Stock ETF", "asset_type": "Equity",
     "asset_subtype": "ETF", "geography": "International", "size_tag": "Total Market",
     "factor_tag": "Blend", "sleeve": "Core"},
    {"ticker": "TLT", "name": "iShares 20+ Year Treasury Bond ETF", "asset_type": "Bond",
     "asset_subtype": "Treasury", "geography": "US", "size_tag": None, "factor_tag": None,
     "sleeve": "Satellite"},
]


def seed():
    db = SessionLocal()
    try:
        logger.info("🌱 Starting Database Seeding...")

        # 1. User
        user = db.query(User).filter(User.email == DEMO_EMAIL).first()
        if user is not None:
            logger.info(f"ℹ️ Demo user exists (id={user.id}); nothing to do")
            return
        user = User(email=DEMO_EMAIL, display_name="Demo Investor")
        db.add(user)
        db.flush()

        # 2. Accounts and sleeves
        brokerage = Account(user_id=user.id, name="Brokerage", account_type="Taxable")
        ira = Account(user_id=user.id, name="IRA", account_type="Retirement")
        sleeves = {
            name: SubPortfolio(user_id=user.id, name=name)
            for name in sorted({data["sleeve"] for data in ASSETS})
        }
        db.add_all([brokerage, ira, *sleeves.values()])
        db.flush()

        # 3. Assets
        assets = {}
        for data in ASSETS:
            asset = Asset(
                user_id=user.id,
                ticker=data["ticker"],
                name=data["name"],
                asset_type=data["asset_type"],
                asset_subtype=data["asset_subtype"],
                geography=data["geography"],
                size_tag=data["size_tag"],
                factor_tag=data["factor_tag"],
                sub_portfolio_id=sleeves[data["sleeve"]].id,
            )
            db.add(asset)
            assets[data["ticker"]] = asset
        db.flush()

        # 4. Ledger
        def tx(account, tx_type, on, amount, asset=None, quantity=None, price=None, **extra):
            return Transaction(
                user_id=user.id,
                account_id=account.id,
                asset_id=assets[asset].id if asset else None,
                transaction_type=tx_type,
                date=on,
                amount=Decimal(amount),
                quantity=Decimal(quantity) if quantity else None,
                price_per_unit=Decimal(price) if price else None,
                **extra,
            )

        db.add_all([
            tx(brokerage, TransactionType.DEPOSIT, date(2024, 1, 2), "20000"),
            tx(brokerage, TransactionType.BUY, date(2024, 1, 3), "12000", "VTI", "50", "240"),
            tx(brokerage, TransactionType.BUY, date(2024, 1, 3), "5500", "VXUS", "100", "55", fees=Decimal("1")),
            tx(brokerage, TransactionType.DIVIDEND, date(2024, 6, 28), "85", "VTI"),
            tx(brokerage, TransactionType.SELL, date(2024, 9, 16), "5400", "VTI", "20", "270"),
            tx(ira, TransactionType.DEPOSIT, date(2024, 3, 1), "7000", is_funding_record=True),
            tx(ira, TransactionType.BUY, date(2024, 3, 1), "7000", "TLT", "70", "100",
               funding_source=FundingSource.EXTERNAL),
            tx(ira, TransactionType.INTEREST, date(2024, 12, 31), "12.40"),
            tx(brokerage, TransactionType.FEE, date(2024, 12, 31), "15"),
        ])

        # 5. Current lots (what the ledger maintains after the sale above)
        db.add_all([
            TaxLot(user_id=user.id, account_id=brokerage.id, asset_id=assets["VTI"].id,
                   purchase_date=date(2024, 1, 3), quantity=Decimal("50"),
                   cost_basis_per_unit=Decimal("240"), remaining_quantity=Decimal("30")),
            TaxLot(user_id=user.id, account_id=brokerage.id, asset_id=assets["VXUS"].id,
                   purchase_date=date(2024, 1, 3), quantity=Decimal("100"),
                   cost_basis_per_unit=Decimal("55"), remaining_quantity=Decimal("100")),
            TaxLot(user_id=user.id, account_id=ira.id, asset_id=assets["TLT"].id,
                   purchase_date=date(2024, 3, 1), quantity=Decimal("70"),
                   cost_basis_per_unit=Decimal("94.59"), remaining_quantity=Decimal("70")),
        ])

        # 6. A few month-end closes so reports work offline
        closes = {
            "VTI": [(date(2024, 1, 31), "246.10"), (date(2024, 6, 28), "267.48"), (date(2024, 12, 31), "289.81")],
            "VXUS": [(date(2024, 1, 31), "56.02"), (date(2024, 6, 28), "58.34"), (date(2024, 12, 31), "57.21")],
            "TLT": [(date(2024, 3, 28), "94.62"), (date(2024, 6, 28), "92.54"), (date(2024, 12, 31), "87.33")],
        }
        for ticker, points in closes.items():
            for on, close in points:
                exists = db.query(HistoricalPrice).filter_by(ticker=ticker, date=on).first()
                if exists is None:
                    db.add(HistoricalPrice(ticker=ticker, date=on, close_price=Decimal(close), provider="seed"))

        db.commit()
        logger.info(f"🚀 Seeding Complete! Demo user id={user.id}")

    except Exception as e:
        logger.error(f"❌ Seeding Failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
