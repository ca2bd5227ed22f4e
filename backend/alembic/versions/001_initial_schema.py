"""Initial schema

Creates the tables read by the performance engine.

Tables:
    - users: Ledger owners
    - accounts: Brokerage / bank accounts (cash lives here)
    - sub_portfolios: User-defined asset buckets
    - assets: Tracked holdings with grouping tags
    - transactions: The ledger (non-negative magnitudes, typed)
    - tax_lots: Current open lots maintained by the ledger
    - historical_prices: Daily close cache keyed by ticker

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # USERS
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # ACCOUNTS / SUB-PORTFOLIOS
    # ==========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('account_type', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'sub_portfolios',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=False),
    )

    # ==========================================================================
    # ASSETS
    # ==========================================================================
    op.create_table(
        'assets',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('ticker', sa.String(), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('asset_type', sa.String(), nullable=True),
        sa.Column('asset_subtype', sa.String(), nullable=True),
        sa.Column('geography', sa.String(), nullable=True),
        sa.Column('size_tag', sa.String(), nullable=True),
        sa.Column('factor_tag', sa.String(), nullable=True),
        sa.Column('sub_portfolio_id', sa.Integer(), sa.ForeignKey('sub_portfolios.id'), nullable=True, index=True),
        sa.UniqueConstraint('user_id', 'ticker', name='uq_asset_user_ticker'),
    )

    # ==========================================================================
    # TRANSACTIONS
    # ==========================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=True, index=True),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id'), nullable=True, index=True),
        sa.Column(
            'transaction_type',
            sa.Enum('BUY', 'SELL', 'DEPOSIT', 'WITHDRAWAL', 'DIVIDEND', 'INTEREST', 'FEE', name='transactiontype'),
            nullable=False,
        ),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('quantity', sa.Numeric(18, 8), nullable=True),
        sa.Column('price_per_unit', sa.Numeric(18, 8), nullable=True),
        sa.Column('amount', sa.Numeric(18, 8), nullable=False, server_default='0'),
        sa.Column('fees', sa.Numeric(18, 8), nullable=False, server_default='0'),
        sa.Column('realized_gain', sa.Numeric(18, 8), nullable=True),
        sa.Column(
            'funding_source',
            sa.Enum('CASH', 'EXTERNAL', name='fundingsource'),
            nullable=False,
            server_default='CASH',
        ),
        sa.Column('is_funding_record', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_transaction_amount_non_negative'),
        sa.CheckConstraint('fees >= 0', name='ck_transaction_fees_non_negative'),
    )
    op.create_index('ix_transaction_user_date', 'transactions', ['user_id', 'date'])
    op.create_index('ix_transaction_account_asset_date', 'transactions', ['account_id', 'asset_id', 'date'])

    # ==========================================================================
    # TAX LOTS
    # ==========================================================================
    op.create_table(
        'tax_lots',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=True),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id'), nullable=False, index=True),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 8), nullable=False),
        sa.Column('cost_basis_per_unit', sa.Numeric(18, 8), nullable=False),
        sa.Column('remaining_quantity', sa.Numeric(18, 8), nullable=False),
    )
    op.create_index('ix_tax_lot_account_asset_date', 'tax_lots', ['account_id', 'asset_id', 'purchase_date'])

    # ==========================================================================
    # PRICE CACHE
    # ==========================================================================
    op.create_table(
        'historical_prices',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('ticker', sa.String(), nullable=False, index=True),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('close_price', sa.Numeric(18, 8), nullable=False),
        sa.Column('provider', sa.String(50), nullable=False, server_default='yahoo'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('ticker', 'date', name='uq_price_ticker_date'),
    )


def downgrade() -> None:
    op.drop_table('historical_prices')
    op.drop_index('ix_tax_lot_account_asset_date', table_name='tax_lots')
    op.drop_table('tax_lots')
    op.drop_index('ix_transaction_account_asset_date', table_name='transactions')
    op.drop_index('ix_transaction_user_date', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('assets')
    op.drop_table('sub_portfolios')
    op.drop_table('accounts')
    op.drop_table('users')
    sa.Enum(name='fundingsource').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='transactiontype').drop(op.get_bind(), checkfirst=True)
