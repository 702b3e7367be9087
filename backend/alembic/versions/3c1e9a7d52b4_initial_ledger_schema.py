"""initial ledger schema

Revision ID: 3c1e9a7d52b4
Revises:
Create Date: 2026-10-19 10:04:12.518230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1e9a7d52b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('accounts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('institution_name', sa.String(), nullable=True),
    sa.Column('account_type', sa.String(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('holding_lots',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('account_id', sa.String(length=36), nullable=True),
    sa.Column('ticker', sa.String(), nullable=False),
    sa.Column('purchase_date', sa.Date(), nullable=False),
    sa.Column('original_quantity', sa.Numeric(precision=18, scale=8), nullable=False),
    sa.Column('remaining_quantity', sa.Numeric(precision=18, scale=8), nullable=False),
    sa.Column('unit_price', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('fees', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('source', sa.String(), nullable=False),
    sa.Column('venue', sa.String(), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('external_id', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('unit_price >= 0', name='ck_holding_lot_unit_price_non_negative'),
    sa.CheckConstraint('fees >= 0', name='ck_holding_lot_fees_non_negative'),
    sa.CheckConstraint('original_quantity > 0', name='ck_holding_lot_original_quantity_positive'),
    sa.CheckConstraint('remaining_quantity >= 0', name='ck_holding_lot_remaining_quantity_non_negative'),
    sa.CheckConstraint('remaining_quantity <= original_quantity', name='ck_holding_lot_remaining_not_above_original'),
    sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_holding_lots_account_id'), 'holding_lots', ['account_id'], unique=False)
    op.create_index(op.f('ix_holding_lots_ticker'), 'holding_lots', ['ticker'], unique=False)
    op.create_index(op.f('ix_holding_lots_external_id'), 'holding_lots', ['external_id'], unique=False)
    op.create_table('sales',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('account_id', sa.String(length=36), nullable=True),
    sa.Column('ticker', sa.String(), nullable=False),
    sa.Column('sale_date', sa.Date(), nullable=False),
    sa.Column('quantity', sa.Numeric(precision=18, scale=8), nullable=False),
    sa.Column('unit_price', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('fees', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('cost_basis', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('realized_gain_loss', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('holding_period', sa.String(), nullable=False),
    sa.Column('lot_method', sa.String(), nullable=False),
    sa.Column('unmatched_quantity', sa.Numeric(precision=18, scale=8), nullable=False),
    sa.Column('needs_review', sa.Boolean(), nullable=False),
    sa.Column('source', sa.String(), nullable=False),
    sa.Column('venue', sa.String(), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('external_id', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('quantity > 0', name='ck_sale_quantity_positive'),
    sa.CheckConstraint('unmatched_quantity >= 0', name='ck_sale_unmatched_non_negative'),
    sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sales_account_id'), 'sales', ['account_id'], unique=False)
    op.create_index(op.f('ix_sales_ticker'), 'sales', ['ticker'], unique=False)
    op.create_index(op.f('ix_sales_external_id'), 'sales', ['external_id'], unique=False)
    op.create_table('lot_disposals',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('sale_id', sa.String(length=36), nullable=False),
    sa.Column('holding_lot_id', sa.String(length=36), nullable=False),
    sa.Column('quantity', sa.Numeric(precision=18, scale=8), nullable=False),
    sa.Column('cost_basis', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('quantity > 0', name='ck_lot_disposal_quantity_positive'),
    sa.ForeignKeyConstraint(['holding_lot_id'], ['holding_lots.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_lot_disposals_sale_id'), 'lot_disposals', ['sale_id'], unique=False)
    op.create_index(op.f('ix_lot_disposals_holding_lot_id'), 'lot_disposals', ['holding_lot_id'], unique=False)
    op.create_table('holdings',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('account_id', sa.String(length=36), nullable=True),
    sa.Column('ticker', sa.String(), nullable=False),
    sa.Column('quantity', sa.Numeric(precision=18, scale=8), nullable=False),
    sa.Column('cost_basis_total', sa.Numeric(precision=18, scale=6), nullable=False),
    sa.Column('last_reconciled_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('account_id', 'ticker', name='uix_holding_account_ticker')
    )
    op.create_index(op.f('ix_holdings_account_id'), 'holdings', ['account_id'], unique=False)
    op.create_table('import_runs',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('account_id', sa.String(length=36), nullable=False),
    sa.Column('filename', sa.String(), nullable=True),
    sa.Column('lot_method', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('rows_total', sa.Integer(), nullable=False),
    sa.Column('committed_count', sa.Integer(), nullable=False),
    sa.Column('invalid_rows_dropped', sa.Integer(), nullable=False),
    sa.Column('duplicates_skipped', sa.Integer(), nullable=False),
    sa.Column('persistence_failures', sa.Integer(), nullable=False),
    sa.Column('flagged_sales', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_import_runs_account_id'), 'import_runs', ['account_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_import_runs_account_id'), table_name='import_runs')
    op.drop_table('import_runs')
    op.drop_index(op.f('ix_holdings_account_id'), table_name='holdings')
    op.drop_table('holdings')
    op.drop_index(op.f('ix_lot_disposals_holding_lot_id'), table_name='lot_disposals')
    op.drop_index(op.f('ix_lot_disposals_sale_id'), table_name='lot_disposals')
    op.drop_table('lot_disposals')
    op.drop_index(op.f('ix_sales_external_id'), table_name='sales')
    op.drop_index(op.f('ix_sales_ticker'), table_name='sales')
    op.drop_index(op.f('ix_sales_account_id'), table_name='sales')
    op.drop_table('sales')
    op.drop_index(op.f('ix_holding_lots_external_id'), table_name='holding_lots')
    op.drop_index(op.f('ix_holding_lots_ticker'), table_name='holding_lots')
    op.drop_index(op.f('ix_holding_lots_account_id'), table_name='holding_lots')
    op.drop_table('holding_lots')
    op.drop_table('accounts')
