"""initial item ledger schema

Revision ID: 20261017_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261017_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

receipt_status = sa.Enum('PROCESSING', 'PROCESSED', 'FAILED', name='receiptstatus')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'categories',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('owner_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_categories_owner_id', 'categories', ['owner_id'])

    op.create_table(
        'item_names',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('name_key', sa.String(length=200), nullable=False, unique=True),
        sa.Column('category_id', sa.String(length=36), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_item_names_id', 'item_names', ['id'])
    op.create_index('ix_item_names_category_id', 'item_names', ['category_id'])

    op.create_table(
        'receipts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('owner_id', sa.String(), nullable=False),
        sa.Column('receipt_number', sa.String(length=100), nullable=True),
        sa.Column('merchant_name', sa.String(length=200), nullable=True),
        sa.Column('receipt_date', sa.Date(), nullable=True),
        sa.Column('sub_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', receipt_status, nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_receipts_id', 'receipts', ['id'])
    op.create_index('ix_receipts_owner_id', 'receipts', ['owner_id'])

    op.create_table(
        'receipt_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('receipt_id', sa.Integer(), sa.ForeignKey('receipts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_name_id', sa.Integer(), sa.ForeignKey('item_names.id', ondelete='SET NULL'), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('quantity_unit', sa.String(length=20), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_receipt_items_id', 'receipt_items', ['id'])
    op.create_index('ix_receipt_items_receipt_id', 'receipt_items', ['receipt_id'])
    op.create_index('ix_receipt_items_item_name_id', 'receipt_items', ['item_name_id'])
    op.create_index('ix_receipt_items_receipt_position', 'receipt_items', ['receipt_id', 'position'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('receipt_items')
    op.drop_table('receipts')
    op.drop_table('item_names')
    op.drop_table('categories')
    receipt_status.drop(op.get_bind(), checkfirst=True)
