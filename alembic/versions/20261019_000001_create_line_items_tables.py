"""Create suppliers, orders and line_items tables

Revision ID: 20261019_000001
Revises: None
Create Date: 2026-10-19

Line items carry the ledger's payment_state / payout_id / version columns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the supplier directory, orders and line items."""
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('business_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_suppliers_email', 'suppliers', ['email'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_number', sa.String(40), nullable=False),
        sa.Column(
            'shipment_status',
            sa.Enum(
                'pending', 'processing', 'shipped', 'delivered', 'cancelled', 'returned',
                name='shipment_status',
                create_constraint=True,
            ),
            nullable=False,
            server_default='pending'
        ),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'])
    op.create_index('ix_orders_shipment_status', 'orders', ['shipment_status'])

    op.create_table(
        'line_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('eligible_at', sa.DateTime(), nullable=True),
        sa.Column(
            'payment_state',
            sa.Enum('unbilled', 'pending', 'paid', 'reversed', name='payment_state', create_constraint=True),
            nullable=False,
            server_default='unbilled'
        ),
        sa.Column('payout_id', sa.String(36), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_line_items_order_id',
            ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['supplier_id'],
            ['suppliers.id'],
            name='fk_line_items_supplier_id',
            ondelete='NO ACTION'
        ),
    )

    # Create indexes for common queries
    op.create_index('ix_line_items_order_id', 'line_items', ['order_id'])
    op.create_index('ix_line_items_supplier_id', 'line_items', ['supplier_id'])
    op.create_index('ix_line_items_payment_state', 'line_items', ['payment_state'])
    op.create_index('ix_line_items_payout_id', 'line_items', ['payout_id'])
    op.create_index('ix_line_items_supplier_state', 'line_items', ['supplier_id', 'payment_state'])


def downgrade() -> None:
    """Drop line items, orders and suppliers."""
    op.drop_index('ix_line_items_supplier_state', table_name='line_items')
    op.drop_index('ix_line_items_payout_id', table_name='line_items')
    op.drop_index('ix_line_items_payment_state', table_name='line_items')
    op.drop_index('ix_line_items_supplier_id', table_name='line_items')
    op.drop_index('ix_line_items_order_id', table_name='line_items')
    op.drop_table('line_items')

    op.drop_index('ix_orders_shipment_status', table_name='orders')
    op.drop_index('ix_orders_order_number', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_suppliers_email', table_name='suppliers')
    op.drop_table('suppliers')
