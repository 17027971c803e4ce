"""Create marketplace tables

Revision ID: 3f2a9c1d7e54
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '3f2a9c1d7e54'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    'user_role': ('pharmacy', 'inventory', 'admin'),
    'order_status': ('pending', 'confirmed', 'processing', 'shipped', 'delivered', 'cancelled', 'rejected'),
    'payment_method': ('cash', 'card'),
    'payment_status': ('pending', 'paid'),
}


def _enum(name: str) -> postgresql.ENUM:
    # Типы создаются один раз в upgrade(), колонки только ссылаются на них
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('role', _enum('user_role'), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('location', sa.JSON(), nullable=True),
        sa.Column('shipping_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'drugs',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('inventory_id', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discounted_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('promotion', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('stock >= 0', name='ck_drugs_stock_non_negative'),
    )
    op.create_index('ix_drugs_inventory_id', 'drugs', ['inventory_id'])

    op.create_table(
        'carts',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('pharmacy_id', sa.String(), nullable=False, unique=True),
        sa.Column('groups', sa.JSON(), nullable=False),
        sa.Column('total_cart_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price_after_discount', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('order_number', sa.String(), nullable=False, unique=True),
        sa.Column('pharmacy_id', sa.String(), nullable=False),
        sa.Column('inventory_id', sa.String(), nullable=False),
        sa.Column('status', _enum('order_status'), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', _enum('payment_method'), nullable=False),
        sa.Column('payment_status', _enum('payment_status'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivery_address', sa.JSON(), nullable=True),
        sa.Column('delivery_location', sa.JSON(), nullable=True),
        sa.Column('contact_phone', sa.String(), nullable=True),
        sa.Column('actual_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_pharmacy_created', 'orders', ['pharmacy_id', 'created_at'])
    op.create_index('ix_orders_inventory_created', 'orders', ['inventory_id', 'created_at'])

    op.create_table(
        'order_lines',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.String(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('drug_id', sa.String(), nullable=False),
        sa.Column('drug_name', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discounted_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('paid_quantity', sa.Integer(), nullable=False),
        sa.Column('free_items', sa.Integer(), nullable=False),
        sa.Column('total_delivered', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.String(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('status', _enum('order_status'), nullable=False),
        sa.Column('note', sa.String(), nullable=True),
        sa.Column('updated_by', sa.String(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('event_data', sa.JSON(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('outbox_events')
    op.drop_table('order_status_history')
    op.drop_table('order_lines')
    op.drop_table('orders')
    op.drop_table('carts')
    op.drop_table('drugs')
    op.drop_table('users')

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
