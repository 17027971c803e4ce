"""Add version to carts

Revision ID: 8c41d2e9b0a7
Revises: 3f2a9c1d7e54
Create Date: 2026-10-20 10:15:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '8c41d2e9b0a7'
down_revision: Union[str, Sequence[str], None] = '3f2a9c1d7e54'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Версия для условной записи корзины при оформлении заказа
    op.add_column('carts', sa.Column('version', sa.Integer(), nullable=False, server_default='1'))


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column('carts', 'version')
