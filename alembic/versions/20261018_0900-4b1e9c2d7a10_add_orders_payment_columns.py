"""add_orders_payment_columns

Revision ID: 4b1e9c2d7a10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1e9c2d7a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=64), nullable=False, comment='订单ID'),
        sa.Column('owner_id', sa.String(length=64), nullable=False, comment='下单用户ID'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False, comment='订单总额（主币种单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd', comment='ISO-4217 币种'),
        sa.Column('order_status', sa.String(length=20), nullable=False, server_default='PENDING', comment='履约状态'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='PENDING', comment='支付状态'),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True, comment='当前支付意图ID'),
        sa.Column('payment_method', sa.String(length=32), nullable=True, comment='支付方式'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('payment_intent_id', name='uq_orders_payment_intent_id'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_amount_non_negative'),
        comment='订单表（支付相关字段由支付服务维护）'
    )

    op.create_index('ix_orders_owner_id', 'orders', ['owner_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_orders_owner_id', table_name='orders')
    op.drop_table('orders')
