"""create_payment_and_invoice_tables

Revision ID: 3b7e1c2d9a41
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b7e1c2d9a41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'booking_payment_states',
        sa.Column('booking_id', sa.String(length=100), nullable=False, comment='预订ID'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='支付状态: PENDING/PAID/FAILED/REFUNDED'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='应付金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('transaction_id', sa.String(length=200), nullable=True, comment='最近一次结算的渠道交易号'),
        sa.Column('provider', sa.String(length=20), nullable=True, comment='支付渠道: STRIPE/MOMO/VNPAY'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True, comment='退款时间'),
        sa.PrimaryKeyConstraint('booking_id'),
    )
    op.create_index('ix_booking_payment_states_status', 'booking_payment_states', ['status'], unique=False)

    op.create_table(
        'payment_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('transaction_id', sa.String(length=200), nullable=False, comment='渠道交易号'),
        sa.Column('provider', sa.String(length=20), nullable=False, comment='支付渠道'),
        sa.Column('booking_id', sa.String(length=100), nullable=False, comment='预订ID'),
        sa.Column('order_id', sa.String(length=100), nullable=False, comment='订单ID'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='请求金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('payment_url', sa.String(length=2048), nullable=True, comment='支付跳转链接'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id'),
    )
    op.create_index('ix_payment_records_booking_id', 'payment_records', ['booking_id'], unique=False)
    op.create_index('ix_payment_records_provider_booking', 'payment_records', ['provider', 'booking_id'], unique=False)

    op.create_table(
        'invoices',
        sa.Column('id', sa.String(length=36), nullable=False, comment='发票ID(UUID)'),
        sa.Column('booking_id', sa.String(length=100), nullable=False, comment='预订ID'),
        sa.Column('type', sa.String(length=20), nullable=False, comment='发票类型: BOOKING/VAT'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='DRAFT', comment='状态: DRAFT/PENDING_PDF/ISSUED'),
        sa.Column('pdf_url', sa.String(length=1024), nullable=True, comment='PDF 地址（仅 ISSUED）'),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True, comment='开具时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', 'type', name='uq_invoices_booking_type'),
        comment='发票表',
    )
    op.create_index('ix_invoices_booking_id', 'invoices', ['booking_id'], unique=False)
    op.create_index('ix_invoices_status_updated', 'invoices', ['status', 'updated_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_invoices_status_updated', table_name='invoices')
    op.drop_index('ix_invoices_booking_id', table_name='invoices')
    op.drop_table('invoices')
    op.drop_index('ix_payment_records_provider_booking', table_name='payment_records')
    op.drop_index('ix_payment_records_booking_id', table_name='payment_records')
    op.drop_table('payment_records')
    op.drop_index('ix_booking_payment_states_status', table_name='booking_payment_states')
    op.drop_table('booking_payment_states')
