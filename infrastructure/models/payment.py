"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, JSON, Index
)
from datetime import datetime, timezone

from .base import Base


class BookingPaymentStateModel(Base):
    """
    预订支付状态表

    每个预订一行；version 用于比较并交换（CAS）
    所有业务规则都在 domain.payment.entity.BookingPaymentState 中
    """
    __tablename__ = "booking_payment_states"

    booking_id = Column(String(100), primary_key=True, comment="预订ID")
    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        index=True,
        comment="支付状态: PENDING/PAID/FAILED/REFUNDED"
    )
    version = Column(Integer, nullable=False, default=0, comment="乐观锁版本号")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="应付金额")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")

    transaction_id = Column(String(200), nullable=True, comment="最近一次结算的渠道交易号")
    provider = Column(String(20), nullable=True, comment="支付渠道: STRIPE/MOMO/VNPAY")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    refunded_at = Column(DateTime(timezone=True), nullable=True, comment="退款时间")

    def __repr__(self):
        return (
            f"<BookingPaymentStateModel(booking_id='{self.booking_id}', "
            f"status='{self.status}', version={self.version})>"
        )


class PaymentRecordModel(Base):
    """
    支付请求记录表

    记录发送给渠道的支付请求，回调验证时以 transaction_id 查找并校验金额
    """
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String(200), unique=True, nullable=False, comment="渠道交易号")
    provider = Column(String(20), nullable=False, comment="支付渠道")
    booking_id = Column(String(100), nullable=False, index=True, comment="预订ID")
    order_id = Column(String(100), nullable=False, comment="订单ID")
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="请求金额")
    currency = Column(String(3), nullable=False, comment="货币代码")
    payment_url = Column(String(2048), nullable=True, comment="支付跳转链接")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    __table_args__ = (
        Index("ix_payment_records_provider_booking", "provider", "booking_id"),
    )
