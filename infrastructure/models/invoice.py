"""Invoice database model definitions."""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Numeric, String, UniqueConstraint

from .base import Base


class InvoiceModel(Base):
    """ORM mapping for invoices table."""

    __tablename__ = "invoices"
    __table_args__ = (
        # 每个预订每种发票类型最多一张
        UniqueConstraint("booking_id", "type", name="uq_invoices_booking_type"),
        Index("ix_invoices_status_updated", "status", "updated_at"),
        {
            "comment": "发票表",
        },
    )

    id = Column(String(36), primary_key=True, comment="发票ID(UUID)")
    booking_id = Column(String(100), nullable=False, index=True, comment="预订ID")
    type = Column(String(20), nullable=False, comment="发票类型: BOOKING/VAT")
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="金额")
    currency = Column(String(3), nullable=False, comment="货币代码")
    status = Column(String(20), nullable=False, default="DRAFT", comment="状态: DRAFT/PENDING_PDF/ISSUED")
    pdf_url = Column(String(1024), nullable=True, comment="PDF 地址（仅 ISSUED）")
    issued_at = Column(DateTime(timezone=True), nullable=True, comment="开具时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间",
    )

    def __repr__(self):
        return f"<InvoiceModel(id='{self.id}', booking_id='{self.booking_id}', status='{self.status}')>"
