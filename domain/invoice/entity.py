"""
发票领域实体
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


class InvoiceStatus(str, Enum):
    """发票状态枚举"""
    DRAFT = "DRAFT"               # 草稿
    PENDING_PDF = "PENDING_PDF"   # 等待生成 PDF
    ISSUED = "ISSUED"             # 已开具


class InvoiceType(str, Enum):
    BOOKING = "BOOKING"
    VAT = "VAT"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Invoice:
    """
    发票实体

    业务规则：
    1. (booking_id, type) 组合全局唯一
    2. 状态只能 DRAFT -> PENDING_PDF -> ISSUED
    3. pdf_url 仅在 ISSUED 时存在
    """

    id: str
    booking_id: str
    type: InvoiceType
    amount: Decimal
    currency: str
    status: InvoiceStatus = InvoiceStatus.DRAFT
    pdf_url: Optional[str] = None
    issued_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(f"发票金额必须大于0: {self.amount}", field="amount")
        self.type = InvoiceType(self.type)
        self.status = InvoiceStatus(self.status)
        self.currency = (self.currency or "").upper()
        self.issued_at = _ensure_utc(self.issued_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        if self.pdf_url and self.status != InvoiceStatus.ISSUED:
            raise DomainValidationException("仅已开具发票可以有 pdf_url", field="pdf_url")

    @classmethod
    def draft(
        cls,
        *,
        booking_id: str,
        amount: Decimal,
        currency: str,
        invoice_type: InvoiceType = InvoiceType.BOOKING,
    ) -> "Invoice":
        now = _utcnow()
        return cls(
            id=str(uuid.uuid4()),
            booking_id=booking_id,
            type=invoice_type,
            amount=amount,
            currency=currency,
            status=InvoiceStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )

    def mark_pending_pdf(self) -> None:
        """DRAFT -> PENDING_PDF"""
        if self.status != InvoiceStatus.DRAFT:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 PENDING_PDF",
                field="status",
            )
        self.status = InvoiceStatus.PENDING_PDF
        self.updated_at = _utcnow()

    def mark_issued(self, pdf_url: str) -> None:
        """PENDING_PDF -> ISSUED"""
        if self.status != InvoiceStatus.PENDING_PDF:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 ISSUED",
                field="status",
            )
        if not pdf_url:
            raise DomainValidationException("pdf_url 不能为空", field="pdf_url")
        self.status = InvoiceStatus.ISSUED
        self.pdf_url = pdf_url
        self.issued_at = _utcnow()
        self.updated_at = self.issued_at

    def touch(self) -> None:
        """记录一次失败的出票尝试，推迟下一次补偿"""
        if self.status != InvoiceStatus.PENDING_PDF:
            raise DomainValidationException(
                f"仅 PENDING_PDF 发票可以推迟: {self.status.value}",
                field="status",
            )
        self.updated_at = _utcnow()

    def snapshot(self) -> dict[str, Any]:
        """交给外部渲染器的只读快照"""
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "type": self.type.value,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
