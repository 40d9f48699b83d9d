"""
Invoice DTOs returned by the read endpoints.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from domain.invoice import Invoice, InvoiceStatus, InvoiceType


class InvoiceDTO(BaseModel):
    id: str
    booking_id: str
    type: InvoiceType
    amount: Decimal
    currency: str
    status: InvoiceStatus
    pdf_url: Optional[str] = None
    issued_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, invoice: Invoice) -> "InvoiceDTO":
        return cls(
            id=invoice.id,
            booking_id=invoice.booking_id,
            type=invoice.type,
            amount=invoice.amount,
            currency=invoice.currency,
            status=invoice.status,
            pdf_url=invoice.pdf_url,
            issued_at=invoice.issued_at,
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
        )
