"""
Invoice domain events.

InvoiceCreatedEvent is raised by the booking state machine on settlement and
travels through the invoice channel, so it must round-trip through JSON.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from .entity import Invoice, InvoiceStatus, InvoiceType


@dataclass
class InvoiceCreatedEvent:
    invoice: Invoice
    transaction_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def booking_id(self) -> str:
        return self.invoice.booking_id

    def to_payload(self) -> dict[str, Any]:
        inv = self.invoice
        return {
            "event_id": self.event_id,
            "occurred_at": self.occurred_at.isoformat(),
            "transaction_id": self.transaction_id,
            "invoice": {
                "id": inv.id,
                "booking_id": inv.booking_id,
                "type": inv.type.value,
                "amount": str(inv.amount),
                "currency": inv.currency,
                "status": inv.status.value,
                "created_at": inv.created_at.isoformat() if inv.created_at else None,
            },
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "InvoiceCreatedEvent":
        data = payload["invoice"]
        created_at = data.get("created_at")
        invoice = Invoice(
            id=data["id"],
            booking_id=data["booking_id"],
            type=InvoiceType(data["type"]),
            amount=Decimal(data["amount"]),
            currency=data["currency"],
            status=InvoiceStatus(data.get("status", InvoiceStatus.DRAFT.value)),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            updated_at=datetime.fromisoformat(created_at) if created_at else None,
        )
        return cls(
            invoice=invoice,
            transaction_id=payload.get("transaction_id"),
            event_id=payload["event_id"],
            occurred_at=datetime.fromisoformat(payload["occurred_at"]),
        )
