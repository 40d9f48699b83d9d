"""In-process repositories used by the memory storage backend (dev and tests).

Each call is atomic with respect to the event loop: there is no await between
the read and the write of a compare-and-swap. Entities are copied on the way
in and out so callers never share mutable state with the store.
"""
from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import List, Optional

from domain.common.exceptions import (
    InvoiceAlreadyExistsError,
    InvoiceNotFoundError,
    StorageConflictError,
)
from domain.invoice import Invoice, InvoiceRepository, InvoiceStatus, InvoiceType
from domain.payment import (
    BookingPaymentState,
    BookingPaymentStateRepository,
    PaymentRecord,
    PaymentRecordRepository,
)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InMemoryDatabase:
    def __init__(self) -> None:
        self.booking_states: dict[str, BookingPaymentState] = {}
        self.payment_records: dict[str, PaymentRecord] = {}
        self.invoices: dict[str, Invoice] = {}

    def clear(self) -> None:
        self.booking_states.clear()
        self.payment_records.clear()
        self.invoices.clear()


class InMemoryBookingPaymentStateRepository(BookingPaymentStateRepository):
    def __init__(self, db: InMemoryDatabase):
        self._rows = db.booking_states

    async def get(self, booking_id: str) -> Optional[BookingPaymentState]:
        row = self._rows.get(booking_id)
        return copy.deepcopy(row) if row else None

    async def create_if_absent(self, state: BookingPaymentState) -> BookingPaymentState:
        row = self._rows.setdefault(state.booking_id, copy.deepcopy(state))
        return copy.deepcopy(row)

    async def compare_and_swap(self, state: BookingPaymentState, expected_version: int) -> BookingPaymentState:
        row = self._rows.get(state.booking_id)
        if row is None or row.version != expected_version:
            raise StorageConflictError("booking_payment_state", state.booking_id, expected_version)
        self._rows[state.booking_id] = copy.deepcopy(state)
        return state


class InMemoryPaymentRecordRepository(PaymentRecordRepository):
    def __init__(self, db: InMemoryDatabase):
        self._rows = db.payment_records

    async def add(self, record: PaymentRecord) -> PaymentRecord:
        return copy.deepcopy(self._rows.setdefault(record.transaction_id, copy.deepcopy(record)))

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        row = self._rows.get(transaction_id)
        return copy.deepcopy(row) if row else None


class InMemoryInvoiceRepository(InvoiceRepository):
    def __init__(self, db: InMemoryDatabase):
        self._rows = db.invoices

    async def create(self, invoice: Invoice) -> Invoice:
        for row in self._rows.values():
            if row.booking_id == invoice.booking_id and row.type == invoice.type:
                raise InvoiceAlreadyExistsError(invoice.booking_id, invoice.type.value)
        self._rows[invoice.id] = copy.deepcopy(invoice)
        return invoice

    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        row = self._rows.get(invoice_id)
        return copy.deepcopy(row) if row else None

    async def get_by_booking_and_type(self, booking_id: str, invoice_type: InvoiceType) -> Optional[Invoice]:
        for row in self._rows.values():
            if row.booking_id == booking_id and row.type == invoice_type:
                return copy.deepcopy(row)
        return None

    async def list_by_booking(self, booking_id: str) -> List[Invoice]:
        rows = [r for r in self._rows.values() if r.booking_id == booking_id]
        return [copy.deepcopy(r) for r in sorted(rows, key=lambda r: r.created_at or _EPOCH)]

    async def list_pending_pdf(self, updated_before: datetime, limit: int = 100) -> List[Invoice]:
        rows = [
            r for r in self._rows.values()
            if r.status == InvoiceStatus.PENDING_PDF and r.updated_at and r.updated_at < updated_before
        ]
        rows.sort(key=lambda r: r.updated_at)
        return [copy.deepcopy(r) for r in rows[:limit]]

    async def update(self, invoice: Invoice) -> Invoice:
        if invoice.id not in self._rows:
            raise InvoiceNotFoundError(invoice.id)
        self._rows[invoice.id] = copy.deepcopy(invoice)
        return invoice
