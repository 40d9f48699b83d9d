import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from application.services.invoice_listener import InvoiceIssuanceListener
from domain.common.exceptions import DomainValidationException
from domain.invoice import Invoice, InvoiceCreatedEvent, InvoiceStatus, InvoiceType
from infrastructure.external.storage import StorageError


@pytest.fixture
def listener(uow_factory, renderer, storage):
    return InvoiceIssuanceListener(uow_factory, renderer, storage)


def _event(booking_id="b1", invoice_type=InvoiceType.BOOKING):
    invoice = Invoice.draft(booking_id=booking_id, amount=Decimal("100"), currency="vnd", invoice_type=invoice_type)
    return InvoiceCreatedEvent(invoice=invoice, transaction_id="tx-1")


@pytest.mark.asyncio
async def test_event_issues_invoice_with_pdf(listener, storage, memory_db):
    invoice = await listener.handle(_event())

    assert invoice.status == InvoiceStatus.ISSUED
    assert invoice.pdf_url == f"https://files.test/invoices/invoices/{invoice.id}.pdf"
    assert invoice.issued_at is not None
    stored = storage.base_path / "invoices" / f"{invoice.id}.pdf"
    assert stored.read_bytes().startswith(b"%PDF")
    assert memory_db.invoices[invoice.id].status == InvoiceStatus.ISSUED


@pytest.mark.asyncio
async def test_duplicate_event_is_discarded(listener, renderer, memory_db):
    event = _event()

    first = await listener.handle(event)
    second = await listener.handle(event)
    # a fresh event for the same booking and type is a duplicate too
    third = await listener.handle(_event())

    assert first is not None
    assert second is None
    assert third is None
    assert len(memory_db.invoices) == 1
    assert renderer.calls == 1


@pytest.mark.asyncio
async def test_distinct_types_coexist(listener, memory_db):
    await listener.handle(_event(invoice_type=InvoiceType.BOOKING))
    await listener.handle(_event(invoice_type=InvoiceType.VAT))

    assert sorted(i.type.value for i in memory_db.invoices.values()) == ["BOOKING", "VAT"]


@pytest.mark.asyncio
async def test_render_failure_leaves_pending_pdf_for_sweep(listener, renderer, memory_db):
    renderer.failures_left = 1

    pending = await listener.handle(_event())

    assert pending.status == InvoiceStatus.PENDING_PDF
    assert pending.pdf_url is None
    assert memory_db.invoices[pending.id].status == InvoiceStatus.PENDING_PDF

    # too recent for a sweep with a grace period
    assert await listener.retry_pending(timedelta(hours=1)) == 0

    await asyncio.sleep(0.01)
    assert await listener.retry_pending(timedelta(0)) == 1
    assert memory_db.invoices[pending.id].status == InvoiceStatus.ISSUED
    assert await listener.retry_pending(timedelta(0)) == 0


@pytest.mark.asyncio
async def test_sweep_keeps_invoice_pending_while_renderer_is_down(listener, renderer, memory_db):
    renderer.failures_left = 3
    pending = await listener.handle(_event())
    await asyncio.sleep(0.01)

    assert await listener.retry_pending(timedelta(0)) == 0
    assert memory_db.invoices[pending.id].status == InvoiceStatus.PENDING_PDF


class _StorageFailingFor:
    """Artifact storage that refuses uploads for chosen invoices."""

    def __init__(self, inner, invoice_ids):
        self.inner = inner
        self.invoice_ids = set(invoice_ids)

    async def upload(self, data, key, **kwargs):
        if any(invoice_id in key for invoice_id in self.invoice_ids):
            raise StorageError("disk full")
        return await self.inner.upload(data, key, **kwargs)

    async def delete(self, key):
        return await self.inner.delete(key)

    def public_url(self, key):
        return self.inner.public_url(key)


@pytest.mark.asyncio
async def test_sweep_continues_past_a_failing_invoice(uow_factory, renderer, storage, memory_db):
    renderer.failures_left = 2
    listener = InvoiceIssuanceListener(uow_factory, renderer, storage)
    stuck = await listener.handle(_event("b1"))
    healthy = await listener.handle(_event("b2"))
    await asyncio.sleep(0.01)
    stuck_updated_at = memory_db.invoices[stuck.id].updated_at

    sweeper = InvoiceIssuanceListener(uow_factory, renderer, _StorageFailingFor(storage, [stuck.id]))
    assert await sweeper.retry_pending(timedelta(0)) == 1

    assert memory_db.invoices[healthy.id].status == InvoiceStatus.ISSUED
    assert memory_db.invoices[stuck.id].status == InvoiceStatus.PENDING_PDF
    # the failed row moves behind the rest of the backlog
    assert memory_db.invoices[stuck.id].updated_at > stuck_updated_at


@pytest.mark.asyncio
async def test_upload_failure_on_first_delivery_leaves_pending_pdf(uow_factory, renderer, storage, memory_db):
    event = _event()
    listener = InvoiceIssuanceListener(uow_factory, renderer, _StorageFailingFor(storage, [event.invoice.id]))

    invoice = await listener.handle(event)

    assert invoice.status == InvoiceStatus.PENDING_PDF
    assert memory_db.invoices[invoice.id].status == InvoiceStatus.PENDING_PDF


@pytest.mark.asyncio
async def test_booking_id_never_reaches_the_storage_key(listener, storage):
    invoice = await listener.handle(_event("../../escape"))

    assert invoice.status == InvoiceStatus.ISSUED
    assert (storage.base_path / "invoices" / f"{invoice.id}.pdf").exists()


@pytest.mark.asyncio
async def test_event_survives_payload_round_trip(listener):
    event = _event()

    invoice = await listener.handle(InvoiceCreatedEvent.from_payload(event.to_payload()))

    assert invoice.id == event.invoice.id
    assert invoice.amount == Decimal("100")
    assert invoice.currency == "VND"


def test_invoice_lifecycle_is_forward_only():
    invoice = Invoice.draft(booking_id="b1", amount=Decimal("10"), currency="VND")

    with pytest.raises(DomainValidationException):
        invoice.mark_issued("https://files.test/x.pdf")

    invoice.mark_pending_pdf()
    with pytest.raises(DomainValidationException):
        invoice.mark_pending_pdf()
    with pytest.raises(DomainValidationException):
        invoice.mark_issued("")

    invoice.mark_issued("https://files.test/x.pdf")
    assert invoice.status == InvoiceStatus.ISSUED


def test_invoice_rejects_invalid_fields():
    with pytest.raises(DomainValidationException):
        Invoice.draft(booking_id="b1", amount=Decimal("0"), currency="VND")
    with pytest.raises(DomainValidationException):
        Invoice(
            id="i1",
            booking_id="b1",
            type=InvoiceType.BOOKING,
            amount=Decimal("1"),
            currency="VND",
            status=InvoiceStatus.PENDING_PDF,
            pdf_url="https://files.test/i1.pdf",
        )
