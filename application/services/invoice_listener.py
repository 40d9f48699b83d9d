"""
Invoice issuance listener.

Consumes InvoiceCreatedEvent from the channel. Delivery is at-least-once, so
the (booking_id, type) uniqueness of invoices is what makes handling
idempotent: a second event for the same pair is discarded.
"""
from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.ports.invoice_renderer import InvoiceRenderer
from application.ports.storage import StoragePort
from core.logging_config import get_logger
from domain.common.exceptions import InvoiceAlreadyExistsError, RenderFailure
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice import Invoice, InvoiceCreatedEvent, InvoiceStatus


logger = get_logger(__name__)


class InvoiceIssuanceListener:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        renderer: InvoiceRenderer,
        storage: StoragePort,
        *,
        key_prefix: str = "invoices",
        sweep_batch_size: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._renderer = renderer
        self._storage = storage
        self._key_prefix = key_prefix.strip("/")
        self._sweep_batch_size = sweep_batch_size

    async def handle(self, event: InvoiceCreatedEvent) -> Optional[Invoice]:
        """Create and issue the invoice carried by ``event``.

        Returns the invoice row, or None when the event was a duplicate.
        An invoice whose PDF failed to render or upload stays PENDING_PDF for the sweep.
        """
        try:
            invoice = await self._persist_pending(event.invoice)
        except InvoiceAlreadyExistsError:
            invoice = None
        if invoice is None:
            logger.info(
                "invoice_event_discarded",
                event_id=event.event_id,
                booking_id=event.booking_id,
                invoice_type=event.invoice.type.value,
            )
            return None

        logger.info(
            "invoice_created",
            event_id=event.event_id,
            invoice_id=invoice.id,
            booking_id=invoice.booking_id,
        )
        try:
            issued = await self._render_and_issue(invoice)
        except Exception as exc:
            # the row is persisted as PENDING_PDF; the sweep owns it from here
            logger.error(
                "invoice_issue_deferred",
                invoice_id=invoice.id,
                booking_id=invoice.booking_id,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
            )
            return invoice
        return issued or invoice

    async def retry_pending(self, older_than: timedelta) -> int:
        """Re-render PENDING_PDF invoices untouched for longer than ``older_than``.

        A row that fails again is touched so it moves behind the rest of the
        backlog instead of heading every later batch.
        """
        cutoff = datetime.now(timezone.utc) - older_than
        async with self._uow_factory(readonly=True) as uow:
            pending = await uow.invoice_repository.list_pending_pdf(cutoff, limit=self._sweep_batch_size)

        issued = failed = 0
        for invoice in pending:
            try:
                result = await self._render_and_issue(invoice)
            except Exception as exc:
                logger.error(
                    "invoice_sweep_item_failed",
                    invoice_id=invoice.id,
                    booking_id=invoice.booking_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    exc_info=True,
                )
                result = None
            if result is not None:
                issued += 1
                continue
            failed += 1
            await self._defer(invoice.id)
        logger.info("invoice_sweep_completed", candidates=len(pending), issued=issued, failed=failed)
        return issued

    async def _defer(self, invoice_id: str) -> None:
        async with self._uow_factory() as uow:
            repo = uow.invoice_repository
            current = await repo.get_by_id(invoice_id)
            if current is None or current.status != InvoiceStatus.PENDING_PDF:
                return
            current.touch()
            await repo.update(current)

    async def _persist_pending(self, draft: Invoice) -> Optional[Invoice]:
        async with self._uow_factory() as uow:
            repo = uow.invoice_repository
            if await repo.get_by_booking_and_type(draft.booking_id, draft.type) is not None:
                return None
            invoice = await repo.create(dataclasses.replace(draft, status=InvoiceStatus.DRAFT, pdf_url=None))
            invoice.mark_pending_pdf()
            return await repo.update(invoice)

    async def _render_and_issue(self, invoice: Invoice) -> Optional[Invoice]:
        try:
            pdf = await self._renderer.render_invoice_pdf(invoice.snapshot())
        except RenderFailure as exc:
            logger.warning(
                "invoice_render_failed",
                invoice_id=invoice.id,
                booking_id=invoice.booking_id,
                error=exc.message,
            )
            return None

        # booking ids come from clients; only the generated invoice id names the object
        key = f"{self._key_prefix}/{invoice.id}.pdf"
        outcome = await self._storage.upload(
            pdf,
            key,
            metadata={"invoice_id": invoice.id, "booking_id": invoice.booking_id},
            content_type="application/pdf",
        )
        pdf_url = outcome.url or self._storage.public_url(key) or key

        async with self._uow_factory() as uow:
            repo = uow.invoice_repository
            current = await repo.get_by_id(invoice.id)
            if current is None:
                return None
            if current.status == InvoiceStatus.ISSUED:
                return current
            current.mark_issued(pdf_url)
            current = await repo.update(current)

        logger.info(
            "invoice_issued",
            invoice_id=current.id,
            booking_id=current.booking_id,
            pdf_url=pdf_url,
            size=outcome.size,
        )
        return current
