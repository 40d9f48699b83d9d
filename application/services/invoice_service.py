"""Read-side invoice queries."""
from __future__ import annotations

from typing import Callable, List

from domain.common.exceptions import InvoiceNotFoundError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice import Invoice


class InvoiceService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def get_invoice(self, invoice_id: str) -> Invoice:
        async with self._uow_factory(readonly=True) as uow:
            invoice = await uow.invoice_repository.get_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    async def list_invoices(self, booking_id: str) -> List[Invoice]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.invoice_repository.list_by_booking(booking_id)
