"""SQLAlchemy-backed repository for invoices."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import InvoiceAlreadyExistsError, InvoiceNotFoundError
from domain.invoice import Invoice, InvoiceRepository, InvoiceStatus, InvoiceType
from infrastructure.models.invoice import InvoiceModel


class SQLAlchemyInvoiceRepository(InvoiceRepository):
    """Persist invoices using SQLAlchemy ORM; uniqueness comes from uq_invoices_booking_type."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: InvoiceModel) -> Invoice:
        return Invoice(
            id=model.id,
            booking_id=model.booking_id,
            type=InvoiceType(model.type),
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            status=InvoiceStatus(model.status),
            pdf_url=model.pdf_url,
            issued_at=model.issued_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _get_model(self, invoice_id: str) -> Optional[InvoiceModel]:
        result = await self.session.execute(select(InvoiceModel).where(InvoiceModel.id == invoice_id))
        return result.scalar_one_or_none()

    async def create(self, invoice: Invoice) -> Invoice:
        model = InvoiceModel(
            id=invoice.id,
            booking_id=invoice.booking_id,
            type=invoice.type.value,
            amount=invoice.amount,
            currency=invoice.currency,
            status=invoice.status.value,
            pdf_url=invoice.pdf_url,
            issued_at=invoice.issued_at,
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(model)
        except IntegrityError as exc:
            raise InvoiceAlreadyExistsError(invoice.booking_id, invoice.type.value) from exc
        return invoice

    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        model = await self._get_model(invoice_id)
        return self._to_entity(model) if model else None

    async def get_by_booking_and_type(self, booking_id: str, invoice_type: InvoiceType) -> Optional[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel).where(
                InvoiceModel.booking_id == booking_id,
                InvoiceModel.type == InvoiceType(invoice_type).value,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_booking(self, booking_id: str) -> List[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.booking_id == booking_id)
            .order_by(InvoiceModel.created_at.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_pending_pdf(self, updated_before: datetime, limit: int = 100) -> List[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel)
            .where(
                InvoiceModel.status == InvoiceStatus.PENDING_PDF.value,
                InvoiceModel.updated_at < updated_before,
            )
            .order_by(InvoiceModel.updated_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, invoice: Invoice) -> Invoice:
        model = await self._get_model(invoice.id)
        if model is None:
            raise InvoiceNotFoundError(invoice.id)
        model.status = invoice.status.value
        model.pdf_url = invoice.pdf_url
        model.issued_at = invoice.issued_at
        model.updated_at = invoice.updated_at
        await self.session.flush()
        return invoice
