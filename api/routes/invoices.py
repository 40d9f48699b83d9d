"""Invoice read endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_invoice_service
from application.dtos.invoices import InvoiceDTO
from application.services.invoice_service import InvoiceService
from core.response import success_response


router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.get("", summary="List invoices of a booking")
async def list_invoices(
    booking_id: str = Query(..., min_length=1),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices = await service.list_invoices(booking_id)
    return success_response(data=[InvoiceDTO.from_entity(i).model_dump(mode="json") for i in invoices])


@router.get("/{invoice_id}", summary="Get invoice")
async def get_invoice(invoice_id: str, service: InvoiceService = Depends(get_invoice_service)):
    invoice = await service.get_invoice(invoice_id)
    return success_response(data=InvoiceDTO.from_entity(invoice).model_dump(mode="json"))
