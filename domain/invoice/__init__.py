from .entity import Invoice, InvoiceStatus, InvoiceType
from .events import InvoiceCreatedEvent
from .repository import InvoiceRepository

__all__ = [
    "Invoice",
    "InvoiceStatus",
    "InvoiceType",
    "InvoiceCreatedEvent",
    "InvoiceRepository",
]
