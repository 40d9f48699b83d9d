"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import BookingPaymentStateModel, PaymentRecordModel
from .invoice import InvoiceModel

__all__ = [
    "Base",
    "metadata",
    "BookingPaymentStateModel",
    "PaymentRecordModel",
    "InvoiceModel",
]
