from .entity import (
    ALLOWED_TRANSITIONS,
    BookingPaymentState,
    BookingPaymentStatus,
    PaymentProvider,
    PaymentRecord,
    PaymentStatus,
)
from .repository import BookingPaymentStateRepository, PaymentRecordRepository

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BookingPaymentState",
    "BookingPaymentStatus",
    "PaymentProvider",
    "PaymentRecord",
    "PaymentStatus",
    "BookingPaymentStateRepository",
    "PaymentRecordRepository",
]
