"""Domain-level business exceptions shared by domain and infrastructure.

The core layer only maps these to HTTP; the domain must not import core.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from shared.codes import BusinessCode, PaymentCode


class BusinessException(Exception):
    """Base business exception"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


# ---------------------------------------------------------------------------
# Payment verification pipeline
# ---------------------------------------------------------------------------

class UnknownProviderError(BusinessException):
    def __init__(self, provider: str):
        super().__init__(
            code=PaymentCode.UNKNOWN_PROVIDER,
            message=f"Unknown payment provider: {provider}",
            error_type="UnknownProviderError",
            details={"provider": provider},
        )


class AuthenticityError(BusinessException):
    """Callback failed the provider signature/secret check."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="AuthenticityError",
            details=full_details,
        )


class MalformedCallbackError(BusinessException):
    def __init__(self, message: str, *, provider: Optional[str] = None, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.MALFORMED_CALLBACK,
            message=message,
            error_type="MalformedCallbackError",
            details=full_details,
        )


class AmountMismatchError(BusinessException):
    def __init__(self, transaction_id: str, expected: Decimal, actual: Decimal):
        super().__init__(
            code=PaymentCode.AMOUNT_MISMATCH,
            message=f"Verified amount {actual} does not match requested amount {expected}",
            error_type="AmountMismatchError",
            details={
                "transaction_id": transaction_id,
                "expected": str(expected),
                "actual": str(actual),
            },
            field="amount",
        )


class PaymentRecordNotFoundError(BusinessException):
    def __init__(self, transaction_id: str):
        super().__init__(
            code=PaymentCode.PAYMENT_RECORD_NOT_FOUND,
            message=f"No payment request recorded for transaction {transaction_id}",
            error_type="PaymentRecordNotFound",
            details={"transaction_id": transaction_id},
        )


class CallbackInFlightError(BusinessException):
    """Another delivery of the same transaction is still being processed."""

    def __init__(self, transaction_id: str):
        super().__init__(
            code=PaymentCode.CALLBACK_IN_FLIGHT,
            message=f"Callback for transaction {transaction_id} is still in flight",
            error_type="CallbackInFlight",
            details={"transaction_id": transaction_id},
        )


class BookingNotFoundError(BusinessException):
    def __init__(self, booking_id: str):
        super().__init__(
            code=PaymentCode.BOOKING_NOT_FOUND,
            message=f"No payment state for booking {booking_id}",
            error_type="BookingNotFound",
            details={"booking_id": booking_id},
        )


class InvalidStateTransitionError(BusinessException):
    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(
            code=PaymentCode.INVALID_STATE_TRANSITION,
            message=f"Cannot move booking {booking_id} from {current} to {target}",
            error_type="InvalidStateTransition",
            details={"booking_id": booking_id, "current": current, "target": target},
            field="status",
        )


class StorageConflictError(BusinessException):
    """Optimistic write lost a race; safe to retry the specific write."""

    def __init__(self, entity: str, key: str, expected_version: Optional[int] = None):
        super().__init__(
            code=PaymentCode.STORAGE_CONFLICT,
            message=f"Concurrent modification of {entity} {key}",
            error_type="StorageConflict",
            details={"entity": entity, "key": key, "expected_version": expected_version},
        )


class EventPublishError(BusinessException):
    def __init__(self, message: str, *, booking_id: str):
        super().__init__(
            code=PaymentCode.EVENT_PUBLISH_FAILED,
            message=message,
            error_type="EventPublishError",
            details={"booking_id": booking_id},
        )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

class InvoiceNotFoundError(BusinessException):
    def __init__(self, invoice_id: str):
        super().__init__(
            code=PaymentCode.INVOICE_NOT_FOUND,
            message="Invoice not found",
            error_type="InvoiceNotFound",
            details={"invoice_id": invoice_id},
        )


class InvoiceAlreadyExistsError(BusinessException):
    def __init__(self, booking_id: str, invoice_type: str):
        super().__init__(
            code=PaymentCode.INVOICE_ALREADY_EXISTS,
            message=f"Invoice {invoice_type} already exists for booking {booking_id}",
            error_type="InvoiceAlreadyExists",
            details={"booking_id": booking_id, "type": invoice_type},
        )


class RenderFailure(BusinessException):
    """Recoverable renderer error; the invoice stays PENDING_PDF."""

    def __init__(self, message: str, *, invoice_id: Optional[str] = None):
        super().__init__(
            code=PaymentCode.RENDER_FAILED,
            message=message,
            error_type="RenderFailure",
            details={"invoice_id": invoice_id},
        )
