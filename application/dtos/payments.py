"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

from domain.payment import (
    BookingPaymentState,
    BookingPaymentStatus,
    PaymentProvider,
    PaymentStatus,
)

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
    "VND", "THB",
}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class PaymentRequest(BaseModel):
    """Immutable once handed to a provider."""

    model_config = ConfigDict(frozen=True)

    booking_id: str = Field(min_length=1)
    order_id: str = Field(min_length=1)
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="VND")
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    description: Optional[str] = None
    customer_info: Optional[CustomerInfo] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class PaymentResponse(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None
    error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentVerification(BaseModel):
    """Authenticated, normalized view of one provider callback."""

    success: bool
    transaction_id: str
    amount: Decimal
    status: PaymentStatus
    raw: dict[str, Any] = Field(default_factory=dict)
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None


class WebhookCallback(BaseModel):
    """Webhook body as posted by the provider (or its relay).

    ``data`` carries the provider blob the strategy authenticates; top-level
    fields are untrusted hints.
    """

    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(alias="transactionId", min_length=1)
    status: Optional[str] = None
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")
    paid_at: Optional[datetime] = Field(default=None, alias="paidAt")
    amount: Optional[Decimal] = None
    data: dict[str, Any] = Field(default_factory=dict)


class CreatePaymentCommand(BaseModel):
    """HTTP body for starting a payment for a booking."""

    provider: str
    booking_id: str = Field(min_length=1)
    order_id: Optional[str] = None
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="VND")
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    description: Optional[str] = None
    customer_info: Optional[CustomerInfo] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)

    def to_request(self) -> PaymentRequest:
        return PaymentRequest(
            booking_id=self.booking_id,
            order_id=self.order_id or self.booking_id,
            amount=self.amount,
            currency=self.currency,
            return_url=self.return_url,
            cancel_url=self.cancel_url,
            description=self.description,
            customer_info=self.customer_info,
            metadata=self.metadata,
        )


class ProcessingResult(BaseModel):
    """Outcome of one callback; stored verbatim in the dedup store."""

    transaction_id: str
    booking_id: str
    provider: PaymentProvider
    status: PaymentStatus
    booking_status: BookingPaymentStatus
    applied: bool
    replayed: bool = False
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def as_replay(self) -> "ProcessingResult":
        return self.model_copy(update={"replayed": True})


class BookingPaymentStateDTO(BaseModel):
    booking_id: str
    status: BookingPaymentStatus
    amount: Decimal
    currency: str
    version: int
    transaction_id: Optional[str] = None
    provider: Optional[str] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, state: BookingPaymentState) -> "BookingPaymentStateDTO":
        return cls(
            booking_id=state.booking_id,
            status=state.status,
            amount=state.amount,
            currency=state.currency,
            version=state.version,
            transaction_id=state.transaction_id,
            provider=state.provider,
            paid_at=state.paid_at,
            refunded_at=state.refunded_at,
            updated_at=state.updated_at,
        )
