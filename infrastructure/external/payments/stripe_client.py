"""
Stripe Checkout adapter using the official stripe-python SDK.

Notes on SDK usage:
- Sessions are created with ``stripe.checkout.Session.create_async``; the
  session id is the transaction id tracked by the booking pipeline.
- Webhook verification uses ``stripe.Webhook.construct_event`` over the raw
  event body and the ``Stripe-Signature`` header. The relay posts both in
  ``data.payload`` / ``data.signature``. Once verified, the body is read as
  plain JSON.
- ``payment_intent.*`` events are mapped back to their Checkout Session with
  ``stripe.checkout.Session.list_async(payment_intent=...)``.
"""
from __future__ import annotations

import json
from decimal import Decimal
from datetime import datetime, timezone
from typing import Any, Optional

import stripe

from application.dtos.payments import (
    PaymentRequest,
    PaymentResponse,
    PaymentVerification,
    WebhookCallback,
)
from core.settings import StripeSettings, payment_settings
from core.logging_config import get_logger
from domain.common.exceptions import AuthenticityError, MalformedCallbackError, PaymentRecordNotFoundError
from domain.payment import PaymentProvider, PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)


logger = get_logger(__name__)

ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND"}


class StripeClient(BasePaymentClient):
    provider = PaymentProvider.STRIPE

    def __init__(self, config: Optional[StripeSettings] = None):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        self.config = config or payment_settings.stripe
        if not self.config.secret_key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        if not self.config.webhook_secret:
            raise RuntimeError("PAYMENT__STRIPE__WEBHOOK_SECRET not configured")
        stripe.api_key = self.config.secret_key

    @staticmethod
    def _exponent(currency: str) -> int:
        return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2

    @classmethod
    def _to_minor(cls, amount: Decimal, currency: str) -> int:
        # Stripe expects amounts in the smallest currency unit
        return int((amount * (Decimal(10) ** cls._exponent(currency))).to_integral_value())

    @classmethod
    def _from_minor(cls, amount: Any, currency: str) -> Decimal:
        return Decimal(int(amount)) / (Decimal(10) ** cls._exponent(currency))

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:  # type: ignore[override]
        metadata = {str(k): str(v) for k, v in request.metadata.items()}
        metadata.update({"booking_id": request.booking_id, "order_id": request.order_id})
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency.lower(),
                        "unit_amount": self._to_minor(request.amount, request.currency),
                        "product_data": {"name": request.description or f"Booking {request.booking_id}"},
                    },
                    "quantity": 1,
                }
            ],
            "success_url": request.return_url or self.config.success_url,
            "cancel_url": request.cancel_url or self.config.cancel_url,
            "client_reference_id": request.booking_id,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        if request.customer_info and request.customer_info.email:
            params["customer_email"] = request.customer_info.email

        try:
            session = await stripe.checkout.Session.create_async(
                **params,
                idempotency_key=f"checkout:{request.order_id}",
            )
        except (stripe.RateLimitError, stripe.APIConnectionError) as exc:
            raise PaymentRecoverableError(str(exc), provider=self.provider.value) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                str(exc),
                provider=self.provider.value,
                provider_code=getattr(exc, "code", None),
            ) from exc

        self._log("payment_create_result", transaction_id=session.id, booking_id=request.booking_id)
        return PaymentResponse(
            success=True,
            transaction_id=str(session.id),
            payment_url=getattr(session, "url", None),
            metadata={"payment_intent": getattr(session, "payment_intent", None)},
        )

    def _construct_event(self, callback: WebhookCallback) -> dict[str, Any]:
        body = callback.data.get("payload")
        sig = callback.data.get("signature")
        if not body or not sig:
            raise AuthenticityError("Missing Stripe payload or signature", provider=self.provider.value)
        try:
            stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self.config.webhook_secret,
                tolerance=payment_settings.webhook.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise AuthenticityError(str(exc), provider=self.provider.value) from exc
        except ValueError as exc:
            raise MalformedCallbackError("Stripe event body is not valid JSON", provider=self.provider.value) from exc
        # the signature covers the raw body; read it as plain JSON rather than through StripeObject
        return json.loads(body)

    async def _session_for_intent(self, intent_id: str) -> str:
        """Return the Checkout Session id that created ``intent_id``."""
        try:
            sessions = await stripe.checkout.Session.list_async(payment_intent=intent_id, limit=1)
        except (stripe.RateLimitError, stripe.APIConnectionError) as exc:
            raise PaymentRecoverableError(str(exc), provider=self.provider.value) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                str(exc),
                provider=self.provider.value,
                provider_code=getattr(exc, "code", None),
            ) from exc
        if not sessions.data:
            raise PaymentRecordNotFoundError(intent_id)
        return str(sessions.data[0].id)

    async def verify_payment(self, callback: WebhookCallback) -> PaymentVerification:  # type: ignore[override]
        event = self._construct_event(callback)
        event_type = str(event["type"])
        obj = event["data"]["object"]
        object_id = str(obj.get("id") or "")
        if not object_id:
            raise MalformedCallbackError("Stripe event has no object id", provider=self.provider.value)

        if obj.get("object") == "payment_intent":
            # sessions are the tracked transactions; intents are mapped back to theirs
            transaction_id = await self._session_for_intent(object_id)
            amount_minor = obj.get("amount")
        else:
            transaction_id = object_id
            amount_minor = obj.get("amount_total")
        currency = str(obj.get("currency") or "usd").upper()
        if amount_minor is None:
            raise MalformedCallbackError("Stripe event has no amount", provider=self.provider.value)
        if callback.transaction_id != object_id:
            self._check_transaction(callback, transaction_id)

        status = self._map_status(event_type)
        # completed sessions with delayed methods settle later via async_payment_succeeded
        if event_type == "checkout.session.completed" and obj.get("payment_status") != "paid":
            status = PaymentStatus.PENDING

        created = event.get("created")
        paid_at = (
            datetime.fromtimestamp(int(created), tz=timezone.utc)
            if status == PaymentStatus.PAID and created
            else None
        )
        self._log("payment_callback_verified", transaction_id=transaction_id, event_type=event_type, status=status.value)
        return PaymentVerification(
            success=status == PaymentStatus.PAID,
            transaction_id=transaction_id,
            amount=self._from_minor(amount_minor, currency),
            status=status,
            raw={"id": event.get("id"), "type": event_type},
            payment_method=(obj.get("payment_method_types") or ["card"])[0],
            paid_at=paid_at,
        )
