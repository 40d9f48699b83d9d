"""
Payments API routes.

The webhook endpoint answers with the HTTP status providers retry on:
2xx acknowledges, 4xx tells the provider to stop, 5xx asks for a retry.
Status mapping lives in core.exceptions; handlers here stay thin.
"""
from __future__ import annotations

import json
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from api.dependencies import get_payment_service, get_verification_processor
from application.dtos.payments import BookingPaymentStateDTO, CreatePaymentCommand, WebhookCallback
from application.services.payment_service import PaymentService
from application.services.verification_processor import VerificationProcessor
from core.logging_config import get_logger
from core.response import success_response
from domain.common.exceptions import MalformedCallbackError
from domain.payment import PaymentProvider


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)

STRIPE_SIGNATURE_HEADER = "stripe-signature"


def _stripe_native_callback(raw_body: bytes, signature: str) -> WebhookCallback:
    """Wrap a Stripe-formatted event so the strategy can check the signature itself."""
    try:
        event = json.loads(raw_body)
        # session or payment intent id; the strategy maps intents to their session
        hint = event["data"]["object"].get("id")
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise MalformedCallbackError("Stripe event body is malformed", provider=PaymentProvider.STRIPE.value) from exc
    if not hint:
        raise MalformedCallbackError("Stripe event has no object id", provider=PaymentProvider.STRIPE.value)
    return WebhookCallback(
        transaction_id=str(hint),
        data={"payload": raw_body.decode("utf-8"), "signature": signature},
    )


def _parse_callback(provider: PaymentProvider, raw_body: bytes) -> WebhookCallback:
    try:
        return WebhookCallback.model_validate_json(raw_body or b"{}")
    except ValidationError as exc:
        raise MalformedCallbackError(
            "Callback payload is malformed",
            provider=provider.value,
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


@router.post("/webhooks/{provider}", summary="Provider payment callback")
async def payments_webhook(
    provider: str,
    request: Request,
    processor: VerificationProcessor = Depends(get_verification_processor),
):
    # resolve first so an unknown provider is a 404 whatever the body holds
    resolved = processor.resolve_provider(provider)
    raw_body = await request.body()

    signature = request.headers.get(STRIPE_SIGNATURE_HEADER)
    if resolved == PaymentProvider.STRIPE and signature:
        callback = _stripe_native_callback(raw_body, signature)
    else:
        callback = _parse_callback(resolved, raw_body)

    result = await processor.handle_callback(resolved, callback)
    return success_response(
        data=result.model_dump(mode="json"),
        message="Callback already processed" if result.replayed else "Callback processed",
    )


@router.post("", summary="Create payment for a booking")
async def create_payment(
    payload: CreatePaymentCommand,
    service: PaymentService = Depends(get_payment_service),
):
    response = await service.create_payment(payload.provider, payload.to_request())
    message = "Payment created" if response.success else "Payment was not created by the provider"
    return success_response(data=response.model_dump(mode="json"), message=message)


@router.get("/providers", summary="List enabled providers")
async def list_providers(service: PaymentService = Depends(get_payment_service)):
    return success_response(data=[p.value for p in service.providers()])


@router.get("/bookings/{booking_id}", summary="Booking payment state")
async def get_booking_state(booking_id: str, service: PaymentService = Depends(get_payment_service)):
    state = await service.get_booking_state(booking_id)
    return success_response(data=BookingPaymentStateDTO.from_entity(state).model_dump(mode="json"))


@router.post("/bookings/{booking_id}/refund", summary="Mark booking refunded")
async def refund_booking(booking_id: str, service: PaymentService = Depends(get_payment_service)):
    state = await service.refund(booking_id)
    return success_response(
        data=BookingPaymentStateDTO.from_entity(state).model_dump(mode="json"),
        message="Booking refunded",
    )
