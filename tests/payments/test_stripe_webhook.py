import hashlib
import hmac
import json
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest

from application.dtos.payments import WebhookCallback
from core.settings import StripeSettings
from domain.common.exceptions import AuthenticityError, MalformedCallbackError, PaymentRecordNotFoundError
from domain.payment import PaymentStatus
from infrastructure.external.payments.stripe_client import StripeClient


stripe = pytest.importorskip("stripe")

WEBHOOK_SECRET = "whsec_test"


@pytest.fixture
def client():
    return StripeClient(StripeSettings(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET))


def _sign(payload: str, timestamp: int | None = None) -> str:
    ts = timestamp or int(time.time())
    digest = hmac.new(WEBHOOK_SECRET.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def _event(event_type="checkout.session.completed", session_id="cs_test_1", **obj):
    body = {
        "id": "evt_1",
        "object": "event",
        "type": event_type,
        "created": 1792300000,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": 250000,
                "currency": "vnd",
                "payment_status": "paid",
                "payment_method_types": ["card"],
                **obj,
            }
        },
    }
    return json.dumps(body)


def _callback(payload: str, signature: str, hint="cs_test_1") -> WebhookCallback:
    return WebhookCallback(transaction_id=hint, data={"payload": payload, "signature": signature})


@pytest.mark.asyncio
async def test_completed_session_is_paid(client):
    payload = _event()

    verification = await client.verify_payment(_callback(payload, _sign(payload)))

    assert verification.status == PaymentStatus.PAID
    assert verification.transaction_id == "cs_test_1"
    # VND is a zero-decimal currency
    assert verification.amount == Decimal("250000")
    assert verification.payment_method == "card"
    assert verification.raw == {"id": "evt_1", "type": "checkout.session.completed"}


@pytest.mark.asyncio
async def test_minor_units_are_converted(client):
    payload = _event(amount_total=1999, currency="usd")

    verification = await client.verify_payment(_callback(payload, _sign(payload)))

    assert verification.amount == Decimal("19.99")


@pytest.mark.asyncio
async def test_unpaid_completion_stays_pending(client):
    payload = _event(payment_status="unpaid")

    verification = await client.verify_payment(_callback(payload, _sign(payload)))

    assert verification.status == PaymentStatus.PENDING
    assert verification.paid_at is None


@pytest.mark.asyncio
async def test_expired_session_is_failed(client):
    payload = _event("checkout.session.expired", payment_status="unpaid")

    verification = await client.verify_payment(_callback(payload, _sign(payload)))

    assert verification.status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_wrong_signature_is_rejected(client):
    payload = _event()
    signature = _sign(_event(amount_total=1))

    with pytest.raises(AuthenticityError):
        await client.verify_payment(_callback(payload, signature))


@pytest.mark.asyncio
async def test_stale_signature_is_rejected(client):
    payload = _event()

    with pytest.raises(AuthenticityError):
        await client.verify_payment(_callback(payload, _sign(payload, timestamp=int(time.time()) - 3600)))


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(client):
    with pytest.raises(AuthenticityError):
        await client.verify_payment(WebhookCallback(transaction_id="cs_test_1", data={"payload": _event()}))


@pytest.mark.asyncio
async def test_hint_must_match_session(client):
    payload = _event()

    with pytest.raises(AuthenticityError):
        await client.verify_payment(_callback(payload, _sign(payload), hint="cs_other"))


@pytest.mark.asyncio
async def test_event_without_amount_is_malformed(client):
    payload = _event(amount_total=None)

    with pytest.raises(MalformedCallbackError):
        await client.verify_payment(_callback(payload, _sign(payload)))


def _intent_event(event_type="payment_intent.succeeded", intent_id="pi_test_1", **obj):
    body = {
        "id": "evt_2",
        "object": "event",
        "type": event_type,
        "created": 1792300000,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": 250000,
                "currency": "vnd",
                "metadata": {"booking_id": "b1", "order_id": "o1"},
                **obj,
            }
        },
    }
    return json.dumps(body)


@pytest.fixture
def sessions_by_intent(monkeypatch):
    """Stands in for the Checkout Session lookup by payment intent."""
    known = {"pi_test_1": "cs_test_1"}
    calls = []

    async def list_async(**params):
        calls.append(params)
        session_id = known.get(params["payment_intent"])
        return SimpleNamespace(data=[SimpleNamespace(id=session_id)] if session_id else [])

    monkeypatch.setattr(stripe.checkout.Session, "list_async", list_async)
    return calls


@pytest.mark.asyncio
async def test_event_payload_is_read_as_plain_json(client):
    payload = _event()

    event = client._construct_event(_callback(payload, _sign(payload)))

    assert type(event) is dict
    assert type(event["data"]["object"]) is dict


@pytest.mark.asyncio
async def test_succeeded_intent_settles_its_session(client, sessions_by_intent):
    payload = _intent_event()

    verification = await client.verify_payment(_callback(payload, _sign(payload), hint="pi_test_1"))

    assert verification.status == PaymentStatus.PAID
    assert verification.transaction_id == "cs_test_1"
    assert verification.amount == Decimal("250000")
    assert sessions_by_intent == [{"payment_intent": "pi_test_1", "limit": 1}]


@pytest.mark.asyncio
async def test_failed_intent_is_failed(client, sessions_by_intent):
    payload = _intent_event("payment_intent.payment_failed")

    verification = await client.verify_payment(_callback(payload, _sign(payload), hint="cs_test_1"))

    assert verification.status == PaymentStatus.FAILED
    assert verification.transaction_id == "cs_test_1"


@pytest.mark.asyncio
async def test_intent_without_session_is_unknown(client, sessions_by_intent):
    payload = _intent_event(intent_id="pi_orphan")

    with pytest.raises(PaymentRecordNotFoundError):
        await client.verify_payment(_callback(payload, _sign(payload), hint="pi_orphan"))


@pytest.mark.asyncio
async def test_intent_hint_must_match(client, sessions_by_intent):
    payload = _intent_event()

    with pytest.raises(AuthenticityError):
        await client.verify_payment(_callback(payload, _sign(payload), hint="cs_other"))
