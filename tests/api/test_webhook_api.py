import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import httpx
import pytest

from core.config import settings
from core.settings import StripeSettings
from domain.invoice import InvoiceStatus
from domain.payment import PaymentProvider
from infrastructure.bootstrap import build_pipeline
from infrastructure.cache import InMemoryDedupStore
from infrastructure.external.payments.registry import GatewayRegistry
from infrastructure.external.payments.stripe_client import StripeClient
from main import create_app
from shared.codes.payment_codes import PaymentCode

from conftest import make_callback


def _client(pipeline) -> httpx.AsyncClient:
    app = create_app(pipeline)
    # ASGITransport skips the lifespan; the fixture owns the pipeline
    app.state.pipeline = pipeline
    # unhandled errors are re-raised after the 500 is sent; keep the response instead
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
async def api(pipeline):
    async with _client(pipeline) as client:
        yield client


@pytest.mark.asyncio
async def test_payment_to_invoice_flow(api, channel):
    created = await api.post(
        "/api/v1/payments",
        json={"provider": "momo", "booking_id": "b1", "amount": "100", "currency": "vnd"},
    )
    assert created.status_code == 200
    assert created.json()["data"]["transaction_id"] == "tx-b1"

    resp = await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-b1"))
    await channel.join()

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Callback processed"
    assert body["data"]["booking_status"] == "PAID"
    assert resp.headers["X-Request-ID"]

    state = await api.get("/api/v1/payments/bookings/b1")
    assert state.json()["data"]["status"] == "PAID"
    assert state.json()["data"]["version"] == 1

    invoices = (await api.get("/api/v1/invoices", params={"booking_id": "b1"})).json()["data"]
    assert len(invoices) == 1
    assert invoices[0]["status"] == InvoiceStatus.ISSUED.value

    single = await api.get(f"/api/v1/invoices/{invoices[0]['id']}")
    assert single.status_code == 200
    assert single.json()["data"]["pdf_url"] == invoices[0]["pdf_url"]


@pytest.mark.asyncio
async def test_replayed_webhook_is_acknowledged(api, seed_payment, channel):
    await seed_payment("b1", "tx-1")

    first = await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-1"))
    second = await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-1"))
    await channel.join()

    assert first.status_code == second.status_code == 200
    assert second.json()["message"] == "Callback already processed"
    assert second.json()["data"]["replayed"] is True


@pytest.mark.asyncio
async def test_bad_signature_is_unauthorized(api, seed_payment):
    await seed_payment("b1", "tx-1")

    resp = await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-1", signature="forged"))

    assert resp.status_code == 401
    assert resp.json()["code"] == PaymentCode.SIGNATURE_ERROR

    state = await api.get("/api/v1/payments/bookings/b1")
    assert state.json()["data"]["status"] == "PENDING"


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", ["paypal", "vnpay"])
async def test_unknown_provider_is_not_found(api, provider):
    resp = await api.post(f"/api/v1/payments/webhooks/{provider}", content=b"not json")

    assert resp.status_code == 404
    assert resp.json()["code"] == PaymentCode.UNKNOWN_PROVIDER


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"not json", b"{}", b'{"transactionId": ""}'])
async def test_malformed_body_is_bad_request(api, body):
    resp = await api.post(
        "/api/v1/payments/webhooks/momo",
        content=body,
        headers={"Content-Type": "application/json"},
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == PaymentCode.MALFORMED_CALLBACK


@pytest.mark.asyncio
async def test_amount_mismatch_is_conflict(api, seed_payment):
    await seed_payment("b1", "tx-1", amount="100")

    resp = await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-1", amount="90"))

    assert resp.status_code == 409
    assert resp.json()["code"] == PaymentCode.AMOUNT_MISMATCH


@pytest.mark.asyncio
async def test_unknown_transaction_is_conflict(api):
    resp = await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-unknown"))

    assert resp.status_code == 409
    assert resp.json()["code"] == PaymentCode.PAYMENT_RECORD_NOT_FOUND


@pytest.mark.asyncio
async def test_storage_outage_asks_provider_to_retry(api, seed_payment, pipeline, monkeypatch):
    await seed_payment("b1", "tx-1")

    async def _down(*args, **kwargs):
        raise ConnectionError("dedup store unreachable")

    monkeypatch.setattr(pipeline.dedup_store, "put_if_absent", _down)

    resp = await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-1"))

    assert resp.status_code == 500


@pytest.mark.asyncio
async def test_refund_requires_paid_booking(api, seed_payment, channel):
    await seed_payment("b1", "tx-1")

    early = await api.post("/api/v1/payments/bookings/b1/refund")
    assert early.status_code == 409

    await api.post("/api/v1/payments/webhooks/momo", json=make_callback("tx-1"))
    await channel.join()
    refunded = await api.post("/api/v1/payments/bookings/b1/refund")

    assert refunded.status_code == 200
    assert refunded.json()["data"]["status"] == "REFUNDED"


@pytest.mark.asyncio
async def test_lookups_of_missing_entities(api):
    assert (await api.get("/api/v1/payments/bookings/missing")).status_code == 404
    assert (await api.get("/api/v1/invoices/missing")).status_code == 404


@pytest.mark.asyncio
async def test_providers_and_health(api):
    providers = await api.get("/api/v1/payments/providers")
    health = await api.get("/health")

    assert providers.json()["data"] == ["MOMO"]
    assert health.json()["data"] == {"status": "healthy"}


@pytest.fixture
async def stripe_pipeline(channel, uow_factory, renderer, storage):
    registry = GatewayRegistry()
    registry.register(
        PaymentProvider.STRIPE,
        StripeClient(StripeSettings(secret_key="sk_test_123", webhook_secret="whsec_test")),
    )
    pipeline = build_pipeline(
        settings,
        registry=registry.freeze(),
        dedup_store=InMemoryDedupStore(),
        channel=channel,
        uow_factory=uow_factory,
        renderer=renderer,
        storage=storage,
    )
    await pipeline.start()
    yield pipeline
    await pipeline.aclose()


@pytest.mark.asyncio
async def test_native_stripe_event_is_verified_by_header(stripe_pipeline, seed_payment, channel):
    await seed_payment("b1", "cs_test_1", amount="250000", provider=PaymentProvider.STRIPE)
    payload = json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "checkout.session.completed",
            "created": int(time.time()),
            "data": {
                "object": {
                    "id": "cs_test_1",
                    "object": "checkout.session",
                    "amount_total": 250000,
                    "currency": "vnd",
                    "payment_status": "paid",
                }
            },
        }
    )
    ts = int(time.time())
    digest = hmac.new(b"whsec_test", f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()

    async with _client(stripe_pipeline) as api:
        ok = await api.post(
            "/api/v1/payments/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": f"t={ts},v1={digest}", "Content-Type": "application/json"},
        )
        forged = await api.post(
            "/api/v1/payments/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": f"t={ts},v1={'0' * 64}", "Content-Type": "application/json"},
        )
        await channel.join()

    assert ok.status_code == 200
    assert ok.json()["data"]["booking_status"] == "PAID"
    assert forged.status_code == 401


@pytest.mark.asyncio
async def test_native_intent_event_settles_booking(stripe_pipeline, seed_payment, channel, monkeypatch):
    stripe = pytest.importorskip("stripe")

    async def list_async(**params):
        assert params["payment_intent"] == "pi_test_1"
        return SimpleNamespace(data=[SimpleNamespace(id="cs_test_1")])

    monkeypatch.setattr(stripe.checkout.Session, "list_async", list_async)
    await seed_payment("b1", "cs_test_1", amount="250000", provider=PaymentProvider.STRIPE)
    payload = json.dumps(
        {
            "id": "evt_2",
            "object": "event",
            "type": "payment_intent.succeeded",
            "created": int(time.time()),
            "data": {
                "object": {
                    "id": "pi_test_1",
                    "object": "payment_intent",
                    "amount": 250000,
                    "currency": "vnd",
                    "metadata": {"booking_id": "b1", "order_id": "o1"},
                }
            },
        }
    )
    ts = int(time.time())
    digest = hmac.new(b"whsec_test", f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()

    async with _client(stripe_pipeline) as api:
        resp = await api.post(
            "/api/v1/payments/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": f"t={ts},v1={digest}", "Content-Type": "application/json"},
        )
        await channel.join()
        state = await api.get("/api/v1/payments/bookings/b1")

    assert resp.status_code == 200
    body = resp.json()["data"]
    assert body["transaction_id"] == "cs_test_1"
    assert body["booking_status"] == "PAID"
    assert state.json()["data"]["status"] == "PAID"
