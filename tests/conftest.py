"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported,
because settings are read once at import time.
"""
import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("STORAGE__BACKEND", "memory")
os.environ.setdefault("DEDUP__BACKEND", "memory")
os.environ.setdefault("CHANNEL__BACKEND", "memory")
os.environ.setdefault("PAYMENT__STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("PAYMENT__STRIPE__WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("PAYMENT__MOMO__PARTNER_CODE", "MOMOTEST")
os.environ.setdefault("PAYMENT__MOMO__ACCESS_KEY", "momo-access")
os.environ.setdefault("PAYMENT__MOMO__SECRET_KEY", "momo-secret")
os.environ.setdefault("PAYMENT__VNPAY__TMN_CODE", "TESTTMN1")
os.environ.setdefault("PAYMENT__VNPAY__HASH_SECRET", "vnpay-secret")

from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from functools import partial  # noqa: E402
from typing import Any, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402

from application.dtos.payments import (  # noqa: E402
    PaymentRequest,
    PaymentResponse,
    PaymentVerification,
    WebhookCallback,
)
from core.config import settings  # noqa: E402
from domain.common.exceptions import AuthenticityError, RenderFailure  # noqa: E402
from domain.payment import PaymentProvider, PaymentRecord, PaymentStatus  # noqa: E402
from infrastructure.bootstrap import build_pipeline  # noqa: E402
from infrastructure.cache import InMemoryDedupStore  # noqa: E402
from infrastructure.external.messaging import InMemoryInvoiceChannel  # noqa: E402
from infrastructure.external.payments.registry import GatewayRegistry  # noqa: E402
from infrastructure.external.storage import LocalArtifactStorage  # noqa: E402
from infrastructure.repositories.memory import InMemoryDatabase  # noqa: E402
from infrastructure.unit_of_work import InMemoryUnitOfWork  # noqa: E402


VALID_SIGNATURE = "valid-signature"


class FakeStrategy:
    """Provider double: the callback ``data`` carries the signed fields verbatim."""

    def __init__(self, provider: PaymentProvider = PaymentProvider.MOMO):
        self.provider = provider
        self.verify_calls = 0
        self.created: List[PaymentRequest] = []

    def get_provider(self) -> PaymentProvider:
        return self.provider

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        self.created.append(request)
        return PaymentResponse(
            success=True,
            transaction_id=f"tx-{request.order_id}",
            payment_url=f"https://pay.test/{request.order_id}",
        )

    async def verify_payment(self, callback: WebhookCallback) -> PaymentVerification:
        self.verify_calls += 1
        if callback.data.get("signature") != VALID_SIGNATURE:
            raise AuthenticityError("Invalid callback signature", provider=self.provider.value)
        status = PaymentStatus(callback.data.get("status", "PAID"))
        return PaymentVerification(
            success=status == PaymentStatus.PAID,
            transaction_id=callback.transaction_id,
            amount=Decimal(str(callback.data["amount"])),
            status=status,
            raw=dict(callback.data),
        )


class FakeRenderer:
    def __init__(self) -> None:
        self.failures_left = 0
        self.calls = 0

    async def render_invoice_pdf(self, snapshot: Dict[str, Any]) -> bytes:
        self.calls += 1
        if self.failures_left > 0:
            self.failures_left -= 1
            raise RenderFailure("renderer down", invoice_id=snapshot.get("id"))
        return b"%PDF-1.4 " + str(snapshot["id"]).encode()


def make_callback(
    transaction_id: str,
    amount: str = "100",
    status: str = "PAID",
    signature: Optional[str] = VALID_SIGNATURE,
) -> Dict[str, Any]:
    return {
        "transactionId": transaction_id,
        "status": status,
        "data": {"amount": amount, "status": status, "signature": signature},
    }


@pytest.fixture
def memory_db():
    return InMemoryDatabase()


@pytest.fixture
def uow_factory(memory_db):
    return partial(InMemoryUnitOfWork, memory_db)


@pytest.fixture
def strategy():
    return FakeStrategy(PaymentProvider.MOMO)


@pytest.fixture
def registry(strategy):
    registry = GatewayRegistry()
    registry.register(PaymentProvider.MOMO, strategy)
    return registry.freeze()


@pytest.fixture
def channel():
    return InMemoryInvoiceChannel(max_delivery_attempts=3, redelivery_delay=0)


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def storage(tmp_path):
    return LocalArtifactStorage(str(tmp_path / "artifacts"), public_base_url="https://files.test/invoices")


@pytest.fixture
async def pipeline(registry, channel, uow_factory, renderer, storage):
    pipeline = build_pipeline(
        settings,
        registry=registry,
        dedup_store=InMemoryDedupStore(),
        channel=channel,
        uow_factory=uow_factory,
        renderer=renderer,
        storage=storage,
    )
    await pipeline.start()
    yield pipeline
    await pipeline.aclose()


@pytest.fixture
def seed_payment(uow_factory):
    """Open a PENDING booking and record the payment request sent for it."""

    async def _seed(
        booking_id: str,
        transaction_id: str,
        amount: str = "100",
        currency: str = "VND",
        provider: PaymentProvider = PaymentProvider.MOMO,
    ):
        from domain.payment import BookingPaymentState

        now = datetime.now(timezone.utc)
        async with uow_factory() as uow:
            await uow.booking_state_repository.create_if_absent(
                BookingPaymentState(
                    booking_id=booking_id,
                    amount=Decimal(amount),
                    currency=currency,
                    provider=provider.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            await uow.payment_record_repository.add(
                PaymentRecord(
                    transaction_id=transaction_id,
                    provider=provider.value,
                    booking_id=booking_id,
                    order_id=booking_id,
                    amount=Decimal(amount),
                    currency=currency,
                    created_at=now,
                )
            )

    return _seed
