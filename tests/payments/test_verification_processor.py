import asyncio

import pytest

from application.ports.dedup_store import DedupEntry
from application.services.verification_processor import dedup_key
from domain.common.exceptions import (
    AmountMismatchError,
    AuthenticityError,
    CallbackInFlightError,
    MalformedCallbackError,
    PaymentRecordNotFoundError,
    UnknownProviderError,
)
from domain.invoice import InvoiceStatus, InvoiceType
from domain.payment import BookingPaymentStatus, PaymentProvider, PaymentStatus

from conftest import make_callback


@pytest.mark.asyncio
async def test_paid_callback_settles_booking_and_issues_invoice(pipeline, seed_payment, channel):
    await seed_payment("b1", "tx-1", amount="100")

    result = await pipeline.processor.handle_callback("momo", make_callback("tx-1", amount="100"))
    await channel.join()

    assert result.booking_id == "b1"
    assert result.status == PaymentStatus.PAID
    assert result.booking_status == BookingPaymentStatus.PAID
    assert result.applied is True
    assert result.replayed is False

    state = await pipeline.payment_service.get_booking_state("b1")
    assert state.status == BookingPaymentStatus.PAID
    assert state.version == 1

    invoices = await pipeline.invoice_service.list_invoices("b1")
    assert len(invoices) == 1
    assert invoices[0].type == InvoiceType.BOOKING
    assert invoices[0].status == InvoiceStatus.ISSUED
    assert invoices[0].pdf_url == f"https://files.test/invoices/invoices/{invoices[0].id}.pdf"


@pytest.mark.asyncio
async def test_same_callback_three_times_has_one_effect(pipeline, seed_payment, channel, strategy, memory_db):
    await seed_payment("b1", "tx-1")

    first = await pipeline.processor.handle_callback("momo", make_callback("tx-1"))
    second = await pipeline.processor.handle_callback("MOMO", make_callback("tx-1"))
    third = await pipeline.processor.handle_callback(PaymentProvider.MOMO, make_callback("tx-1"))
    await channel.join()

    assert [first.replayed, second.replayed, third.replayed] == [False, True, True]
    assert second.booking_status == third.booking_status == BookingPaymentStatus.PAID
    # replays still authenticate before answering
    assert strategy.verify_calls == 3
    assert memory_db.booking_states["b1"].version == 1
    assert len(memory_db.invoices) == 1


@pytest.mark.asyncio
async def test_concurrent_deliveries_transition_once(pipeline, seed_payment, channel, memory_db):
    await seed_payment("b1", "tx-1")

    results = await asyncio.gather(
        pipeline.processor.handle_callback("momo", make_callback("tx-1")),
        pipeline.processor.handle_callback("momo", make_callback("tx-1")),
    )
    await channel.join()

    assert sorted(r.replayed for r in results) == [False, True]
    assert all(r.booking_status == BookingPaymentStatus.PAID for r in results)
    assert memory_db.booking_states["b1"].version == 1
    assert len(memory_db.invoices) == 1


@pytest.mark.asyncio
async def test_invalid_signature_leaves_booking_pending(pipeline, seed_payment, channel, memory_db):
    await seed_payment("b1", "tx-1")

    with pytest.raises(AuthenticityError):
        await pipeline.processor.handle_callback("momo", make_callback("tx-1", signature="forged"))
    await channel.join()

    assert memory_db.booking_states["b1"].status == BookingPaymentStatus.PENDING
    assert memory_db.invoices == {}
    # nothing was claimed, so a genuine callback still goes through
    assert await pipeline.dedup_store.get(dedup_key(PaymentProvider.MOMO, "tx-1")) is None


@pytest.mark.asyncio
async def test_amount_mismatch_is_rejected_and_not_recorded(pipeline, seed_payment, memory_db):
    await seed_payment("b1", "tx-1", amount="100")

    with pytest.raises(AmountMismatchError):
        await pipeline.processor.handle_callback("momo", make_callback("tx-1", amount="90"))

    assert memory_db.booking_states["b1"].status == BookingPaymentStatus.PENDING
    assert await pipeline.dedup_store.get(dedup_key(PaymentProvider.MOMO, "tx-1")) is None

    # the correct amount afterwards is processed normally
    result = await pipeline.processor.handle_callback("momo", make_callback("tx-1", amount="100.00"))
    assert result.applied is True


@pytest.mark.asyncio
async def test_unknown_transaction_raises_record_not_found(pipeline):
    with pytest.raises(PaymentRecordNotFoundError):
        await pipeline.processor.handle_callback("momo", make_callback("tx-missing"))


@pytest.mark.asyncio
async def test_unregistered_provider_is_unknown(pipeline):
    with pytest.raises(UnknownProviderError):
        await pipeline.processor.handle_callback("paypal", make_callback("tx-1"))
    # a valid provider name without a registered strategy is unknown as well
    with pytest.raises(UnknownProviderError):
        await pipeline.processor.handle_callback("vnpay", make_callback("tx-1"))


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected(pipeline):
    with pytest.raises(MalformedCallbackError):
        await pipeline.processor.handle_callback("momo", {"status": "PAID"})


@pytest.mark.asyncio
async def test_pending_callback_keeps_key_open_for_settlement(pipeline, seed_payment, channel, memory_db):
    await seed_payment("b1", "tx-1")

    pending = await pipeline.processor.handle_callback("momo", make_callback("tx-1", status="PENDING"))
    assert pending.booking_status == BookingPaymentStatus.PENDING
    assert pending.applied is False
    assert await pipeline.dedup_store.get(dedup_key(PaymentProvider.MOMO, "tx-1")) is None

    paid = await pipeline.processor.handle_callback("momo", make_callback("tx-1", status="PAID"))
    await channel.join()
    assert paid.replayed is False
    assert paid.booking_status == BookingPaymentStatus.PAID
    assert len(memory_db.invoices) == 1


@pytest.mark.asyncio
async def test_failed_callback_is_terminal(pipeline, seed_payment, channel, memory_db):
    await seed_payment("b1", "tx-1")

    failed = await pipeline.processor.handle_callback("momo", make_callback("tx-1", status="FAILED"))
    await channel.join()

    assert failed.booking_status == BookingPaymentStatus.FAILED
    assert memory_db.invoices == {}


@pytest.mark.asyncio
async def test_claim_held_elsewhere_times_out(pipeline, seed_payment):
    await seed_payment("b1", "tx-1")
    key = dedup_key(PaymentProvider.MOMO, "tx-1")
    await pipeline.dedup_store.put_if_absent(key, DedupEntry(token="other-worker"), 60)
    pipeline.processor._wait_timeout = 0.05
    pipeline.processor._poll_interval = 0.01

    with pytest.raises(CallbackInFlightError):
        await pipeline.processor.handle_callback("momo", make_callback("tx-1"))


@pytest.mark.asyncio
async def test_claim_released_elsewhere_is_reclaimed(pipeline, seed_payment):
    await seed_payment("b1", "tx-1")
    key = dedup_key(PaymentProvider.MOMO, "tx-1")
    await pipeline.dedup_store.put_if_absent(key, DedupEntry(token="other-worker"), 60)

    async def _release_later():
        await asyncio.sleep(0.05)
        await pipeline.dedup_store.release(key, "other-worker")

    releaser = asyncio.create_task(_release_later())
    result = await pipeline.processor.handle_callback("momo", make_callback("tx-1"))
    await releaser

    assert result.replayed is False
    assert result.applied is True
