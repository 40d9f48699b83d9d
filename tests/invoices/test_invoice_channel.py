from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from core.config import ChannelSettings, Settings, StorageSettings
from domain.invoice import Invoice, InvoiceCreatedEvent
from infrastructure.external.messaging import ChannelClosedError, InMemoryInvoiceChannel
from infrastructure.external.messaging.celery_channel import CeleryInvoiceChannel
from infrastructure.external.messaging.exceptions import PublishError


def _event(booking_id="b1"):
    return InvoiceCreatedEvent(
        invoice=Invoice.draft(booking_id=booking_id, amount=Decimal("100"), currency="VND"),
    )


@pytest.mark.asyncio
async def test_events_are_delivered_in_order():
    channel = InMemoryInvoiceChannel(redelivery_delay=0)
    seen = []

    async def handler(event):
        seen.append(event.booking_id)

    await channel.start(handler)
    for booking_id in ("b1", "b2", "b3"):
        await channel.publish(_event(booking_id))
    await channel.join()
    await channel.stop()

    assert seen == ["b1", "b2", "b3"]


@pytest.mark.asyncio
async def test_failed_handling_is_redelivered():
    channel = InMemoryInvoiceChannel(max_delivery_attempts=3, redelivery_delay=0)
    attempts = []

    async def handler(event):
        attempts.append(event.event_id)
        if len(attempts) < 2:
            raise RuntimeError("storage unavailable")

    await channel.start(handler)
    event = _event()
    await channel.publish(event)
    await channel.join()
    await channel.stop()

    assert attempts == [event.event_id, event.event_id]
    assert channel.dead_letters == []


@pytest.mark.asyncio
async def test_exhausted_event_is_dead_lettered():
    channel = InMemoryInvoiceChannel(max_delivery_attempts=2, redelivery_delay=0)
    calls = []

    async def handler(event):
        calls.append(event)
        raise RuntimeError("boom")

    await channel.start(handler)
    event = _event()
    await channel.publish(event)
    await channel.join()
    await channel.stop()

    assert len(calls) == 2
    assert channel.dead_letters == [event]


@pytest.mark.asyncio
async def test_stopped_channel_rejects_publish():
    channel = InMemoryInvoiceChannel()

    async def handler(event):
        return None

    await channel.start(handler)
    assert channel.running
    await channel.stop()

    assert not channel.running
    with pytest.raises(ChannelClosedError):
        await channel.publish(_event())


@pytest.mark.asyncio
async def test_celery_channel_dispatches_payload():
    dispatcher = MagicMock()
    channel = CeleryInvoiceChannel(dispatcher=dispatcher)
    event = _event()

    await channel.publish(event)

    dispatcher.issue_invoice.assert_called_once_with(event.to_payload())


@pytest.mark.asyncio
async def test_celery_channel_wraps_broker_errors():
    dispatcher = MagicMock()
    dispatcher.issue_invoice.side_effect = ConnectionError("broker down")
    channel = CeleryInvoiceChannel(dispatcher=dispatcher)

    with pytest.raises(PublishError):
        await channel.publish(_event())


def test_celery_channel_requires_shared_storage():
    with pytest.raises(ValidationError):
        Settings(channel=ChannelSettings(backend="celery"), storage=StorageSettings(backend="memory"))

    config = Settings(channel=ChannelSettings(backend="celery"), storage=StorageSettings(backend="sqlalchemy"))
    assert config.channel.backend == "celery"
