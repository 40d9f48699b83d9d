from __future__ import annotations

import asyncio
from typing import Optional

from application.ports.invoice_channel import InvoiceEventChannel, InvoiceEventHandler
from core.logging_config import get_logger
from domain.invoice import InvoiceCreatedEvent
from infrastructure.tasks.utils.dispatcher import TaskDispatcher

from .exceptions import PublishError


logger = get_logger(__name__)


class CeleryInvoiceChannel(InvoiceEventChannel):
    """Publishes invoice events as ``invoices.issue`` Celery tasks.

    Consumption happens in Celery workers; redelivery is the task's
    autoretry with ``acks_late``. ``start``/``stop`` only record state.
    """

    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def publish(self, event: InvoiceCreatedEvent) -> None:
        try:
            # broker I/O is blocking in kombu
            await asyncio.to_thread(self._dispatcher.issue_invoice, event.to_payload())
        except Exception as exc:
            raise PublishError(f"failed to enqueue invoice event {event.event_id}: {exc}") from exc

    async def start(self, handler: InvoiceEventHandler) -> None:
        logger.info("invoice_channel_started", backend="celery")

    async def stop(self) -> None:
        logger.info("invoice_channel_stopped", backend="celery")
