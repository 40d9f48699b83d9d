from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import List, Optional

from application.ports.invoice_channel import InvoiceEventChannel, InvoiceEventHandler
from core.logging_config import get_logger
from domain.invoice import InvoiceCreatedEvent

from .exceptions import ChannelClosedError


logger = get_logger(__name__)


@dataclass(slots=True)
class Delivery:
    event: InvoiceCreatedEvent
    attempts: int = 0


class InMemoryInvoiceChannel(InvoiceEventChannel):
    """Single-process queue with bounded redelivery.

    A handler exception re-enqueues the event after ``redelivery_delay``
    until ``max_delivery_attempts`` is reached; the event is then parked in
    ``dead_letters``.
    """

    def __init__(
        self,
        *,
        maxsize: int = 1000,
        max_delivery_attempts: int = 5,
        redelivery_delay: float = 0.5,
    ) -> None:
        self._queue: asyncio.Queue[Delivery] = asyncio.Queue(maxsize=maxsize)
        self._max_attempts = max(1, max_delivery_attempts)
        self._delay = redelivery_delay
        self._handler: Optional[InvoiceEventHandler] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False
        self.dead_letters: List[InvoiceCreatedEvent] = []

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def publish(self, event: InvoiceCreatedEvent) -> None:
        if self._closed:
            raise ChannelClosedError("invoice channel is stopped")
        # QueueFull propagates to the publisher
        self._queue.put_nowait(Delivery(event=event))

    async def start(self, handler: InvoiceEventHandler) -> None:
        if self.running:
            return
        self._closed = False
        self._handler = handler
        self._worker = asyncio.create_task(self._run(), name="invoice-channel-worker")
        logger.info("invoice_channel_started", backend="memory")

    async def stop(self) -> None:
        self._closed = True
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        logger.info("invoice_channel_stopped", backend="memory", pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every published event has been handled or dead-lettered."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            delivery = await self._queue.get()
            try:
                await self._deliver(delivery)
            finally:
                self._queue.task_done()

    async def _deliver(self, delivery: Delivery) -> None:
        assert self._handler is not None
        delivery.attempts += 1
        try:
            await self._handler(delivery.event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            event = delivery.event
            if delivery.attempts >= self._max_attempts:
                self.dead_letters.append(event)
                logger.error(
                    "invoice_event_dead_lettered",
                    event_id=event.event_id,
                    booking_id=event.booking_id,
                    attempts=delivery.attempts,
                    error=str(exc),
                )
                return
            logger.warning(
                "invoice_event_redelivery",
                event_id=event.event_id,
                booking_id=event.booking_id,
                attempt=delivery.attempts,
                error=str(exc),
            )
            if self._delay > 0:
                await asyncio.sleep(self._delay)
            # re-enqueued before task_done so join() keeps waiting
            self._queue.put_nowait(delivery)
