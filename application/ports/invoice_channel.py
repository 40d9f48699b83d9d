"""Invoice event channel port (at-least-once delivery)."""
from __future__ import annotations

from typing import Awaitable, Callable, Protocol, runtime_checkable

from domain.invoice import InvoiceCreatedEvent

InvoiceEventHandler = Callable[[InvoiceCreatedEvent], Awaitable[None]]


@runtime_checkable
class InvoiceEventChannel(Protocol):
    async def publish(self, event: InvoiceCreatedEvent) -> None:
        """Hand the event to the channel; raise if it could not be accepted."""
        ...

    async def start(self, handler: InvoiceEventHandler) -> None: ...

    async def stop(self) -> None: ...
