"""Invoice event channel implementations."""
from typing import Optional

from core.config import ChannelSettings

from .exceptions import ChannelClosedError, MessagingError, PublishError
from .memory import InMemoryInvoiceChannel


def create_invoice_channel(config: ChannelSettings, *, dispatcher: Optional[object] = None):
    if config.backend == "celery":
        # imported lazily so the memory backend does not configure a Celery app
        from .celery_channel import CeleryInvoiceChannel

        return CeleryInvoiceChannel(dispatcher)  # type: ignore[arg-type]
    return InMemoryInvoiceChannel(
        maxsize=config.queue_maxsize,
        max_delivery_attempts=config.max_delivery_attempts,
        redelivery_delay=config.redelivery_delay_seconds,
    )


__all__ = [
    "ChannelClosedError",
    "InMemoryInvoiceChannel",
    "MessagingError",
    "PublishError",
    "create_invoice_channel",
]
