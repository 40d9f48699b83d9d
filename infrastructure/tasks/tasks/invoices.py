"""Invoice issuance Celery tasks.

Workers rebuild only the listener side of the pipeline: a UoW factory on
the configured database plus renderer and artifact storage.
"""
from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Dict, Optional

from celery import shared_task

from core.config import settings
from core.logging_config import get_logger
from domain.invoice import InvoiceCreatedEvent
from ..utils.base_task import BaseTask

logger = get_logger(__name__)


async def _with_listener(work):
    # imported here so registering tasks does not build engines
    from infrastructure.bootstrap import build_invoice_listener, build_uow_factory

    uow_factory, engine = build_uow_factory(settings)
    listener = build_invoice_listener(settings, uow_factory)
    try:
        return await work(listener)
    finally:
        if engine is not None:
            await engine.dispose()


@shared_task(
    name="invoices.issue",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": max(0, settings.channel.max_delivery_attempts - 1)},
)
def issue_invoice(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Consume one InvoiceCreatedEvent; duplicates are discarded by the listener."""
    event = InvoiceCreatedEvent.from_payload(payload)
    invoice = asyncio.run(_with_listener(lambda listener: listener.handle(event)))
    if invoice is None:
        return None
    return {"invoice_id": invoice.id, "status": invoice.status.value}


@shared_task(name="invoices.retry_pending_pdf", bind=True, base=BaseTask)
def retry_pending_pdf(self, older_than_seconds: int = 300) -> Dict[str, int]:
    older_than = timedelta(seconds=older_than_seconds)
    issued = asyncio.run(_with_listener(lambda listener: listener.retry_pending(older_than)))
    logger.info("invoice_sweep_task_finished", issued=issued, older_than_seconds=older_than_seconds)
    return {"issued": issued}
