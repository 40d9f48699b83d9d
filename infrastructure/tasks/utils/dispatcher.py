"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app

ISSUE_INVOICE_TASK = "invoices.issue"
RETRY_PENDING_PDF_TASK = "invoices.retry_pending_pdf"


class TaskDispatcher:
    """Internal facade used by the invoice channel to schedule tasks."""

    def issue_invoice(self, payload: Dict[str, Any]) -> None:
        """Hand a serialized InvoiceCreatedEvent to the invoice workers."""
        celery_app.send_task(ISSUE_INVOICE_TASK, kwargs={"payload": payload})

    def retry_pending_pdf(self, older_than_seconds: int) -> None:
        celery_app.send_task(RETRY_PENDING_PDF_TASK, kwargs={"older_than_seconds": older_than_seconds})

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
