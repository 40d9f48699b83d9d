"""Celery beat schedule.

The sweep re-renders invoices stuck in PENDING_PDF longer than the grace
period; running it at the same cadence keeps the worst-case delay at two
grace periods.
"""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "invoices-retry-pending-pdf": {
        "task": "invoices.retry_pending_pdf",
        "schedule": float(settings.invoice.pdf_grace_period_seconds),
        "kwargs": {"older_than_seconds": settings.invoice.pdf_grace_period_seconds},
    },
}
