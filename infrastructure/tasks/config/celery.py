"""Celery application for invoice issuance workers."""
from __future__ import annotations

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE


# Modules holding @shared_task definitions; workers import them on boot.
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)

# Redis redelivers an unacked message after this long. It has to outlast the
# longest issue_invoice run (render + upload) or events get handled twice.
VISIBILITY_TIMEOUT_SECONDS = 3600


celery_app = Celery("booking_payments")

celery_app.conf.update(
    # Dedicated broker settings win; the shared Redis instance is the fallback.
    broker_url=settings.CELERY_BROKER_URL or settings.redis.url,
    result_backend=settings.CELERY_RESULT_BACKEND or settings.redis.url,
    broker_transport_options={"visibility_timeout": VISIBILITY_TIMEOUT_SECONDS},
    # Events cross the broker as InvoiceCreatedEvent.to_payload() dicts.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after the handler returns so a crashed worker redelivers.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_soft_time_limit=int(settings.invoice.renderer_timeout_seconds * 6),
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    task_queues=(
        Queue("invoices"),
        Queue("default"),
    ),
    task_routes={
        "invoices.*": {"queue": "invoices"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

environment = getattr(settings, "ENVIRONMENT", "production") or "production"
if environment.lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        result_backend=sender.conf.result_backend,
        eager=bool(sender.conf.task_always_eager),
    )
