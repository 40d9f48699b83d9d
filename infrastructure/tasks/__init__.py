"""Celery side of the invoice pipeline.

Exposes the configured app (for ``celery -A infrastructure.tasks``) and the
dispatcher the Celery-backed invoice channel publishes through.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
