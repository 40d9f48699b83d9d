"""Task base class and the dispatcher facade."""
from .base_task import BaseTask
from .dispatcher import ISSUE_INVOICE_TASK, RETRY_PENDING_PDF_TASK, TaskDispatcher

__all__ = ["BaseTask", "TaskDispatcher", "ISSUE_INVOICE_TASK", "RETRY_PENDING_PDF_TASK"]
