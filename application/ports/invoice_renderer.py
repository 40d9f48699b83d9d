"""Invoice PDF renderer port. Rendering itself lives outside this service."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class InvoiceRenderer(Protocol):
    async def render_invoice_pdf(self, snapshot: dict[str, Any]) -> bytes:
        """Return PDF bytes; raise RenderFailure on a recoverable error."""
        ...
