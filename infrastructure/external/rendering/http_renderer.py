"""
HTTP client for the external invoice rendering service.

POSTs the invoice snapshot as JSON and expects ``application/pdf`` bytes
back. Transport errors and 5xx responses are retried; anything still failing
surfaces as RenderFailure so the invoice waits for the sweep.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.ports.invoice_renderer import InvoiceRenderer
from core.logging_config import get_logger
from domain.common.exceptions import RenderFailure


logger = get_logger(__name__)


class _RetryableStatus(Exception):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"renderer returned HTTP {status_code}")


class HttpInvoiceRenderer(InvoiceRenderer):
    def __init__(self, url: str, *, timeout: float = 10.0, max_retries: int = 2) -> None:
        self.url = url
        self._timeout = timeout
        self._max_retries = max_retries
        self._client: Optional[httpx.AsyncClient] = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _post(self, snapshot: dict[str, Any]) -> bytes:
        resp = await self._http().post(self.url, json=snapshot, headers={"Accept": "application/pdf"})
        if resp.status_code >= 500:
            raise _RetryableStatus(resp.status_code)
        resp.raise_for_status()
        return resp.content

    async def render_invoice_pdf(self, snapshot: dict[str, Any]) -> bytes:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries + 1),
                wait=wait_exponential(multiplier=0.2, min=0.1, max=2.0),
                retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
                reraise=True,
            ):
                with attempt:
                    pdf = await self._post(snapshot)
        except (httpx.HTTPError, _RetryableStatus) as exc:
            logger.warning("invoice_renderer_unavailable", invoice_id=snapshot.get("id"), error=str(exc))
            raise RenderFailure(f"Renderer call failed: {exc}", invoice_id=snapshot.get("id")) from exc

        if not pdf:
            raise RenderFailure("Renderer returned an empty document", invoice_id=snapshot.get("id"))
        return pdf
