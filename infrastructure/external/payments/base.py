"""
Base payment client implementing shared concerns: http, retry, signing, logging, mapping.

Concrete providers subclass and implement provider-specific logic.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    PaymentRequest,
    PaymentResponse,
    PaymentVerification,
    WebhookCallback,
)
from application.ports.payment_gateway import PaymentStrategy
from domain.common.exceptions import AuthenticityError
from domain.payment import PaymentProvider, PaymentStatus
from infrastructure.external.payments.exceptions import PaymentRecoverableError
from shared.codes.payment_codes import PROVIDER_STATUS_TO_CANONICAL


logger = get_logger(__name__)


class BasePaymentClient(PaymentStrategy):
    provider: PaymentProvider

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
                wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
                retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
                reraise=True,
            ):
                with attempt:
                    return await fn()
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise PaymentRecoverableError(str(exc) or type(exc).__name__, provider=self.provider.value) from exc

    def get_provider(self) -> PaymentProvider:
        return self.provider

    # Default implementations raise to force override where needed
    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:  # type: ignore[override]
        raise NotImplementedError

    async def verify_payment(self, callback: WebhookCallback) -> PaymentVerification:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: Any) -> PaymentStatus:
        mapping = PROVIDER_STATUS_TO_CANONICAL.get(self.provider.value, {})
        return PaymentStatus(mapping.get(str(provider_status), PaymentStatus.PENDING.value))

    @staticmethod
    def _hmac_hex(secret: str, data: str, digestmod=hashlib.sha256) -> str:
        return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), digestmod).hexdigest()

    def _check_signature(self, expected: str, received: Optional[str]) -> None:
        if not received or not hmac.compare_digest(expected.lower(), str(received).lower()):
            self._log("payment_signature_invalid")
            raise AuthenticityError("Invalid callback signature", provider=self.provider.value)

    def _check_transaction(self, callback: WebhookCallback, authenticated_id: str) -> None:
        """The signed transaction id is the only trusted one."""
        if callback.transaction_id != authenticated_id:
            raise AuthenticityError(
                "Callback transactionId does not match the signed payload",
                provider=self.provider.value,
                details={"transaction_id": callback.transaction_id},
            )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider.value,
            **kwargs,
        )
