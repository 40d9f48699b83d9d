"""
Payment strategy port (application/ports) exposing a replaceable protocol.

Application depends on these Protocols; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    PaymentRequest,
    PaymentResponse,
    PaymentVerification,
    WebhookCallback,
)
from domain.payment import PaymentProvider


@runtime_checkable
class PaymentStrategy(Protocol):
    """Per-provider capability: open a session, authenticate a callback.

    ``verify_payment`` must raise AuthenticityError on a bad signature and
    never report it as a status.
    """

    provider: PaymentProvider

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse: ...

    async def verify_payment(self, callback: WebhookCallback) -> PaymentVerification: ...

    def get_provider(self) -> PaymentProvider: ...


@runtime_checkable
class StrategyResolver(Protocol):
    def resolve(self, provider: str | PaymentProvider) -> PaymentStrategy: ...

    def providers(self) -> list[PaymentProvider]: ...
