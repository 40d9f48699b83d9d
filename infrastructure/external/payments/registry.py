"""
Gateway registry: provider identifier -> payment strategy.

Populated once at startup and then frozen; lookups after freezing read an
immutable mapping and take no lock.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from application.ports.payment_gateway import PaymentStrategy
from core.logging_config import get_logger
from domain.common.exceptions import UnknownProviderError
from domain.payment import PaymentProvider


logger = get_logger(__name__)


class GatewayRegistry:
    def __init__(self) -> None:
        self._strategies: Mapping[PaymentProvider, PaymentStrategy] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, provider_id: str | PaymentProvider, strategy: PaymentStrategy) -> None:
        if self._frozen:
            raise RuntimeError("Gateway registry is frozen; register strategies at startup")
        provider = PaymentProvider.parse(provider_id)
        if strategy.get_provider() != provider:
            raise ValueError(
                f"Strategy for {strategy.get_provider().value} cannot be registered as {provider.value}"
            )
        strategies = dict(self._strategies)
        strategies[provider] = strategy
        self._strategies = strategies
        logger.info("payment_provider_registered", provider=provider.value)

    def freeze(self) -> "GatewayRegistry":
        self._strategies = MappingProxyType(dict(self._strategies))
        self._frozen = True
        return self

    def resolve(self, provider_id: str | PaymentProvider) -> PaymentStrategy:
        provider = PaymentProvider.parse(provider_id)
        strategy = self._strategies.get(provider)
        if strategy is None:
            raise UnknownProviderError(str(provider_id))
        return strategy

    def providers(self) -> list[PaymentProvider]:
        return list(self._strategies)

    async def aclose(self) -> None:
        for strategy in self._strategies.values():
            close = getattr(strategy, "aclose", None)
            if callable(close):
                await close()
