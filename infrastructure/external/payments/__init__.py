"""
Factory for the payment gateway registry.
"""
from __future__ import annotations

from typing import Optional

from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.payment import PaymentProvider
from .registry import GatewayRegistry


logger = get_logger(__name__)


def _build_strategy(provider: PaymentProvider, settings: PaymentSettings):
    if provider == PaymentProvider.STRIPE:
        from .stripe_client import StripeClient
        return StripeClient(settings.stripe)
    if provider == PaymentProvider.MOMO:
        from .momo_client import MomoClient
        return MomoClient(settings.momo)
    if provider == PaymentProvider.VNPAY:
        from .vnpay_client import VnpayClient
        return VnpayClient(settings.vnpay)
    raise ValueError(f"Unsupported payment provider: {provider}")


def build_gateway_registry(settings: Optional[PaymentSettings] = None, *, freeze: bool = True) -> GatewayRegistry:
    """Register every enabled provider that has credentials configured."""
    settings = settings or payment_settings
    registry = GatewayRegistry()
    for name in settings.enabled_providers:
        provider = PaymentProvider.parse(name)
        try:
            strategy = _build_strategy(provider, settings)
        except RuntimeError as exc:
            logger.warning("payment_provider_skipped", provider=provider.value, reason=str(exc))
            continue
        registry.register(provider, strategy)
    return registry.freeze() if freeze else registry


__all__ = ["GatewayRegistry", "build_gateway_registry"]
