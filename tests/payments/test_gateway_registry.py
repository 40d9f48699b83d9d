import pytest

from core.settings import PaymentSettings
from domain.common.exceptions import UnknownProviderError
from domain.payment import PaymentProvider
from infrastructure.external.payments import build_gateway_registry
from infrastructure.external.payments.momo_client import MomoClient
from infrastructure.external.payments.registry import GatewayRegistry
from infrastructure.external.payments.stripe_client import StripeClient
from infrastructure.external.payments.vnpay_client import VnpayClient

from conftest import FakeStrategy


def test_resolve_is_case_insensitive():
    registry = GatewayRegistry()
    strategy = FakeStrategy(PaymentProvider.VNPAY)
    registry.register("vnpay", strategy)
    registry.freeze()

    assert registry.resolve("VnPay") is strategy
    assert registry.resolve(PaymentProvider.VNPAY) is strategy
    assert registry.providers() == [PaymentProvider.VNPAY]


def test_unknown_provider():
    registry = GatewayRegistry().freeze()

    with pytest.raises(UnknownProviderError):
        registry.resolve("paypal")
    with pytest.raises(UnknownProviderError):
        registry.resolve("stripe")


def test_frozen_registry_rejects_registration():
    registry = GatewayRegistry().freeze()

    with pytest.raises(RuntimeError):
        registry.register("momo", FakeStrategy(PaymentProvider.MOMO))


def test_strategy_must_match_provider():
    registry = GatewayRegistry()

    with pytest.raises(ValueError):
        registry.register("stripe", FakeStrategy(PaymentProvider.MOMO))


def test_build_registry_from_settings():
    registry = build_gateway_registry()

    assert registry.frozen
    assert isinstance(registry.resolve("stripe"), StripeClient)
    assert isinstance(registry.resolve("momo"), MomoClient)
    assert isinstance(registry.resolve("vnpay"), VnpayClient)


def test_build_registry_skips_unconfigured_providers():
    config = PaymentSettings(enabled_providers=["vnpay", "momo"])
    config.momo.secret_key = None

    registry = build_gateway_registry(config)

    assert registry.providers() == [PaymentProvider.VNPAY]
