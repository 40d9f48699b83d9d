"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings; keys are read as PAYMENT__<GROUP>__<FIELD>,
e.g. PAYMENT__VNPAY__HASH_SECRET.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    success_url: str = "https://example.com/payments/stripe/success"
    cancel_url: str = "https://example.com/payments/stripe/cancel"


class MomoSettings(BaseModel):
    partner_code: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    endpoint: str = "https://test-payment.momo.vn/v2/gateway/api/create"
    redirect_url: str = "https://example.com/payments/momo/return"
    ipn_url: str = "https://example.com/api/v1/payments/webhooks/momo"
    request_type: str = "captureWallet"
    lang: str = "vi"


class VnpaySettings(BaseModel):
    tmn_code: Optional[str] = None
    hash_secret: Optional[str] = None
    payment_url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    return_url: str = "https://example.com/payments/vnpay/return"
    version: str = "2.1.0"
    locale: str = "vn"
    order_type: str = "other"
    ip_addr: str = "127.0.0.1"
    expire_minutes: int = 15


class PaymentSettings(BaseSettings):
    # providers registered at startup; a provider without credentials is skipped
    enabled_providers: list[str] = Field(default_factory=lambda: ["stripe", "momo", "vnpay"])
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    momo: MomoSettings = Field(default_factory=MomoSettings)
    vnpay: VnpaySettings = Field(default_factory=VnpaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
