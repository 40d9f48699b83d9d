"""
MoMo e-wallet adapter (API v2, captureWallet / payWithMethod).

Create requests and IPN callbacks are signed with HMAC-SHA256 over
``key=value`` pairs joined by ``&`` in the field order MoMo documents.
"""
from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    PaymentRequest,
    PaymentResponse,
    PaymentVerification,
    WebhookCallback,
)
from core.settings import MomoSettings, payment_settings
from domain.common.exceptions import AuthenticityError, MalformedCallbackError
from domain.payment import PaymentProvider, PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError


_CREATE_SIGNATURE_FIELDS = (
    "accessKey", "amount", "extraData", "ipnUrl", "orderId", "orderInfo",
    "partnerCode", "redirectUrl", "requestId", "requestType",
)
_IPN_SIGNATURE_FIELDS = (
    "accessKey", "amount", "extraData", "message", "orderId", "orderInfo",
    "orderType", "partnerCode", "payType", "requestId", "responseTime",
    "resultCode", "transId",
)


def _raw_signature(fields: tuple[str, ...], values: dict[str, Any]) -> str:
    return "&".join(f"{name}={'' if values.get(name) is None else values.get(name)}" for name in fields)


class MomoClient(BasePaymentClient):
    provider = PaymentProvider.MOMO

    def __init__(self, config: Optional[MomoSettings] = None):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        self.config = config or payment_settings.momo
        if not (self.config.partner_code and self.config.access_key and self.config.secret_key):
            raise RuntimeError("PAYMENT__MOMO__PARTNER_CODE / ACCESS_KEY / SECRET_KEY not configured")

    def _sign(self, fields: tuple[str, ...], values: dict[str, Any]) -> str:
        return self._hmac_hex(self.config.secret_key, _raw_signature(fields, values))

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:  # type: ignore[override]
        if request.currency != "VND":
            raise PaymentProviderError(
                f"MoMo only settles VND, got {request.currency}",
                provider=self.provider.value,
            )
        body: dict[str, Any] = {
            "partnerCode": self.config.partner_code,
            "accessKey": self.config.access_key,
            "requestId": uuid.uuid4().hex,
            "amount": int(request.amount),
            "orderId": request.order_id,
            "orderInfo": request.description or f"Booking {request.booking_id}",
            "redirectUrl": request.return_url or self.config.redirect_url,
            "ipnUrl": self.config.ipn_url,
            "requestType": self.config.request_type,
            "extraData": json.dumps(request.metadata, separators=(",", ":")) if request.metadata else "",
            "lang": self.config.lang,
        }
        body["signature"] = self._sign(_CREATE_SIGNATURE_FIELDS, body)
        # accessKey is part of the signature only
        body.pop("accessKey")

        async def _post():
            async with self.client() as http:
                resp = await http.post(self.config.endpoint, json=body)
                resp.raise_for_status()
                return resp.json()

        try:
            data = await self._retry(_post)
        except httpx.HTTPStatusError as exc:
            raise PaymentProviderError(
                f"MoMo create failed with HTTP {exc.response.status_code}",
                provider=self.provider.value,
            ) from exc

        result_code = data.get("resultCode")
        self._log("payment_create_result", transaction_id=request.order_id, result_code=result_code)
        if result_code != 0:
            return PaymentResponse(
                success=False,
                error=data.get("message") or "Payment creation failed",
                metadata={"result_code": result_code},
            )
        return PaymentResponse(
            success=True,
            transaction_id=str(data.get("orderId") or request.order_id),
            payment_url=data.get("payUrl"),
            metadata={"deeplink": data.get("deeplink"), "qr_code_url": data.get("qrCodeUrl")},
        )

    async def verify_payment(self, callback: WebhookCallback) -> PaymentVerification:  # type: ignore[override]
        payload = dict(callback.data)
        values = {**payload, "accessKey": self.config.access_key}
        self._check_signature(self._sign(_IPN_SIGNATURE_FIELDS, values), payload.get("signature"))

        if payload.get("partnerCode") != self.config.partner_code:
            raise AuthenticityError("Callback addressed to another partner", provider=self.provider.value)
        transaction_id = str(payload.get("orderId") or "")
        if not transaction_id or payload.get("resultCode") is None:
            raise MalformedCallbackError("MoMo callback is missing orderId/resultCode", provider=self.provider.value)
        self._check_transaction(callback, transaction_id)

        try:
            amount = Decimal(str(payload.get("amount")))
        except InvalidOperation as exc:
            raise MalformedCallbackError("Invalid amount", provider=self.provider.value) from exc

        status = self._map_status(payload["resultCode"])
        paid_at = None
        if status == PaymentStatus.PAID and payload.get("responseTime"):
            paid_at = datetime.fromtimestamp(int(payload["responseTime"]) / 1000, tz=timezone.utc)

        self._log(
            "payment_callback_verified",
            transaction_id=transaction_id,
            result_code=payload["resultCode"],
            status=status.value,
        )
        return PaymentVerification(
            success=status == PaymentStatus.PAID,
            transaction_id=transaction_id,
            amount=amount,
            status=status,
            raw=payload,
            payment_method=payload.get("payType") or "MOMO",
            paid_at=paid_at,
        )
