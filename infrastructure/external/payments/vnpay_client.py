"""
VNPay hosted-checkout adapter.

Payment URLs and IPN callbacks are signed with HMAC-SHA512 over the
``vnp_*`` parameters sorted by name and form-encoded. VNPay amounts are sent
in minor units (VND x 100).
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urlencode

from application.dtos.payments import (
    PaymentRequest,
    PaymentResponse,
    PaymentVerification,
    WebhookCallback,
)
from core.settings import VnpaySettings, payment_settings
from domain.common.exceptions import AuthenticityError, MalformedCallbackError
from domain.payment import PaymentProvider, PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError


# VNPay timestamps are local Vietnam time
VN_TZ = timezone(timedelta(hours=7))
_DATE_FMT = "%Y%m%d%H%M%S"
_REQUIRED_FIELDS = ("vnp_TxnRef", "vnp_ResponseCode", "vnp_Amount")


class VnpayClient(BasePaymentClient):
    provider = PaymentProvider.VNPAY

    def __init__(self, config: Optional[VnpaySettings] = None):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        self.config = config or payment_settings.vnpay
        if not self.config.tmn_code or not self.config.hash_secret:
            raise RuntimeError("PAYMENT__VNPAY__TMN_CODE / PAYMENT__VNPAY__HASH_SECRET not configured")

    def _sign(self, params: dict[str, str]) -> str:
        query = urlencode(sorted(params.items()))
        return self._hmac_hex(self.config.hash_secret, query, hashlib.sha512)

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:  # type: ignore[override]
        if request.currency != "VND":
            raise PaymentProviderError(
                f"VNPay only settles VND, got {request.currency}",
                provider=self.provider.value,
            )
        now = datetime.now(VN_TZ)
        params = {
            "vnp_Version": self.config.version,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.config.tmn_code,
            "vnp_Amount": str(int(request.amount * 100)),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": request.order_id,
            "vnp_OrderInfo": request.description or f"Booking {request.booking_id}",
            "vnp_OrderType": self.config.order_type,
            "vnp_Locale": self.config.locale,
            "vnp_ReturnUrl": request.return_url or self.config.return_url,
            "vnp_IpAddr": self.config.ip_addr,
            "vnp_CreateDate": now.strftime(_DATE_FMT),
            "vnp_ExpireDate": (now + timedelta(minutes=self.config.expire_minutes)).strftime(_DATE_FMT),
        }
        query = urlencode(sorted(params.items()))
        secure_hash = self._sign(params)
        self._log("payment_url_built", transaction_id=request.order_id)
        return PaymentResponse(
            success=True,
            transaction_id=request.order_id,
            payment_url=f"{self.config.payment_url}?{query}&vnp_SecureHash={secure_hash}",
            metadata={"expire_at": params["vnp_ExpireDate"]},
        )

    async def verify_payment(self, callback: WebhookCallback) -> PaymentVerification:  # type: ignore[override]
        params = {k: str(v) for k, v in callback.data.items() if k.startswith("vnp_")}
        received = params.pop("vnp_SecureHash", None)
        params.pop("vnp_SecureHashType", None)
        self._check_signature(self._sign(params), received)

        if params.get("vnp_TmnCode") and params["vnp_TmnCode"] != self.config.tmn_code:
            raise AuthenticityError("Callback addressed to another merchant", provider=self.provider.value)
        missing = [f for f in _REQUIRED_FIELDS if not params.get(f)]
        if missing:
            raise MalformedCallbackError(
                "VNPay callback is missing required fields",
                provider=self.provider.value,
                details={"missing": missing},
            )
        transaction_id = params["vnp_TxnRef"]
        self._check_transaction(callback, transaction_id)

        try:
            amount = Decimal(params["vnp_Amount"]) / 100
        except InvalidOperation as exc:
            raise MalformedCallbackError("Invalid vnp_Amount", provider=self.provider.value) from exc

        status = self._map_status(params["vnp_ResponseCode"])
        # a successful response code still needs a settled transaction status
        tx_status = params.get("vnp_TransactionStatus")
        if status == PaymentStatus.PAID and tx_status and tx_status != "00":
            status = self._map_status(tx_status)

        paid_at = None
        if status == PaymentStatus.PAID and params.get("vnp_PayDate"):
            try:
                paid_at = datetime.strptime(params["vnp_PayDate"], _DATE_FMT).replace(tzinfo=VN_TZ)
            except ValueError:
                paid_at = None

        self._log(
            "payment_callback_verified",
            transaction_id=transaction_id,
            response_code=params["vnp_ResponseCode"],
            status=status.value,
        )
        return PaymentVerification(
            success=status == PaymentStatus.PAID,
            transaction_id=transaction_id,
            amount=amount,
            status=status,
            raw=dict(callback.data),
            payment_method=params.get("vnp_CardType") or params.get("vnp_BankCode") or "VNPAY",
            paid_at=paid_at,
        )
