"""
Provider-side failures raised by the payment strategies.

Signature failures are not here: strategies raise the domain AuthenticityError
so the verification pipeline relies on a single authenticity contract.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class _ProviderFailure(BusinessException):
    code: PaymentCode

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            code=self.code,
            message=message,
            error_type=type(self).__name__,
            details={"provider": provider, "provider_code": provider_code, **(details or {})},
        )
        self.provider = provider


class PaymentProviderError(_ProviderFailure):
    """The provider rejected the request (bad currency, declined create, 4xx)."""

    code = PaymentCode.PROVIDER_ERROR


class PaymentRecoverableError(_ProviderFailure):
    """Transport-level provider failure; the caller may retry later."""

    code = PaymentCode.PROVIDER_RECOVERABLE
