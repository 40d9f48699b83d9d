"""
Business codes shared across layers (Domain/Core/API).

Generic codes live here; payment and invoice codes are in
`shared.codes.payment_codes`. Both ranges map to HTTP statuses in
`core.exceptions`.
"""
from enum import IntEnum

from .payment_codes import PaymentCode


class BusinessCode(IntEnum):
    """Generic status codes carried in the response envelope."""

    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # Resource errors (2xxxx)
    NOT_FOUND = 20006
    CONFLICT = 20007

    # Access errors (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx); providers retry webhooks on these
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode", "PaymentCode"]
