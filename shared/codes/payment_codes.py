"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    UNKNOWN_PROVIDER = 60005
    MALFORMED_CALLBACK = 60006

    # Verification pipeline (61xxx)
    AMOUNT_MISMATCH = 61000
    PAYMENT_RECORD_NOT_FOUND = 61001
    CALLBACK_IN_FLIGHT = 61002
    INVALID_STATE_TRANSITION = 61003
    STORAGE_CONFLICT = 61004
    EVENT_PUBLISH_FAILED = 61005
    BOOKING_NOT_FOUND = 61006

    # Invoices (62xxx)
    INVOICE_NOT_FOUND = 62000
    INVOICE_ALREADY_EXISTS = 62001
    RENDER_FAILED = 62002


# Provider -> canonical status vocabulary (PAID / FAILED / PENDING).
# Codes missing from a provider table map to PENDING.
PROVIDER_STATUS_TO_CANONICAL = {
    "STRIPE": {
        "checkout.session.completed": "PAID",
        "checkout.session.async_payment_succeeded": "PAID",
        "payment_intent.succeeded": "PAID",
        "checkout.session.async_payment_failed": "FAILED",
        "checkout.session.expired": "FAILED",
        "payment_intent.payment_failed": "FAILED",
        "payment_intent.canceled": "FAILED",
        "payment_intent.processing": "PENDING",
    },
    "MOMO": {
        # resultCode
        "0": "PAID",
        "9000": "PENDING",   # authorized, awaiting capture
        "7000": "PENDING",   # processing
        "7002": "PENDING",
        "1000": "PENDING",   # waiting for user confirmation
        "1001": "FAILED",    # insufficient funds
        "1003": "FAILED",    # cancelled
        "1004": "FAILED",
        "1005": "FAILED",    # expired
        "1006": "FAILED",    # declined by user
        "1017": "FAILED",
        "1026": "FAILED",
        "1080": "FAILED",
        "4001": "FAILED",
        "4100": "FAILED",
    },
    "VNPAY": {
        # vnp_ResponseCode
        "00": "PAID",
        "07": "PENDING",     # suspicious, held for review
        "09": "FAILED",
        "10": "FAILED",
        "11": "FAILED",      # timed out
        "12": "FAILED",
        "13": "FAILED",
        "24": "FAILED",      # cancelled by customer
        "51": "FAILED",
        "65": "FAILED",
        "75": "FAILED",
        "79": "FAILED",
    },
}
