"""
Payment specific codes and provider event tables.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Payment rule violations (2xxxx band shared with BusinessCode)
    INVALID_STATE = 20101
    REFUND_EXCEEDS_PAYMENT = 20102

    # Provider errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002
    AMOUNT_MISMATCH = 60005


# Provider event type -> internal webhook event kind
PROVIDER_EVENT_TO_KIND = {
    "stripe": {
        "payment_intent.succeeded": "intent.succeeded",
        "payment_intent.payment_failed": "intent.payment_failed",
        "payment_intent.canceled": "intent.canceled",
        "charge.refunded": "charge.refunded",
    },
}
