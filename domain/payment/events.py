"""
Payment notification kinds.

Emitted by the application layer when a payment state transition should be
announced to the purchaser; delivery is handled by a Notifier adapter.
"""
from __future__ import annotations

from enum import Enum


class NotificationKind(str, Enum):
    ORDER_CONFIRMED = "order_confirmed"
    PAYMENT_FAILED = "payment_failed"
    REFUND_PROCESSED = "refund_processed"
