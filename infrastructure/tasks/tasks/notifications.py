"""Purchaser-facing payment notifications"""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger
from domain.payment.events import NotificationKind

logger = get_logger(__name__)

ORDER_PAYMENT_TASK = "notifications.order_payment"

_SUBJECTS = {
    NotificationKind.ORDER_CONFIRMED: "Your order is confirmed",
    NotificationKind.PAYMENT_FAILED: "Your payment could not be processed",
    NotificationKind.REFUND_PROCESSED: "Your refund has been processed",
}


@shared_task(
    name=ORDER_PAYMENT_TASK,
    bind=True,
    base=BaseTask,
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_order_payment_notification(self, order_id: str, kind: str) -> dict:
    """Deliver the message for a payment state change of ``order_id``.

    Delivery channel (SMTP/ESP) is plugged in here; the task only needs the
    order id and the notification kind.
    """
    notification = NotificationKind(kind)
    subject = _SUBJECTS[notification]
    logger.info("order_payment_notification", order_id=order_id, kind=notification.value, subject=subject)
    return {"order_id": order_id, "kind": notification.value}
