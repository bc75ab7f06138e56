"""
Celery-backed Notifier adapter.

Publishing runs in a worker thread because the broker client is blocking;
failures are logged and swallowed so a notification never fails a payment
state transition.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from core.logging_config import get_logger
from domain.payment.events import NotificationKind
from .utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryNotifier:
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def notify(self, order_id: str, kind: NotificationKind) -> None:
        try:
            await asyncio.to_thread(self._dispatcher.send_order_payment_notification, order_id, kind.value)
            logger.info("notification_enqueued", order_id=order_id, kind=kind.value)
        except Exception as exc:
            logger.error("notification_enqueue_failed", order_id=order_id, kind=kind.value, error=str(exc))
