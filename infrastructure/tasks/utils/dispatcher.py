"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by infrastructure adapters to schedule tasks."""

    def send_order_payment_notification(self, order_id: str, kind: str) -> None:
        self.enqueue("notifications.order_payment", kwargs={"order_id": order_id, "kind": kind})

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Schedule a task by name.

        send_task never honours task_always_eager, so eager mode runs the
        registered task in-process instead of publishing to the broker.
        """
        if celery_app.conf.task_always_eager and task_name in celery_app.tasks:
            celery_app.tasks[task_name].apply(args=args or (), kwargs=kwargs or {})
            return
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
