"""Expose Celery configuration objects for convenient imports."""
from .celery import NOTIFICATION_QUEUE, celery_app

__all__ = ["celery_app", "NOTIFICATION_QUEUE"]
