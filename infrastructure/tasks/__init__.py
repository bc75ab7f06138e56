"""Celery task infrastructure package.

Importing this module wires together the configured Celery app, the task
modules, the dispatcher facade and the Celery-backed payment notifier.
"""
from .config.celery import celery_app
from . import tasks  # noqa: F401 to register tasks with the app
from .utils.dispatcher import TaskDispatcher
from .notifier import CeleryNotifier

__all__ = ["celery_app", "TaskDispatcher", "CeleryNotifier"]
