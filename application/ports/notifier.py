"""
Notifier port: fire-and-forget delivery of purchaser-facing payment messages.

Implementations log their own failures and never raise.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.payment.events import NotificationKind


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, order_id: str, kind: NotificationKind) -> None: ...
