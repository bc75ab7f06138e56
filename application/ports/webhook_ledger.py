"""
Processed webhook event ledger port.

Records provider event ids after they have been applied so that redelivered
events short-circuit before touching the order store.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class WebhookEventLedger(Protocol):
    async def seen(self, event_id: str) -> bool: ...

    async def remember(self, event_id: str) -> None: ...
