"""
Redis-backed processed-webhook ledger.

Event ids are stored with a TTL covering the provider's redelivery window.
Redis errors propagate; the webhook processor logs them and falls back to
state-based deduplication.
"""
from __future__ import annotations

from redis import asyncio as aioredis

from .redis_client import namespaced

KEY_PREFIX = "webhook:event"


class RedisWebhookEventLedger:
    def __init__(self, client: aioredis.Redis, *, ttl_seconds: int) -> None:
        self._client = client
        self._ttl = ttl_seconds

    @staticmethod
    def _key(event_id: str) -> str:
        return namespaced(f"{KEY_PREFIX}:{event_id}")

    async def seen(self, event_id: str) -> bool:
        return bool(await self._client.exists(self._key(event_id)))

    async def remember(self, event_id: str) -> None:
        # NX keeps the original TTL when a redelivery races the first delivery
        await self._client.set(self._key(event_id), "1", ex=self._ttl, nx=True)
