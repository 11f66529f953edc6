"""Redis-backed queue of notifications for offline users."""
from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as aioredis

from chat_relay.infrastructure.bus.serializer import (
    deserialize_notification,
    serialize_notification,
)

logger = logging.getLogger(__name__)


class RedisNotificationQueue:
    """Implements application.ports.notifications.NotificationQueue.

    One list per user, oldest entry first, capped and expiring so that a user
    who never reconnects does not grow the list forever.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        prefix: str = "chat:notifications",
        max_items: int = 100,
        ttl_seconds: int = 7 * 24 * 3600,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._max_items = max_items
        self._ttl_seconds = ttl_seconds

    def _key(self, user_id: int) -> str:
        return f"{self._prefix}:{user_id}"

    async def enqueue(self, user_id: int, notification: dict[str, Any]) -> None:
        key = self._key(user_id)
        raw = serialize_notification(notification)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.rpush(key, raw)
            pipe.ltrim(key, -self._max_items, -1)
            pipe.expire(key, self._ttl_seconds)
            await pipe.execute()

    async def drain(self, user_id: int) -> list[dict[str, Any]]:
        key = self._key(user_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lrange(key, 0, -1)
            pipe.delete(key)
            raw_items, _deleted = await pipe.execute()

        notifications: list[dict[str, Any]] = []
        for raw in raw_items:
            try:
                data = deserialize_notification(raw)
            except ValueError:
                logger.warning("Dropping malformed queued notification for user %s", user_id)
                continue
            notifications.append(data)
        return notifications
