from __future__ import annotations

from typing import Any, Protocol


class NotificationQueue(Protocol):
    """Per-user queue of notifications for users that are not connected."""

    async def enqueue(self, user_id: int, notification: dict[str, Any]) -> None: ...

    async def drain(self, user_id: int) -> list[dict[str, Any]]:
        """Remove and return everything queued for *user_id*, oldest first."""
        ...
