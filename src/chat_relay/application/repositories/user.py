from __future__ import annotations

from datetime import datetime
from typing import Protocol

from chat_relay.domain.entities.user import User
from chat_relay.domain.value_objects.enums import PresenceStatus


class UserReader(Protocol):
    async def get_by_id(self, user_id: int) -> User | None: ...

    async def get_many(self, user_ids: list[int]) -> list[User]: ...

    async def list_online(self) -> list[User]: ...

    async def online_ids(self) -> set[int]:
        """Ids whose durable `is_online` flag is set."""
        ...


class UserWriter(Protocol):
    async def set_presence(
        self,
        user_id: int,
        *,
        is_online: bool,
        last_seen: datetime,
        status: PresenceStatus | None = None,
    ) -> None: ...

    async def set_status(
        self, user_id: int, status: PresenceStatus, status_message: str | None,
    ) -> None: ...

    async def block(self, user_id: int, target_id: int) -> None: ...

    async def unblock(self, user_id: int, target_id: int) -> None: ...
