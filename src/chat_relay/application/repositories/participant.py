from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence
from uuid import UUID

from chat_relay.domain.entities.participant import Participant
from chat_relay.domain.value_objects.enums import ParticipantRole


class ParticipantWriter(Protocol):
    async def add(self, participant: Participant) -> None: ...

    async def reactivate(
        self,
        conversation_id: UUID,
        user_id: int,
        role: ParticipantRole,
        joined_at: datetime,
    ) -> None: ...

    async def deactivate(
        self, conversation_id: UUID, user_id: int, left_at: datetime,
    ) -> None: ...

    async def increment_unread(
        self, conversation_id: UUID, user_ids: Sequence[int], delta: int = 1,
    ) -> None:
        """Atomic per-row `unread = max(unread + delta, 0)`."""
        ...

    async def reset_unread(self, conversation_id: UUID, user_id: int) -> None: ...

    async def set_archived(
        self, conversation_id: UUID, user_id: int, at: datetime | None,
    ) -> None: ...

    async def set_muted(
        self,
        conversation_id: UUID,
        user_id: int,
        muted_at: datetime | None,
        muted_until: datetime | None,
    ) -> None: ...

    async def set_hidden(
        self, conversation_id: UUID, user_id: int, at: datetime | None,
    ) -> None: ...
