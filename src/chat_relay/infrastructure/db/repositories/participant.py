from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.domain.entities.participant import Participant
from chat_relay.domain.value_objects.enums import ParticipantRole
from chat_relay.infrastructure.db.mappers import participant as mapper
from chat_relay.infrastructure.db.models.participant import ParticipantModel


class ParticipantWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _update(self, conversation_id: UUID, user_id: int, **values: Any) -> None:
        stmt = (
            update(ParticipantModel)
            .where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
            )
            .values(**values)
        )
        await self._session.execute(stmt)

    async def add(self, participant: Participant) -> None:
        model = mapper.entity_to_model(participant)
        self._session.add(model)
        await self._session.flush()

    async def reactivate(
        self,
        conversation_id: UUID,
        user_id: int,
        role: ParticipantRole,
        joined_at: datetime,
    ) -> None:
        await self._update(
            conversation_id,
            user_id,
            role=role.value,
            joined_at=joined_at,
            left_at=None,
            is_active=True,
            hidden_at=None,
        )

    async def deactivate(self, conversation_id: UUID, user_id: int, left_at: datetime) -> None:
        await self._update(conversation_id, user_id, is_active=False, left_at=left_at)

    async def increment_unread(
        self,
        conversation_id: UUID,
        user_ids: Sequence[int],
        delta: int = 1,
    ) -> None:
        if not user_ids:
            return
        # Single UPDATE: the increment happens inside the store, no lost updates.
        stmt = (
            update(ParticipantModel)
            .where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id.in_(list(user_ids)),
            )
            .values(unread_count=func.greatest(ParticipantModel.unread_count + delta, 0))
        )
        await self._session.execute(stmt)

    async def reset_unread(self, conversation_id: UUID, user_id: int) -> None:
        await self._update(conversation_id, user_id, unread_count=0)

    async def set_archived(
        self, conversation_id: UUID, user_id: int, at: datetime | None,
    ) -> None:
        await self._update(conversation_id, user_id, archived_at=at)

    async def set_muted(
        self,
        conversation_id: UUID,
        user_id: int,
        muted_at: datetime | None,
        muted_until: datetime | None,
    ) -> None:
        await self._update(
            conversation_id, user_id, muted_at=muted_at, muted_until=muted_until,
        )

    async def set_hidden(
        self, conversation_id: UUID, user_id: int, at: datetime | None,
    ) -> None:
        await self._update(conversation_id, user_id, hidden_at=at)
