from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from chat_relay.application.exceptions import ValidationError
from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.value_objects.enums import ConversationKind
from chat_relay.infrastructure.db.mappers import conversation as mapper
from chat_relay.infrastructure.db.models.conversation import ConversationModel, PinnedMessageModel
from chat_relay.infrastructure.db.models.participant import ParticipantModel
from chat_relay.infrastructure.db.repositories._cursor import decode_cursor


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(
        self,
        user_id: int,
        *,
        kind: ConversationKind | None = None,
        cursor: str | None = None,
        limit: int = 20,
    ) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == ConversationModel.id,
            )
            .where(
                ParticipantModel.user_id == user_id,
                ParticipantModel.is_active.is_(True),
                ParticipantModel.hidden_at.is_(None),
            )
            .order_by(ConversationModel.last_message_at.desc().nullslast(), ConversationModel.id)
            .limit(limit)
        )
        if kind is not None:
            stmt = stmt.where(ConversationModel.kind == kind.value)
        if cursor:
            try:
                ts, cid = decode_cursor(cursor)
            except ValueError as exc:
                raise ValidationError("Invalid cursor") from exc
            stmt = stmt.where(
                (ConversationModel.last_message_at < ts)
                | (
                    (ConversationModel.last_message_at == ts)
                    & (ConversationModel.id > cid)
                )
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def find_direct(self, user_a: int, user_b: int) -> Conversation | None:
        pa = aliased(ParticipantModel)
        pb = aliased(ParticipantModel)
        stmt = (
            select(ConversationModel)
            .join(pa, pa.conversation_id == ConversationModel.id)
            .join(pb, pb.conversation_id == ConversationModel.id)
            .where(
                ConversationModel.kind == ConversationKind.DIRECT.value,
                pa.user_id == user_a,
                pa.is_active.is_(True),
                pb.user_id == user_b,
                pb.is_active.is_(True),
            )
            .order_by(ConversationModel.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, conversation: Conversation) -> Conversation:
        model = mapper.entity_to_model(conversation)
        self._session.add(model)
        await self._session.flush()
        return conversation

    async def lock(self, conversation_id: UUID) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def rename(self, conversation_id: UUID, name: str | None) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(name=name)
        )
        await self._session.execute(stmt)

    async def set_last_message(
        self,
        conversation_id: UUID,
        message_id: UUID,
        at: datetime,
    ) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(last_message_id=message_id, last_message_at=at)
        )
        await self._session.execute(stmt)

    async def delete(self, conversation_id: UUID) -> None:
        # messages, participants and pins go with it via ON DELETE CASCADE
        await self._session.execute(
            delete(ConversationModel).where(ConversationModel.id == conversation_id)
        )

    async def pin_message(
        self,
        conversation_id: UUID,
        message_id: UUID,
        user_id: int,
        at: datetime,
    ) -> None:
        stmt = (
            pg_insert(PinnedMessageModel)
            .values(
                conversation_id=conversation_id,
                message_id=message_id,
                pinned_by=user_id,
                pinned_at=at,
            )
            .on_conflict_do_nothing(constraint="uq_pinned_message")
        )
        await self._session.execute(stmt)

    async def unpin_message(self, conversation_id: UUID, message_id: UUID) -> None:
        await self._session.execute(
            delete(PinnedMessageModel).where(
                PinnedMessageModel.conversation_id == conversation_id,
                PinnedMessageModel.message_id == message_id,
            )
        )
