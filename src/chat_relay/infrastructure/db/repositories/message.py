from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, exists, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.application.exceptions import TransientError
from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.enums import ReceiptKind
from chat_relay.infrastructure.db.mappers import message as mapper
from chat_relay.infrastructure.db.models.message import MessageModel, ReactionModel, ReceiptModel


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: UUID) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_page(
        self,
        conversation_id: UUID,
        *,
        before: datetime | None = None,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        if before is not None:
            stmt = stmt.where(MessageModel.created_at < before)
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def search(
        self,
        conversation_id: UUID,
        query: str,
        *,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.is_deleted.is_(False),
                MessageModel.content["text"].astext.icontains(query, autoescape=True),
            )
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def unread_ids(self, conversation_id: UUID, user_id: int) -> list[UUID]:
        already_read = exists().where(
            ReceiptModel.message_id == MessageModel.id,
            ReceiptModel.user_id == user_id,
            ReceiptModel.kind == ReceiptKind.READ.value,
        )
        stmt = select(MessageModel.id).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.is_deleted.is_(False),
            ~already_read,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        if result.scalar_one_or_none() is not None:
            return message, True

        # Same client_id already stored by this sender
        existing = await self._get_by_client_id(
            message.conversation_id, message.sender_id, message.client_id,
        )
        if existing is None:
            # Conflicting row vanished between the insert and the read
            raise TransientError("Idempotent insert conflicted with a missing row")
        return existing, False

    async def _get_by_client_id(
        self,
        conversation_id: UUID,
        sender_id: int,
        client_id: str | None,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_id == sender_id,
            MessageModel.client_id == client_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def create_many(self, messages: Sequence[Message]) -> None:
        if not messages:
            return
        await self._session.execute(
            insert(MessageModel),
            [mapper.entity_to_values(m) for m in messages],
        )

    async def edit_text(self, message_id: UUID, text: str, edited_at: datetime) -> None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(content={"text": text}, is_edited=True, edited_at=edited_at)
        )
        await self._session.execute(stmt)

    async def soft_delete(self, message_id: UUID, user_id: int, deleted_at: datetime) -> None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(is_deleted=True, deleted_at=deleted_at, deleted_by=user_id)
        )
        await self._session.execute(stmt)

    async def add_reaction(self, message_id: UUID, token: str, user_id: int) -> None:
        stmt = (
            pg_insert(ReactionModel)
            .values(message_id=message_id, token=token, user_id=user_id)
            .on_conflict_do_nothing(constraint="uq_reaction")
        )
        await self._session.execute(stmt)

    async def remove_reaction(self, message_id: UUID, token: str, user_id: int) -> None:
        # A token with no remaining rows simply stops existing.
        await self._session.execute(
            delete(ReactionModel).where(
                ReactionModel.message_id == message_id,
                ReactionModel.token == token,
                ReactionModel.user_id == user_id,
            )
        )

    async def add_receipts(
        self,
        message_ids: Sequence[UUID],
        user_id: int,
        kind: ReceiptKind,
        at: datetime,
    ) -> int:
        if not message_ids:
            return 0
        stmt = (
            pg_insert(ReceiptModel)
            .values([
                {"message_id": mid, "user_id": user_id, "kind": kind.value, "at": at}
                for mid in message_ids
            ])
            .on_conflict_do_nothing(constraint="uq_receipt")
            .returning(ReceiptModel.id)
        )
        result = await self._session.execute(stmt)
        return len(result.all())
