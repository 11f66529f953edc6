from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.domain.entities.user import User
from chat_relay.domain.value_objects.enums import PresenceStatus
from chat_relay.infrastructure.db.mappers import user as mapper
from chat_relay.infrastructure.db.models.user import UserBlockModel, UserModel


class UserReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: int) -> User | None:
        stmt = (
            select(UserModel)
            .where(UserModel.id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def get_many(self, user_ids: list[int]) -> list[User]:
        if not user_ids:
            return []
        stmt = select(UserModel).where(UserModel.id.in_(user_ids)).order_by(UserModel.id)
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_online(self) -> list[User]:
        stmt = (
            select(UserModel)
            .where(
                UserModel.is_online.is_(True),
                UserModel.status != PresenceStatus.INVISIBLE.value,
            )
            .order_by(UserModel.display_name)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def online_ids(self) -> set[int]:
        result = await self._session.execute(
            select(UserModel.id).where(UserModel.is_online.is_(True))
        )
        return set(result.scalars().all())


class UserWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def set_presence(
        self,
        user_id: int,
        *,
        is_online: bool,
        last_seen: datetime,
        status: PresenceStatus | None = None,
    ) -> None:
        values: dict[str, Any] = {"is_online": is_online, "last_seen": last_seen}
        if status is not None:
            values["status"] = status.value
        await self._session.execute(
            update(UserModel).where(UserModel.id == user_id).values(**values)
        )

    async def set_status(
        self,
        user_id: int,
        status: PresenceStatus,
        status_message: str | None,
    ) -> None:
        values: dict[str, Any] = {"status": status.value}
        if status_message is not None:
            values["status_message"] = status_message
        await self._session.execute(
            update(UserModel).where(UserModel.id == user_id).values(**values)
        )

    async def block(self, user_id: int, target_id: int) -> None:
        stmt = (
            pg_insert(UserBlockModel)
            .values(blocker_id=user_id, blocked_id=target_id)
            .on_conflict_do_nothing(constraint="uq_user_block")
        )
        await self._session.execute(stmt)

    async def unblock(self, user_id: int, target_id: int) -> None:
        await self._session.execute(
            delete(UserBlockModel).where(
                UserBlockModel.blocker_id == user_id,
                UserBlockModel.blocked_id == target_id,
            )
        )
