from __future__ import annotations

import logging
from dataclasses import replace

from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import NotFoundError, ValidationError
from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.entities.user import User
from chat_relay.domain.value_objects.enums import PresenceStatus
from chat_relay.infrastructure.ws.protocol import STATUS_UPDATED
from chat_relay.infrastructure.ws.registry import PresenceRegistry

logger = logging.getLogger(__name__)

STATUS_MESSAGE_MAX_LENGTH = 100


async def get_profile(user_id: int, uow: UnitOfWork) -> User:
    user = await uow.users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def list_online_users(uow: UnitOfWork) -> list[User]:
    return await uow.users.list_online()


async def update_status(
    principal: Principal,
    status: PresenceStatus,
    status_message: str | None,
    uow: UnitOfWork,
    registry: PresenceRegistry | None = None,
) -> User:
    """Persist the caller's status and tell every other connection about it.

    Going invisible is announced as `user:offline`.
    """
    if status_message is not None and len(status_message) > STATUS_MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Status message cannot exceed {STATUS_MESSAGE_MAX_LENGTH} characters"
        )
    user = await get_profile(principal.user_id, uow)
    await uow.users_w.set_status(principal.user_id, status, status_message)
    await uow.commit()

    updated = replace(
        user,
        status=status,
        status_message=status_message if status_message is not None else user.status_message,
    )
    if registry is not None:
        try:
            if status is PresenceStatus.INVISIBLE:
                await registry.broadcast_offline(principal.user_id)
            else:
                await registry.broadcast(
                    STATUS_UPDATED,
                    {
                        "user_id": principal.user_id,
                        "status": status.value,
                        "status_message": updated.status_message,
                    },
                    exclude=registry.handle_for(principal.user_id),
                )
        except Exception:
            logger.exception("Status broadcast failed for user %s", principal.user_id)
    return updated


async def block_user(principal: Principal, target_id: int, uow: UnitOfWork) -> None:
    if target_id == principal.user_id:
        raise ValidationError("Cannot block yourself")
    await get_profile(target_id, uow)
    await uow.users_w.block(principal.user_id, target_id)
    await uow.commit()


async def unblock_user(principal: Principal, target_id: int, uow: UnitOfWork) -> None:
    await get_profile(target_id, uow)
    await uow.users_w.unblock(principal.user_id, target_id)
    await uow.commit()
