"""Connect/disconnect transitions: in-memory registry plus durable presence.

The two writes are not atomic. The durable write is best-effort and drift
is repaired by the presence reconciler.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from chat_relay.application.dto.principal import Principal
from chat_relay.application.ports.notifications import NotificationQueue
from chat_relay.application.ports.realtime import ConnectionHandle
from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.value_objects.enums import PresenceStatus
from chat_relay.infrastructure.ws.protocol import NOTIFICATION_NEW
from chat_relay.infrastructure.ws.registry import PresenceRegistry

logger = logging.getLogger(__name__)


async def connect(
    principal: Principal,
    handle: ConnectionHandle,
    registry: PresenceRegistry,
    queue: NotificationQueue,
    uow: UnitOfWork,
) -> None:
    user_id = principal.user_id
    replaced = await registry.register(user_id, handle)
    if replaced is not None:
        logger.info("User %s reconnected, previous connection replaced", user_id)

    status: PresenceStatus | None = None
    try:
        user = await uow.users.get_by_id(user_id)
        status = user.status if user else None
        await uow.users_w.set_presence(
            user_id,
            is_online=True,
            last_seen=datetime.now(timezone.utc),
            status=PresenceStatus.ONLINE if status in (None, PresenceStatus.OFFLINE) else None,
        )
        await uow.commit()
    except Exception:
        logger.exception("Durable presence write failed on connect for user %s", user_id)
        try:
            await uow.rollback()
        except Exception:
            logger.debug("Rollback failed", exc_info=True)

    if status is not PresenceStatus.INVISIBLE:
        await registry.broadcast_online(user_id)

    try:
        queued = await queue.drain(user_id)
    except Exception:
        logger.exception("Could not drain notifications for user %s", user_id)
        return
    for notification in queued:
        await registry.send(handle, NOTIFICATION_NEW, notification)
    if queued:
        logger.debug("Delivered %d queued notifications to user %s", len(queued), user_id)


async def disconnect(
    handle: ConnectionHandle,
    registry: PresenceRegistry,
    uow: UnitOfWork,
) -> int | None:
    """Returns the user id when this was the user's current connection."""
    user_id = await registry.unregister(handle)
    if user_id is None:
        return None

    try:
        await uow.users_w.set_presence(
            user_id,
            is_online=False,
            last_seen=datetime.now(timezone.utc),
            status=PresenceStatus.OFFLINE,
        )
        await uow.commit()
    except Exception:
        logger.exception("Durable presence write failed on disconnect for user %s", user_id)
        try:
            await uow.rollback()
        except Exception:
            logger.debug("Rollback failed", exc_info=True)

    await registry.broadcast_offline(user_id)
    return user_id
