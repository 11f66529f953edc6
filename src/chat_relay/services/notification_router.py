"""Per-recipient fan-out of new messages: live event or queued notification."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Collection

from chat_relay.application.ports.notifications import NotificationQueue
from chat_relay.application.ports.realtime import ConnectionHandle
from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.content import content_to_dict
from chat_relay.infrastructure.ws.protocol import (
    MESSAGE_NEW,
    MESSAGE_SENT,
    NOTIFICATION_NEW,
    encode,
)
from chat_relay.infrastructure.ws.registry import PresenceRegistry

logger = logging.getLogger(__name__)


def message_payload(message: Message) -> dict[str, Any]:
    """JSON-ready view of a message as sent over the socket."""
    forwarded = message.forwarded_from
    return {
        "id": str(message.id),
        "conversation_id": str(message.conversation_id),
        "sender_id": message.sender_id,
        "type": message.type.value,
        "content": None if message.is_deleted else content_to_dict(message.content),
        "display_content": message.display_content,
        "reply_to_id": str(message.reply_to_id) if message.reply_to_id else None,
        "forwarded_from": {
            "message_id": str(forwarded.message_id),
            "user_id": forwarded.user_id,
        } if forwarded else None,
        "client_id": message.client_id,
        "reactions": message.reaction_summary(),
        "is_edited": message.is_edited,
        "is_deleted": message.is_deleted,
        "created_at": message.created_at.isoformat(),
    }


def notification_payload(message: Message, sender_label: str) -> dict[str, Any]:
    return {
        "type": "message",
        "title": sender_label,
        "message": message.display_content,
        "conversation_id": str(message.conversation_id),
        "message_id": str(message.id),
    }


class NotificationRouter:
    """Decides, per participant, between a live push and a queued notification.

    Every delivery attempt is independent: a failing connection or queue
    write is logged and never affects the other recipients or the caller.
    """

    def __init__(self, registry: PresenceRegistry, queue: NotificationQueue) -> None:
        self._registry = registry
        self._queue = queue

    @property
    def registry(self) -> PresenceRegistry:
        return self._registry

    async def dispatch_new_message(
        self,
        conversation: Conversation,
        message: Message,
        *,
        sender_label: str,
        muted: Collection[int] = (),
        origin: ConnectionHandle | None = None,
    ) -> None:
        payload = message_payload(message)
        new_frame = encode(MESSAGE_NEW, {"message": payload})
        notice = notification_payload(message, sender_label)
        notice_frame = encode(NOTIFICATION_NEW, notice)

        live: list[ConnectionHandle] = []
        notified: list[ConnectionHandle] = []
        offline: list[int] = []
        for user_id in conversation.recipients_of(message.sender_id):
            handle = self._registry.handle_for(user_id)
            if handle is None:
                if user_id not in muted:
                    offline.append(user_id)
            elif self._registry.in_room(handle, conversation.id):
                live.append(handle)
            elif user_id not in muted:
                notified.append(handle)

        sender_handle = origin or self._registry.handle_for(message.sender_id)
        confirmation = encode(
            MESSAGE_SENT,
            {"message": payload, "client_id": message.client_id},
        )

        await asyncio.gather(
            self._registry.deliver(live, new_frame),
            self._registry.deliver(notified, notice_frame),
            self._confirm(sender_handle, confirmation),
            *(self._enqueue(user_id, notice) for user_id in offline),
        )
        logger.debug(
            "Message %s: live=%d notified=%d queued=%d",
            message.id, len(live), len(notified), len(offline),
        )

    async def publish(
        self,
        conversation: Conversation,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude: ConnectionHandle | None = None,
    ) -> int:
        """Inform the active participants in the conversation room of a change."""
        return await self._registry.broadcast_to_room(
            conversation.id, event_type, data,
            exclude=exclude, members=conversation.member_ids,
        )

    async def _confirm(self, handle: ConnectionHandle | None, raw: str) -> None:
        if handle is not None:
            await self._registry.deliver([handle], raw)

    async def _enqueue(self, user_id: int, notification: dict[str, Any]) -> None:
        try:
            await self._queue.enqueue(user_id, notification)
        except Exception:
            logger.exception("Failed to queue notification for user %s", user_id)
