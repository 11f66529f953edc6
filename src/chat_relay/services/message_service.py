"""Message pipeline: send, edit, delete, reactions, receipts and forward.

A send is durable once the message row is committed. Everything after that
(last-message pointer, unread counters, fan-out) is best-effort: failures are
logged and never undo or fail the send.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Sequence

from chat_relay.application.dto.message import SendMessageDTO
from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chat_relay.application.policies.permissions import accessible_conversation, role_of
from chat_relay.application.ports.realtime import ConnectionHandle
from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.entities.message import ForwardedFrom, Message, Receipt
from chat_relay.domain.value_objects.content import ContentError, TextContent, parse_content
from chat_relay.domain.value_objects.enums import (
    ConversationKind,
    MessageType,
    ParticipantRole,
    ReceiptKind,
)
from chat_relay.infrastructure.ws.protocol import (
    DELIVERY_RECEIPT,
    MESSAGE_DELETED,
    MESSAGE_EDITED,
    REACTION_ADDED,
    REACTION_REMOVED,
    READ_RECEIPT,
)
from chat_relay.services import conversation_service
from chat_relay.services.notification_router import NotificationRouter, message_payload

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _load_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation, _ = accessible_conversation(
        principal.user_id, await uow.conversations.get_by_id(conversation_id),
    )
    return conversation


async def _load_message(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> tuple[Message, Conversation]:
    message = await uow.messages.get_by_id(message_id)
    if message is None:
        raise NotFoundError("Message not found")
    conversation = await _load_conversation(message.conversation_id, principal, uow)
    return message, conversation


def _require_live(message: Message, action: str) -> None:
    if message.is_deleted:
        raise InvalidStateError(f"Cannot {action} a deleted message")


async def _check_not_blocked(
    conversation: Conversation,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    if conversation.kind is not ConversationKind.DIRECT:
        return
    sender = await uow.users.get_by_id(principal.user_id)
    if sender is None:
        return
    for other in conversation.recipients_of(principal.user_id):
        if sender.has_blocked(other) or sender.is_blocked_by(other):
            raise ForbiddenError("Messaging between these users is blocked")


async def _after_persist(
    uow: UnitOfWork,
    conversation: Conversation,
    message: Message,
) -> None:
    try:
        await conversation_service.set_last_message(
            uow, conversation.id, message.id, message.created_at,
        )
        await conversation_service.update_unread_count(
            uow, conversation.id, conversation.recipients_of(message.sender_id),
        )
        await uow.commit()
    except Exception:
        logger.exception(
            "Post-send update failed for message %s in %s", message.id, conversation.id,
        )
        try:
            await uow.rollback()
        except Exception:
            logger.debug("Rollback failed", exc_info=True)


async def _fan_out(
    uow: UnitOfWork,
    router: NotificationRouter | None,
    conversation: Conversation,
    message: Message,
    principal: Principal,
    origin: ConnectionHandle | None,
) -> None:
    if router is None:
        return
    try:
        muted = await conversation_service.muted_recipients(
            uow, conversation, conversation.recipients_of(message.sender_id),
        )
        await router.dispatch_new_message(
            conversation,
            message,
            sender_label=principal.label,
            muted=muted,
            origin=origin,
        )
    except Exception:
        logger.exception("Fan-out failed for message %s", message.id)


async def _publish(
    router: NotificationRouter | None,
    conversation: Conversation,
    event_type: str,
    data: dict[str, Any],
) -> None:
    if router is None:
        return
    try:
        await router.publish(conversation, event_type, data)
    except Exception:
        logger.exception("Failed to publish %s to %s", event_type, conversation.id)


async def send_message(
    principal: Principal,
    dto: SendMessageDTO,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
    *,
    origin: ConnectionHandle | None = None,
    max_text_length: int = 5000,
) -> tuple[Message, bool]:
    """Persist and fan out a new message.

    Returns (message, created). A repeated `client_id` from the same sender
    returns the original message with created=False and does nothing else.
    """
    conversation = await _load_conversation(dto.conversation_id, principal, uow)
    await _check_not_blocked(conversation, principal, uow)

    try:
        content = parse_content(dto.type, dto.content, max_text_length=max_text_length)
    except ContentError as exc:
        raise ValidationError(str(exc)) from exc

    if dto.reply_to_id is not None:
        reply_to = await uow.messages.get_by_id(dto.reply_to_id)
        if reply_to is None or reply_to.conversation_id != conversation.id:
            raise NotFoundError("Reply target not found")

    message = Message(
        id=uuid.uuid4(),
        conversation_id=conversation.id,
        sender_id=principal.user_id,
        type=dto.type,
        content=content,
        created_at=_now(),
        reply_to_id=dto.reply_to_id,
        client_id=dto.client_id,
    )
    message, created = await uow.messages_w.create_if_not_exists(message)
    if not created:
        return message, False
    await uow.commit()

    await _after_persist(uow, conversation, message)
    await _fan_out(uow, router, conversation, message, principal, origin)
    return message, True


async def edit_message(
    message_id: uuid.UUID,
    principal: Principal,
    text: str,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
    *,
    max_text_length: int = 5000,
) -> Message:
    message, conversation = await _load_message(message_id, principal, uow)
    _require_live(message, "edit")
    if message.sender_id != principal.user_id:
        raise ForbiddenError("Only the sender can edit this message")
    if message.type is not MessageType.TEXT:
        raise InvalidStateError("Only text messages can be edited")

    try:
        content = parse_content(MessageType.TEXT, text, max_text_length=max_text_length)
    except ContentError as exc:
        raise ValidationError(str(exc)) from exc
    if not isinstance(content, TextContent):
        raise ValidationError("Edited content must be text")

    now = _now()
    await uow.messages_w.edit_text(message.id, content.text, now)
    await uow.commit()

    edited = replace(message, content=content, is_edited=True, edited_at=now)
    await _publish(
        router, conversation, MESSAGE_EDITED, {"message": message_payload(edited)},
    )
    return edited


async def delete_message(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> Message:
    """Soft-delete. Allowed for the sender and for conversation admins."""
    message, conversation = await _load_message(message_id, principal, uow)
    _require_live(message, "delete")
    if (
        message.sender_id != principal.user_id
        and role_of(conversation, principal.user_id) is not ParticipantRole.ADMIN
    ):
        raise ForbiddenError("Only the sender or an admin can delete this message")

    now = _now()
    await uow.messages_w.soft_delete(message.id, principal.user_id, now)
    await uow.commit()

    deleted = replace(
        message, is_deleted=True, deleted_at=now, deleted_by=principal.user_id,
    )
    await _publish(
        router,
        conversation,
        MESSAGE_DELETED,
        {
            "message_id": str(message.id),
            "conversation_id": str(message.conversation_id),
            "deleted_by": principal.user_id,
        },
    )
    return deleted


def _validate_token(token: str) -> str:
    if not isinstance(token, str) or not token.strip():
        raise ValidationError("Reaction is required")
    return token


async def add_reaction(
    message_id: uuid.UUID,
    principal: Principal,
    token: str,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> Message:
    token = _validate_token(token)
    message, conversation = await _load_message(message_id, principal, uow)
    _require_live(message, "react to")
    if message.has_reacted(token, principal.user_id):
        return message

    await uow.messages_w.add_reaction(message.id, token, principal.user_id)
    await uow.commit()

    reactions = dict(message.reactions)
    reactions[token] = reactions.get(token, frozenset()) | {principal.user_id}
    updated = replace(message, reactions=reactions)
    await _publish(
        router,
        conversation,
        REACTION_ADDED,
        {
            "message_id": str(message.id),
            "conversation_id": str(message.conversation_id),
            "user_id": principal.user_id,
            "reaction": token,
            "reactions": updated.reaction_summary(),
        },
    )
    return updated


async def remove_reaction(
    message_id: uuid.UUID,
    principal: Principal,
    token: str,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> Message:
    token = _validate_token(token)
    message, conversation = await _load_message(message_id, principal, uow)
    _require_live(message, "react to")
    if not message.has_reacted(token, principal.user_id):
        return message

    await uow.messages_w.remove_reaction(message.id, token, principal.user_id)
    await uow.commit()

    reactions = dict(message.reactions)
    remaining = reactions.pop(token) - {principal.user_id}
    if remaining:
        reactions[token] = remaining
    updated = replace(message, reactions=reactions)
    await _publish(
        router,
        conversation,
        REACTION_REMOVED,
        {
            "message_id": str(message.id),
            "conversation_id": str(message.conversation_id),
            "user_id": principal.user_id,
            "reaction": token,
            "reactions": updated.reaction_summary(),
        },
    )
    return updated


async def _add_receipt(
    message_id: uuid.UUID,
    principal: Principal,
    kind: ReceiptKind,
    uow: UnitOfWork,
    router: NotificationRouter | None,
) -> Message:
    message, conversation = await _load_message(message_id, principal, uow)
    _require_live(message, f"mark as {kind.value}")

    now = _now()
    added = await uow.messages_w.add_receipts([message.id], principal.user_id, kind, now)
    if not added:
        return message
    await uow.commit()

    receipt = Receipt(user_id=principal.user_id, at=now)
    if kind is ReceiptKind.READ:
        updated = replace(message, read_by=(*message.read_by, receipt))
        event_type, stamp = READ_RECEIPT, "read_at"
    else:
        updated = replace(message, delivered_to=(*message.delivered_to, receipt))
        event_type, stamp = DELIVERY_RECEIPT, "delivered_at"

    await _publish(
        router,
        conversation,
        event_type,
        {
            "message_id": str(message.id),
            "conversation_id": str(message.conversation_id),
            "user_id": principal.user_id,
            stamp: now.isoformat(),
        },
    )
    return updated


async def mark_as_read(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> Message:
    """Record a read receipt. Marking twice is a no-op."""
    return await _add_receipt(message_id, principal, ReceiptKind.READ, uow, router)


async def mark_as_delivered(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> Message:
    return await _add_receipt(message_id, principal, ReceiptKind.DELIVERED, uow, router)


async def forward_message(
    message_id: uuid.UUID,
    principal: Principal,
    conversation_ids: Sequence[uuid.UUID],
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> list[Message]:
    """Copy a message into every target conversation, or into none.

    All targets are checked before anything is written.
    """
    targets_ids = list(dict.fromkeys(conversation_ids))
    if not targets_ids:
        raise ValidationError("At least one target conversation is required")

    source, _conversation = await _load_message(message_id, principal, uow)
    _require_live(source, "forward")

    targets = [
        await _load_conversation(conversation_id, principal, uow)
        for conversation_id in targets_ids
    ]
    for target in targets:
        await _check_not_blocked(target, principal, uow)

    now = _now()
    origin = ForwardedFrom(message_id=source.id, user_id=source.sender_id)
    copies = [
        Message(
            id=uuid.uuid4(),
            conversation_id=target.id,
            sender_id=principal.user_id,
            type=source.type,
            content=source.content,
            created_at=now,
            forwarded_from=origin,
        )
        for target in targets
    ]
    await uow.messages_w.create_many(copies)
    await uow.commit()
    logger.info(
        "Message %s forwarded by user %s to %d conversations",
        source.id, principal.user_id, len(copies),
    )

    for target, copy in zip(targets, copies):
        await _after_persist(uow, target, copy)
        await _fan_out(uow, router, target, copy, principal, None)
    return copies


async def get_message(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    message, conversation = await _load_message(message_id, principal, uow)
    return message


async def list_messages(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    *,
    before: datetime | None = None,
    limit: int = 50,
) -> list[Message]:
    await _load_conversation(conversation_id, principal, uow)
    return await uow.messages.list_page(conversation_id, before=before, limit=limit)


async def search_messages(
    conversation_id: uuid.UUID,
    principal: Principal,
    query: str,
    uow: UnitOfWork,
    *,
    limit: int = 50,
    min_length: int = 2,
) -> list[Message]:
    query = query.strip()
    if len(query) < min_length:
        raise ValidationError(f"Search query must be at least {min_length} characters")
    await _load_conversation(conversation_id, principal, uow)
    return await uow.messages.search(conversation_id, query, limit=limit)
