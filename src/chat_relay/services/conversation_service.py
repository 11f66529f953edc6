"""Conversation lifecycle and per-participant state.

Every change to a conversation aggregate (participants, unread counters,
archive/mute/pin state, last-message pointer) goes through this module.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from chat_relay.application.dto.conversation import CreateConversationDTO
from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chat_relay.application.policies.permissions import (
    accessible_conversation,
    active_slot,
    assert_conversation_access,
    assert_role,
    other_admins,
)
from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.entities.participant import Participant
from chat_relay.domain.value_objects.enums import ConversationKind, ParticipantRole, ReceiptKind
from chat_relay.infrastructure.ws.protocol import READ_RECEIPT
from chat_relay.services.notification_router import NotificationRouter

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# -- state manager ---------------------------------------------------------


async def add_participant(
    uow: UnitOfWork,
    conversation: Conversation,
    user_id: int,
    role: ParticipantRole = ParticipantRole.MEMBER,
) -> bool:
    """Add or reactivate *user_id*. Returns False when already active.

    A returning user gets their old slot back, so a direct conversation
    never grows past its two original slots.
    """
    slot = conversation.slot_for(user_id)
    if slot is not None and slot.is_active:
        return False

    now = _now()
    if slot is not None:
        await uow.participants_w.reactivate(conversation.id, user_id, role, now)
        return True

    if conversation.kind is ConversationKind.DIRECT:
        members = {p.user_id for p in conversation.participants}
        if len(members) >= 2:
            raise InvalidStateError("A direct conversation has exactly two participants")

    await uow.participants_w.add(
        Participant(
            conversation_id=conversation.id,
            user_id=user_id,
            role=role,
            joined_at=now,
        )
    )
    return True


async def deactivate_participant(
    uow: UnitOfWork,
    conversation: Conversation,
    user_id: int,
) -> None:
    """Mark the slot inactive. The slot itself is kept."""
    await uow.participants_w.deactivate(conversation.id, user_id, _now())


async def update_unread_count(
    uow: UnitOfWork,
    conversation_id: uuid.UUID,
    user_ids: Sequence[int],
    delta: int = 1,
) -> None:
    await uow.participants_w.increment_unread(conversation_id, user_ids, delta)


async def reset_unread_count(
    uow: UnitOfWork,
    conversation_id: uuid.UUID,
    user_id: int,
) -> None:
    await uow.participants_w.reset_unread(conversation_id, user_id)


async def set_last_message(
    uow: UnitOfWork,
    conversation_id: uuid.UUID,
    message_id: uuid.UUID,
    at: datetime,
) -> None:
    """Only called for messages that are already persisted."""
    await uow.conversations_w.set_last_message(conversation_id, message_id, at)


async def is_user_muted(
    uow: UnitOfWork,
    conversation: Conversation,
    user_id: int,
    now: datetime | None = None,
) -> bool:
    """Mute check that clears an expired mute as a side effect."""
    now = now or _now()
    slot = active_slot(conversation, user_id)
    if slot is None:
        return False
    if slot.mute_expired(now):
        await uow.participants_w.set_muted(conversation.id, user_id, None, None)
        return False
    return slot.mute_active(now)


async def muted_recipients(
    uow: UnitOfWork,
    conversation: Conversation,
    user_ids: Iterable[int],
) -> set[int]:
    """Which of *user_ids* currently have the conversation muted.

    Expired mutes found along the way are cleared. Failures are logged and
    treated as "not muted".
    """
    now = _now()
    muted: set[int] = set()
    try:
        for user_id in user_ids:
            if await is_user_muted(uow, conversation, user_id, now):
                muted.add(user_id)
        await uow.commit()
    except Exception:
        logger.exception("Mute lookup failed for conversation %s", conversation.id)
        await _rollback_quietly(uow)
    return muted


async def _rollback_quietly(uow: UnitOfWork) -> None:
    try:
        await uow.rollback()
    except Exception:
        logger.debug("Rollback failed", exc_info=True)


# -- lifecycle -------------------------------------------------------------


def _clean_name(name: str | None, max_length: int) -> str | None:
    if name is None:
        return None
    name = name.strip()
    if len(name) > max_length:
        raise ValidationError(f"Conversation name cannot exceed {max_length} characters")
    return name or None


async def create_conversation(
    principal: Principal,
    dto: CreateConversationDTO,
    uow: UnitOfWork,
    *,
    name_max_length: int = 100,
) -> tuple[Conversation, bool]:
    """Create a conversation with the caller as admin.

    Returns (conversation, created). For a direct conversation that already
    exists between the two users, the existing one is returned.
    """
    others = list(dict.fromkeys(u for u in dto.participant_ids if u != principal.user_id))
    name = _clean_name(dto.name, name_max_length)

    if dto.kind is ConversationKind.DIRECT:
        if len(others) != 1:
            raise ValidationError("A direct conversation needs exactly one other participant")
        target = await uow.users.get_by_id(others[0])
        if target is None:
            raise NotFoundError("User not found")
        if target.has_blocked(principal.user_id) or target.is_blocked_by(principal.user_id):
            raise ForbiddenError("Cannot start a conversation with this user")
        existing = await uow.conversations.find_direct(principal.user_id, target.id)
        if existing is not None:
            return existing, False
        name = None
    else:
        if not others:
            raise ValidationError("A group conversation needs at least one other participant")
        found = await uow.users.get_many(others)
        if len(found) != len(others):
            raise NotFoundError("User not found")

    now = _now()
    conversation_id = uuid.uuid4()
    participants = [
        Participant(
            conversation_id=conversation_id,
            user_id=principal.user_id,
            role=ParticipantRole.ADMIN,
            joined_at=now,
        ),
        *(
            Participant(
                conversation_id=conversation_id,
                user_id=user_id,
                role=ParticipantRole.MEMBER,
                joined_at=now,
            )
            for user_id in others
        ),
    ]
    conversation = Conversation(
        id=conversation_id,
        kind=dto.kind,
        name=name,
        last_message_id=None,
        last_message_at=now,
        created_at=now,
        updated_at=now,
        participants=tuple(participants),
    )
    conversation = await uow.conversations_w.create(conversation)
    await uow.commit()
    logger.info(
        "Conversation %s (%s) created by user %s",
        conversation.id, conversation.kind, principal.user_id,
    )
    return conversation, True


async def get_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation, _ = accessible_conversation(
        principal.user_id, await uow.conversations.get_by_id(conversation_id),
    )
    return conversation


async def list_user_conversations(
    principal: Principal,
    uow: UnitOfWork,
    *,
    kind: ConversationKind | None = None,
    cursor: str | None = None,
    limit: int = 20,
) -> list[Conversation]:
    return await uow.conversations.list_for_user(
        principal.user_id, kind=kind, cursor=cursor, limit=limit,
    )


async def _locked(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> tuple[Conversation, Participant]:
    return accessible_conversation(
        principal.user_id, await uow.conversations_w.lock(conversation_id),
    )


async def rename_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    name: str | None,
    uow: UnitOfWork,
    *,
    max_length: int = 100,
) -> Conversation:
    conversation, slot = await _locked(conversation_id, principal, uow)
    if conversation.kind is ConversationKind.DIRECT:
        raise InvalidStateError("Direct conversations cannot be renamed")
    assert_role(
        slot, ParticipantRole.ADMIN, ParticipantRole.MODERATOR,
        detail="Only admins and moderators can rename the conversation",
    )
    name = _clean_name(name, max_length)
    await uow.conversations_w.rename(conversation.id, name)
    await uow.commit()
    return replace(conversation, name=name)


async def delete_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    conversation, slot = await _locked(conversation_id, principal, uow)
    if conversation.kind is ConversationKind.GROUP:
        assert_role(slot, ParticipantRole.ADMIN, detail="Only admins can delete the conversation")
    await uow.conversations_w.delete(conversation.id)
    await uow.commit()
    logger.info("Conversation %s deleted by user %s", conversation.id, principal.user_id)


async def hide_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    """Remove the conversation from the caller's list only."""
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal.user_id, conversation)
    await uow.participants_w.set_hidden(conversation_id, principal.user_id, _now())
    await uow.commit()


async def mark_conversation_read(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> int:
    """Reset the caller's unread counter and mark every message as read.

    Returns the number of new read receipts.
    """
    conversation, _ = accessible_conversation(
        principal.user_id, await uow.conversations.get_by_id(conversation_id),
    )

    now = _now()
    unread = await uow.messages.unread_ids(conversation_id, principal.user_id)
    added = await uow.messages_w.add_receipts(unread, principal.user_id, ReceiptKind.READ, now)
    await reset_unread_count(uow, conversation_id, principal.user_id)
    await uow.commit()

    if router is not None and added:
        try:
            await router.publish(
                conversation,
                READ_RECEIPT,
                {
                    "conversation_id": str(conversation_id),
                    "message_ids": [str(m) for m in unread],
                    "user_id": principal.user_id,
                    "read_at": now.isoformat(),
                },
            )
        except Exception:
            logger.exception("Read receipt fan-out failed for %s", conversation_id)
    return added


async def add_participants(
    conversation_id: uuid.UUID,
    principal: Principal,
    user_ids: Sequence[int],
    uow: UnitOfWork,
) -> Conversation:
    if not user_ids:
        raise ValidationError("No participants given")
    conversation, slot = await _locked(conversation_id, principal, uow)
    if conversation.kind is ConversationKind.GROUP:
        assert_role(
            slot, ParticipantRole.ADMIN, ParticipantRole.MODERATOR,
            detail="Only admins and moderators can add participants",
        )

    wanted = list(dict.fromkeys(user_ids))
    found = await uow.users.get_many(wanted)
    if len(found) != len(wanted):
        raise NotFoundError("User not found")

    for user_id in wanted:
        await add_participant(uow, conversation, user_id)
    await uow.commit()

    refreshed = await uow.conversations.get_by_id(conversation_id)
    if refreshed is None:
        raise NotFoundError("Conversation not found")
    return refreshed


async def _evict(
    router: NotificationRouter | None,
    user_id: int,
    conversation_id: uuid.UUID,
) -> None:
    """Stop room events reaching a user who is no longer a participant."""
    if router is not None:
        await router.registry.evict(user_id, conversation_id)


async def remove_participant(
    conversation_id: uuid.UUID,
    principal: Principal,
    user_id: int,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> None:
    if user_id == principal.user_id:
        await leave_conversation(conversation_id, principal, uow, router)
        return

    conversation, slot = await _locked(conversation_id, principal, uow)
    if conversation.kind is ConversationKind.DIRECT:
        raise InvalidStateError("Cannot remove participants from a direct conversation")
    assert_role(
        slot, ParticipantRole.ADMIN, ParticipantRole.MODERATOR,
        detail="Only admins and moderators can remove participants",
    )
    target = active_slot(conversation, user_id)
    if target is None:
        raise NotFoundError("Participant not found")
    if target.role is ParticipantRole.ADMIN:
        raise ForbiddenError("Cannot remove an admin")

    await deactivate_participant(uow, conversation, user_id)
    await uow.commit()
    await _evict(router, user_id, conversation.id)


async def leave_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    router: NotificationRouter | None = None,
) -> None:
    conversation, slot = await _locked(conversation_id, principal, uow)
    if (
        conversation.kind is ConversationKind.GROUP
        and slot.role is ParticipantRole.ADMIN
        and not other_admins(conversation, principal.user_id)
    ):
        raise InvalidStateError("Assign another admin before leaving the group")

    await deactivate_participant(uow, conversation, principal.user_id)
    await uow.commit()
    await _evict(router, principal.user_id, conversation.id)


async def pin_message(
    conversation_id: uuid.UUID,
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal.user_id, conversation)
    message = await uow.messages.get_by_id(message_id)
    if message is None or message.conversation_id != conversation_id:
        raise NotFoundError("Message not found")
    if message.is_deleted:
        raise InvalidStateError("Cannot pin a deleted message")

    await uow.conversations_w.pin_message(conversation_id, message_id, principal.user_id, _now())
    await uow.commit()


async def unpin_message(
    conversation_id: uuid.UUID,
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal.user_id, conversation)
    await uow.conversations_w.unpin_message(conversation_id, message_id)
    await uow.commit()


async def archive_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    *,
    archived: bool = True,
) -> None:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal.user_id, conversation)
    await uow.participants_w.set_archived(
        conversation_id, principal.user_id, _now() if archived else None,
    )
    await uow.commit()


async def mute_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    *,
    duration_seconds: int | None = None,
) -> datetime | None:
    """Mute for *duration_seconds*, or indefinitely. Returns the expiry."""
    if duration_seconds is not None and duration_seconds <= 0:
        raise ValidationError("Mute duration must be positive")
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal.user_id, conversation)

    now = _now()
    until = now + timedelta(seconds=duration_seconds) if duration_seconds else None
    await uow.participants_w.set_muted(conversation_id, principal.user_id, now, until)
    await uow.commit()
    return until


async def unmute_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal.user_id, conversation)
    await uow.participants_w.set_muted(conversation_id, principal.user_id, None, None)
    await uow.commit()
