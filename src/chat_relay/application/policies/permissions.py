"""Membership checks against a loaded conversation aggregate. No I/O."""
from __future__ import annotations

from chat_relay.application.exceptions import ForbiddenError, NotFoundError
from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.entities.participant import Participant
from chat_relay.domain.value_objects.enums import ParticipantRole


def active_slot(conversation: Conversation, user_id: int) -> Participant | None:
    """Most recent active slot of the user; inactive history is ignored."""
    slots = [
        p for p in conversation.participants
        if p.user_id == user_id and p.is_active
    ]
    if not slots:
        return None
    return max(slots, key=lambda p: p.joined_at)


def is_active_participant(conversation: Conversation, user_id: int) -> bool:
    return active_slot(conversation, user_id) is not None


def role_of(conversation: Conversation, user_id: int) -> ParticipantRole | None:
    slot = active_slot(conversation, user_id)
    return slot.role if slot else None


def accessible_conversation(
    user_id: int,
    conversation: Conversation | None,
) -> tuple[Conversation, Participant]:
    """Raise if conversation doesn't exist or the user is not an active member.

    Returns the conversation together with the caller's active slot.
    """
    if conversation is None:
        raise NotFoundError("Conversation not found")

    slot = active_slot(conversation, user_id)
    if slot is None:
        raise ForbiddenError("Not a participant of this conversation")
    return conversation, slot


def assert_conversation_access(
    user_id: int,
    conversation: Conversation | None,
) -> Participant:
    _, slot = accessible_conversation(user_id, conversation)
    return slot


def assert_role(participant: Participant, *roles: ParticipantRole, detail: str) -> None:
    if participant.role not in roles:
        raise ForbiddenError(detail)


def other_admins(conversation: Conversation, user_id: int) -> list[Participant]:
    return [
        p for p in conversation.active_participants
        if p.role == ParticipantRole.ADMIN and p.user_id != user_id
    ]
