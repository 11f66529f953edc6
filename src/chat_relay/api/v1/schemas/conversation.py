from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, Field

from chat_relay.application.policies.permissions import active_slot
from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.value_objects.enums import ConversationKind, ParticipantRole


class CreateConversationRequest(BaseModel):
    kind: ConversationKind
    participant_ids: list[int] = Field(min_length=1)
    name: str | None = None


class RenameConversationRequest(BaseModel):
    name: str | None = None


class AddParticipantsRequest(BaseModel):
    user_ids: list[int] = Field(min_length=1)


class MuteRequest(BaseModel):
    duration_seconds: int | None = Field(None, gt=0)


class MuteResponse(BaseModel):
    muted_until: datetime | None


class ParticipantResponse(BaseModel):
    user_id: int
    role: ParticipantRole
    joined_at: datetime
    left_at: datetime | None
    is_active: bool

    model_config = {"from_attributes": True}


class PinnedMessageResponse(BaseModel):
    message_id: UUID
    pinned_by: int
    pinned_at: datetime

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    id: UUID
    kind: ConversationKind
    name: str | None
    last_message_id: UUID | None
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime
    participants: list[ParticipantResponse]
    pinned: list[PinnedMessageResponse]
    unread_count: int = 0
    is_archived: bool = False
    is_muted: bool = False

    @classmethod
    def from_entity(cls, conversation: Conversation, user_id: int) -> ConversationResponse:
        """Render *conversation* as seen by *user_id*."""
        slot = active_slot(conversation, user_id)
        now = datetime.now(timezone.utc)
        return cls(
            id=conversation.id,
            kind=conversation.kind,
            name=conversation.name,
            last_message_id=conversation.last_message_id,
            last_message_at=conversation.last_message_at,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            participants=[
                ParticipantResponse.model_validate(p) for p in conversation.active_participants
            ],
            pinned=[PinnedMessageResponse.model_validate(p) for p in conversation.pinned],
            unread_count=slot.unread_count if slot else 0,
            is_archived=slot.is_archived if slot else False,
            is_muted=slot.mute_active(now) if slot else False,
        )
