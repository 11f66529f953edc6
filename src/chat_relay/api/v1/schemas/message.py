from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.content import content_to_dict
from chat_relay.domain.value_objects.enums import MessageType


class SendMessageRequest(BaseModel):
    type: MessageType = MessageType.TEXT
    content: Any = None
    reply_to_id: UUID | None = None
    client_id: str | None = Field(None, max_length=64)


class EditMessageRequest(BaseModel):
    text: str


class ReactionRequest(BaseModel):
    reaction: str = Field(min_length=1, max_length=32)


class ForwardMessageRequest(BaseModel):
    conversation_ids: list[UUID] = Field(min_length=1)


class ForwardedFromResponse(BaseModel):
    message_id: UUID
    user_id: int


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: int
    type: MessageType
    content: dict[str, Any] | None
    display_content: str
    reply_to_id: UUID | None
    forwarded_from: ForwardedFromResponse | None
    client_id: str | None
    reactions: dict[str, int]
    read_by: list[int]
    delivered_to: list[int]
    is_edited: bool
    edited_at: datetime | None
    is_deleted: bool
    deleted_at: datetime | None
    created_at: datetime

    @classmethod
    def from_entity(cls, message: Message) -> MessageResponse:
        """Deleted messages expose only the placeholder, never their content."""
        forwarded = message.forwarded_from
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            type=message.type,
            content=None if message.is_deleted else content_to_dict(message.content),
            display_content=message.display_content,
            reply_to_id=message.reply_to_id,
            forwarded_from=ForwardedFromResponse(
                message_id=forwarded.message_id, user_id=forwarded.user_id,
            ) if forwarded else None,
            client_id=message.client_id,
            reactions=message.reaction_summary(),
            read_by=[r.user_id for r in message.read_by],
            delivered_to=[r.user_id for r in message.delivered_to],
            is_edited=message.is_edited,
            edited_at=message.edited_at,
            is_deleted=message.is_deleted,
            deleted_at=message.deleted_at,
            created_at=message.created_at,
        )
