from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping
from uuid import UUID

from chat_relay.domain.value_objects.content import (
    DELETED_PLACEHOLDER,
    MessageContent,
    check_content,
    preview_text,
)
from chat_relay.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class ForwardedFrom:
    message_id: UUID
    user_id: int


@dataclass(frozen=True, slots=True)
class Receipt:
    user_id: int
    at: datetime


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: UUID
    sender_id: int
    type: MessageType
    content: MessageContent
    created_at: datetime
    reply_to_id: UUID | None = None
    forwarded_from: ForwardedFrom | None = None
    client_id: str | None = None
    reactions: Mapping[str, frozenset[int]] = field(default_factory=dict)
    read_by: tuple[Receipt, ...] = ()
    delivered_to: tuple[Receipt, ...] = ()
    is_edited: bool = False
    edited_at: datetime | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: int | None = None

    def __post_init__(self) -> None:
        check_content(self.type, self.content)

    @property
    def display_content(self) -> str:
        if self.is_deleted:
            return DELETED_PLACEHOLDER
        return preview_text(self.type, self.content)

    def reaction_summary(self) -> dict[str, int]:
        return {token: len(users) for token, users in self.reactions.items()}

    def has_reacted(self, token: str, user_id: int) -> bool:
        return user_id in self.reactions.get(token, frozenset())

    def is_read_by(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.read_by)

    def is_delivered_to(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.delivered_to)
