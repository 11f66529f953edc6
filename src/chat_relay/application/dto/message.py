from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from chat_relay.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    conversation_id: UUID
    type: MessageType = MessageType.TEXT
    content: Any = None
    reply_to_id: UUID | None = None
    client_id: str | None = None
