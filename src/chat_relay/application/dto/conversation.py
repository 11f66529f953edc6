from __future__ import annotations

from dataclasses import dataclass, field

from chat_relay.domain.value_objects.enums import ConversationKind


@dataclass(frozen=True, slots=True)
class CreateConversationDTO:
    kind: ConversationKind
    participant_ids: list[int] = field(default_factory=list)
    name: str | None = None
