from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from chat_relay.domain.entities.participant import Participant
from chat_relay.domain.value_objects.enums import ConversationKind


@dataclass(frozen=True, slots=True)
class PinnedMessage:
    message_id: UUID
    pinned_by: int
    pinned_at: datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    """Conversation aggregate: the record plus every participant slot ever created."""

    id: UUID
    kind: ConversationKind
    name: str | None
    last_message_id: UUID | None
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime
    participants: tuple[Participant, ...] = ()
    pinned: tuple[PinnedMessage, ...] = ()

    @property
    def active_participants(self) -> tuple[Participant, ...]:
        return tuple(p for p in self.participants if p.is_active)

    @property
    def member_ids(self) -> frozenset[int]:
        return frozenset(p.user_id for p in self.participants if p.is_active)

    def slot_for(self, user_id: int) -> Participant | None:
        """Latest slot of *user_id*, active or not."""
        slots = [p for p in self.participants if p.user_id == user_id]
        if not slots:
            return None
        return max(slots, key=lambda p: p.joined_at)

    def unread_count(self, user_id: int) -> int:
        slot = self.slot_for(user_id)
        return slot.unread_count if slot else 0

    def recipients_of(self, sender_id: int) -> list[int]:
        """Active participants other than the sender, in slot order."""
        seen: set[int] = set()
        result: list[int] = []
        for p in self.active_participants:
            if p.user_id != sender_id and p.user_id not in seen:
                seen.add(p.user_id)
                result.append(p.user_id)
        return result
