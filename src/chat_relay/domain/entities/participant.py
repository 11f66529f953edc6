from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from chat_relay.domain.value_objects.enums import ParticipantRole


@dataclass(frozen=True, slots=True)
class Participant:
    """One membership slot. Leaving deactivates the slot, it is never removed."""

    conversation_id: UUID
    user_id: int
    role: ParticipantRole
    joined_at: datetime
    left_at: datetime | None = None
    is_active: bool = True
    unread_count: int = 0
    archived_at: datetime | None = None
    muted_at: datetime | None = None
    muted_until: datetime | None = None
    hidden_at: datetime | None = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def mute_active(self, now: datetime) -> bool:
        """True while muted. A mute without `muted_until` never expires."""
        if self.muted_at is None:
            return False
        return self.muted_until is None or self.muted_until > now

    def mute_expired(self, now: datetime) -> bool:
        return self.muted_at is not None and not self.mute_active(now)
