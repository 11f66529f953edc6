from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from chat_relay.domain.value_objects.enums import PresenceStatus


@dataclass(frozen=True, slots=True)
class User:
    id: int
    email: str
    display_name: str
    status: PresenceStatus
    status_message: str
    is_online: bool
    last_seen: datetime | None
    created_at: datetime
    blocked_user_ids: frozenset[int] = field(default_factory=frozenset)
    blocked_by_ids: frozenset[int] = field(default_factory=frozenset)

    def has_blocked(self, user_id: int) -> bool:
        return user_id in self.blocked_user_ids

    def is_blocked_by(self, user_id: int) -> bool:
        return user_id in self.blocked_by_ids
