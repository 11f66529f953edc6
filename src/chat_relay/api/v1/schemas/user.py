from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from chat_relay.domain.entities.user import User
from chat_relay.domain.value_objects.enums import PresenceStatus


class UserResponse(BaseModel):
    id: int
    display_name: str
    status: PresenceStatus
    status_message: str
    is_online: bool
    last_seen: datetime | None

    @classmethod
    def from_entity(cls, user: User, viewer_id: int) -> UserResponse:
        """Invisible users look offline to everyone but themselves."""
        hidden = user.status is PresenceStatus.INVISIBLE and user.id != viewer_id
        return cls(
            id=user.id,
            display_name=user.display_name,
            status=PresenceStatus.OFFLINE if hidden else user.status,
            status_message=user.status_message,
            is_online=False if hidden else user.is_online,
            last_seen=user.last_seen,
        )


class UpdateStatusRequest(BaseModel):
    status: PresenceStatus
    status_message: str | None = Field(None, max_length=100)
