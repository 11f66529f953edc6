from __future__ import annotations

from chat_relay.domain.entities.user import User
from chat_relay.domain.value_objects.enums import PresenceStatus
from chat_relay.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    return User(
        id=model.id,
        email=model.email,
        display_name=model.display_name,
        status=PresenceStatus(model.status),
        status_message=model.status_message,
        is_online=model.is_online,
        last_seen=model.last_seen,
        created_at=model.created_at,
        blocked_user_ids=frozenset(b.blocked_id for b in model.blocks),
        blocked_by_ids=frozenset(b.blocker_id for b in model.blocked_by),
    )
