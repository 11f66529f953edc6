from __future__ import annotations

from chat_relay.domain.entities.participant import Participant
from chat_relay.domain.value_objects.enums import ParticipantRole
from chat_relay.infrastructure.db.models.participant import ParticipantModel


def model_to_entity(model: ParticipantModel) -> Participant:
    return Participant(
        conversation_id=model.conversation_id,
        user_id=model.user_id,
        role=ParticipantRole(model.role),
        joined_at=model.joined_at,
        left_at=model.left_at,
        is_active=model.is_active,
        unread_count=model.unread_count,
        archived_at=model.archived_at,
        muted_at=model.muted_at,
        muted_until=model.muted_until,
        hidden_at=model.hidden_at,
    )


def entity_to_model(entity: Participant) -> ParticipantModel:
    return ParticipantModel(
        conversation_id=entity.conversation_id,
        user_id=entity.user_id,
        role=entity.role.value,
        joined_at=entity.joined_at,
        left_at=entity.left_at,
        is_active=entity.is_active,
        unread_count=entity.unread_count,
    )
