from __future__ import annotations

from chat_relay.domain.entities.conversation import Conversation, PinnedMessage
from chat_relay.domain.value_objects.enums import ConversationKind
from chat_relay.infrastructure.db.mappers import participant as participant_mapper
from chat_relay.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        kind=ConversationKind(model.kind),
        name=model.name,
        last_message_id=model.last_message_id,
        last_message_at=model.last_message_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
        participants=tuple(
            participant_mapper.model_to_entity(p) for p in model.participants
        ),
        pinned=tuple(
            PinnedMessage(message_id=p.message_id, pinned_by=p.pinned_by, pinned_at=p.pinned_at)
            for p in model.pinned
        ),
    )


def entity_to_model(entity: Conversation) -> ConversationModel:
    return ConversationModel(
        id=entity.id,
        kind=entity.kind.value,
        name=entity.name,
        last_message_id=entity.last_message_id,
        last_message_at=entity.last_message_at,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
        participants=[participant_mapper.entity_to_model(p) for p in entity.participants],
    )
