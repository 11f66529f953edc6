from __future__ import annotations

from typing import Any

from chat_relay.domain.entities.message import ForwardedFrom, Message, Receipt
from chat_relay.domain.value_objects.content import content_from_dict, content_to_dict
from chat_relay.domain.value_objects.enums import MessageType, ReceiptKind
from chat_relay.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    msg_type = MessageType(model.type)

    reactions: dict[str, set[int]] = {}
    for r in model.reactions:
        reactions.setdefault(r.token, set()).add(r.user_id)

    forwarded = None
    if model.forwarded_from_message_id is not None and model.forwarded_from_user_id is not None:
        forwarded = ForwardedFrom(
            message_id=model.forwarded_from_message_id,
            user_id=model.forwarded_from_user_id,
        )

    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_id=model.sender_id,
        type=msg_type,
        content=content_from_dict(msg_type, model.content),
        created_at=model.created_at,
        reply_to_id=model.reply_to_id,
        forwarded_from=forwarded,
        client_id=model.client_id,
        reactions={token: frozenset(users) for token, users in reactions.items()},
        read_by=tuple(
            Receipt(user_id=r.user_id, at=r.at)
            for r in model.receipts if r.kind == ReceiptKind.READ
        ),
        delivered_to=tuple(
            Receipt(user_id=r.user_id, at=r.at)
            for r in model.receipts if r.kind == ReceiptKind.DELIVERED
        ),
        is_edited=model.is_edited,
        edited_at=model.edited_at,
        is_deleted=model.is_deleted,
        deleted_at=model.deleted_at,
        deleted_by=model.deleted_by,
    )


def entity_to_values(entity: Message) -> dict[str, Any]:
    """Column values for an INSERT of a new message."""
    forwarded = entity.forwarded_from
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "sender_id": entity.sender_id,
        "type": entity.type.value,
        "content": content_to_dict(entity.content),
        "reply_to_id": entity.reply_to_id,
        "forwarded_from_message_id": forwarded.message_id if forwarded else None,
        "forwarded_from_user_id": forwarded.user_id if forwarded else None,
        "client_id": entity.client_id,
        "created_at": entity.created_at,
    }
