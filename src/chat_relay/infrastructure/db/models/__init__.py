"""Import all models so Base.metadata knows every table before create_all."""
from chat_relay.infrastructure.db.models.conversation import ConversationModel, PinnedMessageModel
from chat_relay.infrastructure.db.models.message import MessageModel, ReactionModel, ReceiptModel
from chat_relay.infrastructure.db.models.participant import ParticipantModel
from chat_relay.infrastructure.db.models.user import UserBlockModel, UserModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "ParticipantModel",
    "PinnedMessageModel",
    "ReactionModel",
    "ReceiptModel",
    "UserBlockModel",
    "UserModel",
]
