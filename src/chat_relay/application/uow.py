from __future__ import annotations

from typing import Protocol

from chat_relay.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from chat_relay.application.repositories.message import MessageReader, MessageWriter
from chat_relay.application.repositories.participant import ParticipantWriter
from chat_relay.application.repositories.user import UserReader, UserWriter


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    participants_w: ParticipantWriter
    messages: MessageReader
    messages_w: MessageWriter
    users: UserReader
    users_w: UserWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
