from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.value_objects.enums import ConversationKind


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def list_for_user(
        self,
        user_id: int,
        *,
        kind: ConversationKind | None = None,
        cursor: str | None = None,
        limit: int = 20,
    ) -> list[Conversation]:
        """Conversations where the user is active and has not hidden them,
        most recent activity first."""
        ...

    async def find_direct(self, user_a: int, user_b: int) -> Conversation | None:
        """The direct conversation in which both users are active."""
        ...


class ConversationWriter(Protocol):
    async def create(self, conversation: Conversation) -> Conversation: ...

    async def lock(self, conversation_id: UUID) -> Conversation | None:
        """Load the aggregate and hold its row lock until commit/rollback."""
        ...

    async def rename(self, conversation_id: UUID, name: str | None) -> None: ...

    async def set_last_message(
        self, conversation_id: UUID, message_id: UUID, at: datetime,
    ) -> None: ...

    async def delete(self, conversation_id: UUID) -> None:
        """Delete the conversation together with its messages."""
        ...

    async def pin_message(
        self, conversation_id: UUID, message_id: UUID, user_id: int, at: datetime,
    ) -> None: ...

    async def unpin_message(self, conversation_id: UUID, message_id: UUID) -> None: ...
