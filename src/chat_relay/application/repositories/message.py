from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence
from uuid import UUID

from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.enums import ReceiptKind


class MessageReader(Protocol):
    async def get_by_id(self, message_id: UUID) -> Message | None: ...

    async def list_page(
        self,
        conversation_id: UUID,
        *,
        before: datetime | None = None,
        limit: int = 50,
    ) -> list[Message]:
        """Newest first."""
        ...

    async def search(
        self, conversation_id: UUID, query: str, *, limit: int = 50,
    ) -> list[Message]:
        """Case-insensitive text match over non-deleted messages, newest first."""
        ...

    async def unread_ids(self, conversation_id: UUID, user_id: int) -> list[UUID]:
        """Non-deleted messages the user has no read receipt for."""
        ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). A message with the same
        (conversation, sender, client_id) is returned instead of inserting."""
        ...

    async def create_many(self, messages: Sequence[Message]) -> None: ...

    async def edit_text(self, message_id: UUID, text: str, edited_at: datetime) -> None: ...

    async def soft_delete(
        self, message_id: UUID, user_id: int, deleted_at: datetime,
    ) -> None: ...

    async def add_reaction(self, message_id: UUID, token: str, user_id: int) -> None:
        """Idempotent."""
        ...

    async def remove_reaction(self, message_id: UUID, token: str, user_id: int) -> None: ...

    async def add_receipts(
        self,
        message_ids: Sequence[UUID],
        user_id: int,
        kind: ReceiptKind,
        at: datetime,
    ) -> int:
        """Insert receipts that do not exist yet. Returns how many were added."""
        ...
