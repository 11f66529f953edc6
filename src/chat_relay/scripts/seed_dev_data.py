"""Seed development data: creates the schema, two users, a direct conversation and a few messages."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert

from chat_relay.application.dto.conversation import CreateConversationDTO
from chat_relay.application.dto.message import SendMessageDTO
from chat_relay.application.dto.principal import Principal
from chat_relay.domain.value_objects.enums import ConversationKind
from chat_relay.infrastructure.db.base import Base
from chat_relay.infrastructure.db.models import UserModel
from chat_relay.infrastructure.db.session import AsyncSessionLocal, engine
from chat_relay.infrastructure.db.uow import SqlAlchemyUoW
from chat_relay.services import conversation_service, message_service

logger = logging.getLogger(__name__)

USERS = [
    (1, "alice@example.com", "Alice Doe"),
    (2, "bob@example.com", "Bob Roe"),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        await session.execute(
            pg_insert(UserModel)
            .values([
                {"id": uid, "email": email, "display_name": name}
                for uid, email, name in USERS
            ])
            .on_conflict_do_nothing(index_elements=["id"])
        )
        await session.commit()

        uow = SqlAlchemyUoW(session)
        alice = Principal(user_id=1, display_name="Alice Doe")
        bob = Principal(user_id=2, display_name="Bob Roe")
        conv, _created = await conversation_service.create_conversation(
            alice, CreateConversationDTO(kind=ConversationKind.DIRECT, participant_ids=[2]), uow,
        )

        messages_data = [
            (alice, "Hi Bob!"),
            (bob, "Hey Alice, how are you?"),
            (alice, "Good, thanks. Lunch tomorrow?"),
        ]
        for sender, text in messages_data:
            await message_service.send_message(
                sender, SendMessageDTO(conversation_id=conv.id, content=text), uow,
            )
        logger.info("Seeded conversation %s with %d messages", conv.id, len(messages_data))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
