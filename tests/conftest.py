"""Shared test fixtures."""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any, Sequence
from uuid import UUID

import pytest

from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import TransientError
from chat_relay.domain.entities.conversation import Conversation, PinnedMessage
from chat_relay.domain.entities.message import Message, Receipt
from chat_relay.domain.entities.participant import Participant
from chat_relay.domain.entities.user import User
from chat_relay.domain.value_objects.content import TextContent
from chat_relay.domain.value_objects.enums import (
    ConversationKind,
    MessageType,
    ParticipantRole,
    PresenceStatus,
    ReceiptKind,
)

ALICE, BOB, CAROL, DAVE = 1, 2, 3, 4


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id=ALICE, display_name="Alice")


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id=BOB, display_name="Bob")


@pytest.fixture
def carol() -> Principal:
    return Principal(user_id=CAROL, display_name="Carol")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def make_user(
    user_id: int,
    *,
    name: str | None = None,
    status: PresenceStatus = PresenceStatus.OFFLINE,
    is_online: bool = False,
) -> User:
    return User(
        id=user_id,
        email=f"user{user_id}@example.com",
        display_name=name or f"User {user_id}",
        status=status,
        status_message="",
        is_online=is_online,
        last_seen=None,
        created_at=_now(),
    )


def make_conversation(
    members: Sequence[int],
    *,
    kind: ConversationKind = ConversationKind.GROUP,
    conversation_id: UUID | None = None,
    roles: dict[int, ParticipantRole] | None = None,
) -> Conversation:
    """First member is admin unless *roles* says otherwise."""
    cid = conversation_id or uuid.uuid4()
    now = _now()
    roles = roles or {}
    participants = tuple(
        Participant(
            conversation_id=cid,
            user_id=user_id,
            role=roles.get(user_id, ParticipantRole.ADMIN if i == 0 else ParticipantRole.MEMBER),
            joined_at=now - timedelta(minutes=10),
        )
        for i, user_id in enumerate(members)
    )
    return Conversation(
        id=cid,
        kind=kind,
        name=None if kind is ConversationKind.DIRECT else "Team",
        last_message_id=None,
        last_message_at=now - timedelta(minutes=10),
        created_at=now - timedelta(minutes=10),
        updated_at=now - timedelta(minutes=10),
        participants=participants,
    )


def make_message(
    conversation_id: UUID,
    sender_id: int,
    *,
    text: str = "hello",
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        type=MessageType.TEXT,
        content=TextContent(text=text),
        created_at=created_at or _now(),
    )


@dataclass
class FakeStore:
    conversations: dict[UUID, Conversation] = field(default_factory=dict)
    messages: dict[UUID, Message] = field(default_factory=dict)
    users: dict[int, User] = field(default_factory=dict)

    def put(self, *entities: Conversation | Message | User) -> None:
        for e in entities:
            if isinstance(e, Conversation):
                self.conversations[e.id] = e
            elif isinstance(e, Message):
                self.messages[e.id] = e
            else:
                self.users[e.id] = e

    def slot(self, conversation_id: UUID, user_id: int) -> Participant | None:
        return self.conversations[conversation_id].slot_for(user_id)


@dataclass
class FakeConversationReader:
    _store: FakeStore

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._store.conversations.get(conversation_id)

    async def list_for_user(
        self,
        user_id: int,
        *,
        kind: ConversationKind | None = None,
        cursor: str | None = None,
        limit: int = 20,
    ) -> list[Conversation]:
        result = []
        for c in self._store.conversations.values():
            slot = c.slot_for(user_id)
            if slot is None or not slot.is_active or slot.hidden_at is not None:
                continue
            if kind is not None and c.kind is not kind:
                continue
            result.append(c)
        result.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)
        return result[:limit]

    async def find_direct(self, user_a: int, user_b: int) -> Conversation | None:
        for c in self._store.conversations.values():
            active = {p.user_id for p in c.active_participants}
            if c.kind is ConversationKind.DIRECT and {user_a, user_b} <= active:
                return c
        return None


@dataclass
class FakeConversationWriter:
    _store: FakeStore
    locked: list[UUID] = field(default_factory=list)

    def _update(self, conversation_id: UUID, **changes: Any) -> None:
        conv = self._store.conversations[conversation_id]
        self._store.conversations[conversation_id] = replace(conv, **changes)

    async def create(self, conversation: Conversation) -> Conversation:
        self._store.conversations[conversation.id] = conversation
        return conversation

    async def lock(self, conversation_id: UUID) -> Conversation | None:
        self.locked.append(conversation_id)
        return self._store.conversations.get(conversation_id)

    async def rename(self, conversation_id: UUID, name: str | None) -> None:
        self._update(conversation_id, name=name)

    async def set_last_message(self, conversation_id: UUID, message_id: UUID, at: datetime) -> None:
        self._update(conversation_id, last_message_id=message_id, last_message_at=at)

    async def delete(self, conversation_id: UUID) -> None:
        del self._store.conversations[conversation_id]
        for mid in [m.id for m in self._store.messages.values() if m.conversation_id == conversation_id]:
            del self._store.messages[mid]

    async def pin_message(self, conversation_id: UUID, message_id: UUID, user_id: int, at: datetime) -> None:
        conv = self._store.conversations[conversation_id]
        if any(p.message_id == message_id for p in conv.pinned):
            return
        self._update(conversation_id, pinned=(*conv.pinned, PinnedMessage(message_id, user_id, at)))

    async def unpin_message(self, conversation_id: UUID, message_id: UUID) -> None:
        conv = self._store.conversations[conversation_id]
        self._update(
            conversation_id,
            pinned=tuple(p for p in conv.pinned if p.message_id != message_id),
        )


@dataclass
class FakeParticipantWriter:
    _store: FakeStore

    def _update(self, conversation_id: UUID, user_id: int, **changes: Any) -> None:
        conv = self._store.conversations[conversation_id]
        target = conv.slot_for(user_id)
        participants = tuple(
            replace(p, **changes) if p is target else p for p in conv.participants
        )
        self._store.conversations[conversation_id] = replace(conv, participants=participants)

    async def add(self, participant: Participant) -> None:
        conv = self._store.conversations[participant.conversation_id]
        self._store.conversations[conv.id] = replace(
            conv, participants=(*conv.participants, participant),
        )

    async def reactivate(self, conversation_id: UUID, user_id: int, role: ParticipantRole, joined_at: datetime) -> None:
        self._update(
            conversation_id, user_id,
            role=role, joined_at=joined_at, left_at=None, is_active=True, hidden_at=None,
        )

    async def deactivate(self, conversation_id: UUID, user_id: int, left_at: datetime) -> None:
        self._update(conversation_id, user_id, is_active=False, left_at=left_at)

    async def increment_unread(self, conversation_id: UUID, user_ids: Sequence[int], delta: int = 1) -> None:
        for user_id in user_ids:
            slot = self._store.slot(conversation_id, user_id)
            assert slot is not None
            self._update(conversation_id, user_id, unread_count=max(slot.unread_count + delta, 0))

    async def reset_unread(self, conversation_id: UUID, user_id: int) -> None:
        self._update(conversation_id, user_id, unread_count=0)

    async def set_archived(self, conversation_id: UUID, user_id: int, at: datetime | None) -> None:
        self._update(conversation_id, user_id, archived_at=at)

    async def set_muted(
        self, conversation_id: UUID, user_id: int, muted_at: datetime | None, muted_until: datetime | None,
    ) -> None:
        self._update(conversation_id, user_id, muted_at=muted_at, muted_until=muted_until)

    async def set_hidden(self, conversation_id: UUID, user_id: int, at: datetime | None) -> None:
        self._update(conversation_id, user_id, hidden_at=at)


@dataclass
class FakeMessageReader:
    _store: FakeStore

    def _in(self, conversation_id: UUID) -> list[Message]:
        msgs = [m for m in self._store.messages.values() if m.conversation_id == conversation_id]
        return sorted(msgs, key=lambda m: m.created_at, reverse=True)

    async def get_by_id(self, message_id: UUID) -> Message | None:
        return self._store.messages.get(message_id)

    async def list_page(
        self, conversation_id: UUID, *, before: datetime | None = None, limit: int = 50,
    ) -> list[Message]:
        msgs = self._in(conversation_id)
        if before is not None:
            msgs = [m for m in msgs if m.created_at < before]
        return msgs[:limit]

    async def search(self, conversation_id: UUID, query: str, *, limit: int = 50) -> list[Message]:
        q = query.casefold()
        return [
            m for m in self._in(conversation_id)
            if not m.is_deleted and q in getattr(m.content, "text", "").casefold()
        ][:limit]

    async def unread_ids(self, conversation_id: UUID, user_id: int) -> list[UUID]:
        return [
            m.id for m in self._in(conversation_id)
            if not m.is_deleted and not m.is_read_by(user_id)
        ]


@dataclass
class FakeMessageWriter:
    _store: FakeStore
    fail_create: bool = False

    def _update(self, message_id: UUID, **changes: Any) -> None:
        self._store.messages[message_id] = replace(self._store.messages[message_id], **changes)

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        if self.fail_create:
            raise TransientError("Database unavailable")
        if message.client_id is not None:
            for m in self._store.messages.values():
                if (
                    m.conversation_id == message.conversation_id
                    and m.sender_id == message.sender_id
                    and m.client_id == message.client_id
                ):
                    return m, False
        self._store.messages[message.id] = message
        return message, True

    async def create_many(self, messages: Sequence[Message]) -> None:
        for m in messages:
            self._store.messages[m.id] = m

    async def edit_text(self, message_id: UUID, text: str, edited_at: datetime) -> None:
        self._update(message_id, content=TextContent(text=text), is_edited=True, edited_at=edited_at)

    async def soft_delete(self, message_id: UUID, user_id: int, deleted_at: datetime) -> None:
        self._update(message_id, is_deleted=True, deleted_at=deleted_at, deleted_by=user_id)

    async def add_reaction(self, message_id: UUID, token: str, user_id: int) -> None:
        reactions = dict(self._store.messages[message_id].reactions)
        reactions[token] = reactions.get(token, frozenset()) | {user_id}
        self._update(message_id, reactions=reactions)

    async def remove_reaction(self, message_id: UUID, token: str, user_id: int) -> None:
        reactions = dict(self._store.messages[message_id].reactions)
        remaining = reactions.pop(token, frozenset()) - {user_id}
        if remaining:
            reactions[token] = remaining
        self._update(message_id, reactions=reactions)

    async def add_receipts(
        self, message_ids: Sequence[UUID], user_id: int, kind: ReceiptKind, at: datetime,
    ) -> int:
        added = 0
        for mid in message_ids:
            msg = self._store.messages[mid]
            if kind is ReceiptKind.READ and not msg.is_read_by(user_id):
                self._update(mid, read_by=(*msg.read_by, Receipt(user_id, at)))
                added += 1
            elif kind is ReceiptKind.DELIVERED and not msg.is_delivered_to(user_id):
                self._update(mid, delivered_to=(*msg.delivered_to, Receipt(user_id, at)))
                added += 1
        return added


@dataclass
class FakeUserReader:
    _store: FakeStore

    async def get_by_id(self, user_id: int) -> User | None:
        return self._store.users.get(user_id)

    async def get_many(self, user_ids: list[int]) -> list[User]:
        return [self._store.users[u] for u in user_ids if u in self._store.users]

    async def list_online(self) -> list[User]:
        return [
            u for u in self._store.users.values()
            if u.is_online and u.status is not PresenceStatus.INVISIBLE
        ]

    async def online_ids(self) -> set[int]:
        return {u.id for u in self._store.users.values() if u.is_online}


@dataclass
class FakeUserWriter:
    _store: FakeStore
    fail: bool = False

    def _update(self, user_id: int, **changes: Any) -> None:
        if self.fail:
            raise ConnectionError("store unavailable")
        if user_id in self._store.users:
            self._store.users[user_id] = replace(self._store.users[user_id], **changes)

    async def set_presence(
        self,
        user_id: int,
        *,
        is_online: bool,
        last_seen: datetime,
        status: PresenceStatus | None = None,
    ) -> None:
        changes: dict[str, Any] = {"is_online": is_online, "last_seen": last_seen}
        if status is not None:
            changes["status"] = status
        self._update(user_id, **changes)

    async def set_status(self, user_id: int, status: PresenceStatus, status_message: str | None) -> None:
        changes: dict[str, Any] = {"status": status}
        if status_message is not None:
            changes["status_message"] = status_message
        self._update(user_id, **changes)

    async def block(self, user_id: int, target_id: int) -> None:
        blocker = self._store.users[user_id]
        target = self._store.users[target_id]
        self._update(user_id, blocked_user_ids=blocker.blocked_user_ids | {target_id})
        self._update(target_id, blocked_by_ids=target.blocked_by_ids | {user_id})

    async def unblock(self, user_id: int, target_id: int) -> None:
        blocker = self._store.users[user_id]
        target = self._store.users[target_id]
        self._update(user_id, blocked_user_ids=blocker.blocked_user_ids - {target_id})
        self._update(target_id, blocked_by_ids=target.blocked_by_ids - {user_id})


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests. Writes apply immediately."""
    store: FakeStore = field(default_factory=FakeStore)
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        self.conversations = FakeConversationReader(self.store)
        self.conversations_w = FakeConversationWriter(self.store)
        self.participants_w = FakeParticipantWriter(self.store)
        self.messages = FakeMessageReader(self.store)
        self.messages_w = FakeMessageWriter(self.store)
        self.users = FakeUserReader(self.store)
        self.users_w = FakeUserWriter(self.store)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


@dataclass(eq=False)
class FakeConnection:
    """ConnectionHandle that records every frame it is sent."""
    name: str = "conn"
    fail: bool = False
    frames: list[dict[str, Any]] = field(default_factory=list)

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError(f"{self.name} is gone")
        self.frames.append(json.loads(data))

    def events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        return [f for f in self.frames if event_type is None or f["type"] == event_type]

    @property
    def types(self) -> list[str]:
        return [f["type"] for f in self.frames]


@dataclass
class FakeNotificationQueue:
    queued: dict[int, list[dict[str, Any]]] = field(default_factory=dict)
    fail: bool = False

    async def enqueue(self, user_id: int, notification: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("queue unavailable")
        self.queued.setdefault(user_id, []).append(notification)

    async def drain(self, user_id: int) -> list[dict[str, Any]]:
        return self.queued.pop(user_id, [])


@pytest.fixture
def uow() -> FakeUoW:
    uow = FakeUoW()
    uow.store.put(
        make_user(ALICE, name="Alice"),
        make_user(BOB, name="Bob"),
        make_user(CAROL, name="Carol"),
        make_user(DAVE, name="Dave"),
    )
    return uow
