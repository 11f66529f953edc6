from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from chat_relay.application.dto.message import SendMessageDTO
from chat_relay.application.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from chat_relay.domain.value_objects.content import DELETED_PLACEHOLDER, MediaContent, TextContent
from chat_relay.domain.value_objects.enums import ConversationKind, MessageType
from chat_relay.infrastructure.ws.protocol import MESSAGE_EDITED, MESSAGE_NEW, MESSAGE_SENT
from chat_relay.infrastructure.ws.registry import PresenceRegistry
from chat_relay.services import conversation_service, message_service
from chat_relay.services.notification_router import NotificationRouter
from tests.conftest import (
    ALICE,
    BOB,
    CAROL,
    FakeConnection,
    FakeNotificationQueue,
    make_conversation,
    make_message,
)


@pytest.fixture
def direct(uow):
    conv = make_conversation([ALICE, BOB], kind=ConversationKind.DIRECT)
    uow.store.put(conv)
    return conv


@pytest.fixture
def group(uow):
    conv = make_conversation([ALICE, BOB, CAROL])
    uow.store.put(conv)
    return conv


@pytest.fixture
def registry() -> PresenceRegistry:
    return PresenceRegistry()


@pytest.fixture
def router(registry) -> NotificationRouter:
    return NotificationRouter(registry, FakeNotificationQueue())


@pytest.mark.asyncio
async def test_send_text_to_direct_conversation(alice, uow, direct, registry, router):
    a_conn, b_conn = FakeConnection("a"), FakeConnection("b")
    await registry.register(ALICE, a_conn)
    await registry.register(BOB, b_conn)
    await registry.join_room(a_conn, direct.id)
    await registry.join_room(b_conn, direct.id)

    msg, created = await message_service.send_message(
        alice, SendMessageDTO(conversation_id=direct.id, content="hi"), uow, router,
        origin=a_conn,
    )

    assert created is True
    stored = uow.store.messages[msg.id]
    assert stored.type is MessageType.TEXT
    assert stored.content == TextContent(text="hi")

    conv = uow.store.conversations[direct.id]
    assert conv.last_message_id == msg.id
    assert conv.unread_count(BOB) == 1
    assert conv.unread_count(ALICE) == 0

    assert b_conn.types == [MESSAGE_NEW]
    assert b_conn.frames[0]["data"]["message"]["id"] == str(msg.id)
    assert a_conn.types == [MESSAGE_SENT]


@pytest.mark.asyncio
async def test_unread_increments_once_per_send_for_every_other_member(alice, uow, group):
    for text in ("one", "two", "three"):
        await message_service.send_message(
            alice, SendMessageDTO(conversation_id=group.id, content=text), uow,
        )

    conv = uow.store.conversations[group.id]
    assert conv.unread_count(ALICE) == 0
    assert conv.unread_count(BOB) == 3
    assert conv.unread_count(CAROL) == 3


@pytest.mark.asyncio
async def test_send_forbidden_for_non_participant(uow, direct, carol):
    with pytest.raises(ForbiddenError):
        await message_service.send_message(
            carol, SendMessageDTO(conversation_id=direct.id, content="hi"), uow,
        )


@pytest.mark.asyncio
async def test_send_to_missing_conversation(alice, uow):
    with pytest.raises(NotFoundError):
        await message_service.send_message(
            alice, SendMessageDTO(conversation_id=uuid.uuid4(), content="hi"), uow,
        )


@pytest.mark.asyncio
async def test_send_rejects_malformed_content(alice, uow, direct):
    with pytest.raises(ValidationError):
        await message_service.send_message(
            alice,
            SendMessageDTO(conversation_id=direct.id, type=MessageType.LOCATION, content={"latitude": 1}),
            uow,
        )
    assert uow.store.messages == {}


@pytest.mark.asyncio
async def test_send_blocked_in_direct_conversation(alice, uow, direct):
    await uow.users_w.block(BOB, ALICE)

    with pytest.raises(ForbiddenError):
        await message_service.send_message(
            alice, SendMessageDTO(conversation_id=direct.id, content="hi"), uow,
        )


@pytest.mark.asyncio
async def test_failed_persist_leaves_conversation_untouched(alice, uow, direct):
    uow.messages_w.fail_create = True

    with pytest.raises(TransientError):
        await message_service.send_message(
            alice, SendMessageDTO(conversation_id=direct.id, content="hi"), uow,
        )

    assert uow.store.conversations[direct.id] == direct


@pytest.mark.asyncio
async def test_post_persist_failure_does_not_fail_send(alice, uow, direct, monkeypatch):
    async def broken(*args, **kwargs):
        raise ConnectionError("store went away")

    monkeypatch.setattr(uow.participants_w, "increment_unread", broken)

    msg, created = await message_service.send_message(
        alice, SendMessageDTO(conversation_id=direct.id, content="hi"), uow,
    )

    assert created is True
    assert msg.id in uow.store.messages
    assert uow.rollbacks == 1


@pytest.mark.asyncio
async def test_fan_out_failure_does_not_fail_send(alice, uow, direct, registry, router):
    dead = FakeConnection("dead", fail=True)
    await registry.register(BOB, dead)
    await registry.join_room(dead, direct.id)

    msg, created = await message_service.send_message(
        alice, SendMessageDTO(conversation_id=direct.id, content="hi"), uow, router,
    )

    assert created is True
    assert uow.store.conversations[direct.id].last_message_id == msg.id


@pytest.mark.asyncio
async def test_duplicate_client_id_is_idempotent(alice, uow, direct):
    dto = SendMessageDTO(conversation_id=direct.id, content="hi", client_id="c-1")

    first, created1 = await message_service.send_message(alice, dto, uow)
    second, created2 = await message_service.send_message(alice, dto, uow)

    assert created1 is True
    assert created2 is False
    assert first.id == second.id
    assert uow.store.conversations[direct.id].unread_count(BOB) == 1


@pytest.mark.asyncio
async def test_reply_must_be_in_same_conversation(alice, uow, direct, group):
    elsewhere = make_message(group.id, BOB)
    uow.store.put(elsewhere)

    with pytest.raises(NotFoundError):
        await message_service.send_message(
            alice,
            SendMessageDTO(conversation_id=direct.id, content="re", reply_to_id=elsewhere.id),
            uow,
        )


@pytest.mark.asyncio
async def test_edit_by_sender(alice, uow, direct):
    msg = make_message(direct.id, ALICE)
    uow.store.put(msg)

    edited = await message_service.edit_message(msg.id, alice, "fixed", uow)

    assert edited.content == TextContent(text="fixed")
    assert edited.is_edited
    assert uow.store.messages[msg.id].content == TextContent(text="fixed")


@pytest.mark.asyncio
async def test_edit_does_not_reach_a_participant_who_left(alice, bob, uow, group, registry, router):
    msg = make_message(group.id, ALICE, text="secret v1")
    uow.store.put(msg)
    a_conn, b_conn = FakeConnection("a"), FakeConnection("b")
    for user_id, conn in ((ALICE, a_conn), (BOB, b_conn)):
        await registry.register(user_id, conn)
        await registry.join_room(conn, group.id)

    # no router: the stale room membership is left in place
    await conversation_service.leave_conversation(group.id, bob, uow)
    await message_service.edit_message(msg.id, alice, "secret v2", uow, router)

    assert registry.in_room(b_conn, group.id)
    assert b_conn.events(MESSAGE_EDITED) == []
    assert len(a_conn.events(MESSAGE_EDITED)) == 1


@pytest.mark.asyncio
async def test_edit_by_other_user_forbidden(bob, uow, direct):
    msg = make_message(direct.id, ALICE)
    uow.store.put(msg)

    with pytest.raises(ForbiddenError):
        await message_service.edit_message(msg.id, bob, "nope", uow)


@pytest.mark.asyncio
async def test_edit_non_text_is_invalid(alice, uow, direct):
    msg = replace(make_message(direct.id, ALICE), type=MessageType.IMAGE, content=MediaContent(url="u"))
    uow.store.put(msg)

    with pytest.raises(InvalidStateError):
        await message_service.edit_message(msg.id, alice, "caption", uow)


@pytest.mark.asyncio
async def test_deleted_message_is_terminal(alice, uow, direct):
    msg = make_message(direct.id, ALICE)
    uow.store.put(msg)
    await message_service.edit_message(msg.id, alice, "edited first", uow)

    deleted = await message_service.delete_message(msg.id, alice, uow)

    assert deleted.is_deleted
    assert deleted.display_content == DELETED_PLACEHOLDER
    stored = uow.store.messages[msg.id]
    assert stored.content == TextContent(text="edited first")
    with pytest.raises(InvalidStateError):
        await message_service.edit_message(msg.id, alice, "again", uow)
    with pytest.raises(InvalidStateError):
        await message_service.add_reaction(msg.id, alice, "👍", uow)
    with pytest.raises(InvalidStateError):
        await message_service.delete_message(msg.id, alice, uow)


@pytest.mark.asyncio
async def test_delete_by_admin_or_sender_only(alice, bob, carol, uow, group):
    by_bob = make_message(group.id, BOB)
    by_carol = make_message(group.id, CAROL)
    uow.store.put(by_bob, by_carol)

    with pytest.raises(ForbiddenError):
        await message_service.delete_message(by_carol.id, bob, uow)

    await message_service.delete_message(by_carol.id, alice, uow)
    assert uow.store.messages[by_carol.id].deleted_by == ALICE


@pytest.mark.asyncio
async def test_reaction_round_trip(alice, uow, direct):
    msg = make_message(direct.id, BOB)
    uow.store.put(msg)

    await message_service.add_reaction(msg.id, alice, "👍", uow)
    twice = await message_service.add_reaction(msg.id, alice, "👍", uow)
    assert twice.reactions == {"👍": frozenset({ALICE})}

    removed = await message_service.remove_reaction(msg.id, alice, "👍", uow)
    assert "👍" not in removed.reactions
    assert "👍" not in uow.store.messages[msg.id].reactions


@pytest.mark.asyncio
async def test_shared_reaction_survives_one_removal(alice, bob, uow, direct):
    msg = make_message(direct.id, ALICE)
    uow.store.put(msg)

    await message_service.add_reaction(msg.id, alice, "🔥", uow)
    await message_service.add_reaction(msg.id, bob, "🔥", uow)
    result = await message_service.remove_reaction(msg.id, alice, "🔥", uow)

    assert result.reactions == {"🔥": frozenset({BOB})}
    assert uow.store.messages[msg.id].reactions == {"🔥": frozenset({BOB})}


@pytest.mark.asyncio
async def test_receipts_are_recorded_once(bob, uow, direct):
    msg = make_message(direct.id, ALICE)
    uow.store.put(msg)

    await message_service.mark_as_read(msg.id, bob, uow)
    again = await message_service.mark_as_read(msg.id, bob, uow)
    await message_service.mark_as_delivered(msg.id, bob, uow)

    assert [r.user_id for r in again.read_by] == [BOB]
    stored = uow.store.messages[msg.id]
    assert len(stored.read_by) == 1
    assert stored.is_delivered_to(BOB)


@pytest.mark.asyncio
async def test_forward_to_all_targets(alice, uow, direct, group):
    source = make_message(direct.id, BOB, text="look")
    uow.store.put(source)

    copies = await message_service.forward_message(source.id, alice, [group.id], uow)

    assert len(copies) == 1
    copy = uow.store.messages[copies[0].id]
    assert copy.conversation_id == group.id
    assert copy.sender_id == ALICE
    assert copy.content == source.content
    assert copy.forwarded_from.message_id == source.id
    assert copy.forwarded_from.user_id == BOB
    assert copy.reactions == {}


@pytest.mark.asyncio
async def test_forward_is_all_or_nothing(alice, uow, direct, group):
    source = make_message(direct.id, BOB)
    foreign = make_conversation([BOB, CAROL])
    uow.store.put(source, foreign)
    before = dict(uow.store.messages)

    with pytest.raises(ForbiddenError):
        await message_service.forward_message(source.id, alice, [group.id, foreign.id], uow)

    assert uow.store.messages == before


@pytest.mark.asyncio
async def test_search_requires_min_length(alice, uow, direct):
    uow.store.put(make_message(direct.id, BOB, text="Lunch tomorrow?"))

    with pytest.raises(ValidationError):
        await message_service.search_messages(direct.id, alice, "l", uow)

    found = await message_service.search_messages(direct.id, alice, "LUNCH", uow)
    assert len(found) == 1


@pytest.mark.asyncio
async def test_list_messages_newest_first(alice, uow, direct):
    now = datetime.now(timezone.utc)
    older = make_message(direct.id, BOB, text="first", created_at=now - timedelta(minutes=1))
    newer = make_message(direct.id, BOB, text="second", created_at=now)
    uow.store.put(older, newer)

    page = await message_service.list_messages(direct.id, alice, uow, limit=10)

    assert [m.id for m in page] == [newer.id, older.id]
