from __future__ import annotations

from dataclasses import replace

import pytest

from chat_relay.application.exceptions import NotFoundError, ValidationError
from chat_relay.domain.value_objects.enums import PresenceStatus
from chat_relay.infrastructure.ws.protocol import STATUS_UPDATED, USER_OFFLINE
from chat_relay.infrastructure.ws.registry import PresenceRegistry
from chat_relay.services import user_service
from tests.conftest import ALICE, BOB, CAROL, FakeConnection


@pytest.mark.asyncio
async def test_get_profile_missing_user(uow):
    with pytest.raises(NotFoundError):
        await user_service.get_profile(999, uow)


@pytest.mark.asyncio
async def test_list_online_hides_invisible(uow):
    uow.store.put(
        replace(uow.store.users[BOB], is_online=True),
        replace(uow.store.users[CAROL], is_online=True, status=PresenceStatus.INVISIBLE),
    )

    online = await user_service.list_online_users(uow)

    assert [u.id for u in online] == [BOB]


@pytest.mark.asyncio
async def test_update_status_broadcasts_to_others(alice, uow):
    registry = PresenceRegistry()
    own, other = FakeConnection("alice"), FakeConnection("bob")
    await registry.register(ALICE, own)
    await registry.register(BOB, other)

    user = await user_service.update_status(alice, PresenceStatus.AWAY, "lunch", uow, registry)

    assert user.status is PresenceStatus.AWAY
    assert uow.store.users[ALICE].status_message == "lunch"
    assert other.types == [STATUS_UPDATED]
    assert other.frames[0]["data"] == {"user_id": ALICE, "status": "away", "status_message": "lunch"}
    assert own.frames == []


@pytest.mark.asyncio
async def test_going_invisible_looks_like_going_offline(alice, uow):
    registry = PresenceRegistry()
    other = FakeConnection("bob")
    await registry.register(BOB, other)

    await user_service.update_status(alice, PresenceStatus.INVISIBLE, None, uow, registry)

    assert other.types == [USER_OFFLINE]


@pytest.mark.asyncio
async def test_status_message_length_is_limited(alice, uow):
    with pytest.raises(ValidationError):
        await user_service.update_status(alice, PresenceStatus.ONLINE, "x" * 101, uow)


@pytest.mark.asyncio
async def test_block_and_unblock(alice, uow):
    await user_service.block_user(alice, BOB, uow)
    assert uow.store.users[ALICE].has_blocked(BOB)
    assert uow.store.users[BOB].is_blocked_by(ALICE)

    await user_service.unblock_user(alice, BOB, uow)
    assert not uow.store.users[ALICE].has_blocked(BOB)


@pytest.mark.asyncio
async def test_cannot_block_self_or_unknown_user(alice, uow):
    with pytest.raises(ValidationError):
        await user_service.block_user(alice, ALICE, uow)
    with pytest.raises(NotFoundError):
        await user_service.block_user(alice, 999, uow)
