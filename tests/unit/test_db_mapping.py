from __future__ import annotations

from dataclasses import replace

import pytest
from sqlalchemy import inspect

from chat_relay.application.exceptions import TransientError
from chat_relay.infrastructure.db.models import UserModel
from chat_relay.infrastructure.db.repositories.message import MessageWriterRepo
from tests.conftest import ALICE, make_conversation, make_message


def test_read_only_relationships_do_not_cascade():
    for rel in inspect(UserModel).relationships:
        if rel.viewonly:
            assert rel.passive_deletes is False, rel.key

    assert UserModel.blocked_by.property.viewonly is True
    assert UserModel.blocks.property.passive_deletes is True


class _Result:
    def scalar_one_or_none(self):
        return None


class _ConflictingSession:
    async def execute(self, stmt):
        return _Result()


@pytest.mark.asyncio
async def test_idempotent_insert_with_missing_conflict_row_is_transient(monkeypatch):
    repo = MessageWriterRepo(_ConflictingSession())
    msg = replace(make_message(make_conversation([ALICE]).id, ALICE), client_id="c-1")

    async def vanished(*args, **kwargs):
        return None

    monkeypatch.setattr(repo, "_get_by_client_id", vanished)

    with pytest.raises(TransientError):
        await repo.create_if_not_exists(msg)
