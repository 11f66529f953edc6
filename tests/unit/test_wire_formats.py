from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

import pytest

from chat_relay.infrastructure.bus.serializer import (
    deserialize_notification,
    serialize_notification,
)
from chat_relay.infrastructure.db.repositories._cursor import decode_cursor, encode_cursor


def test_notification_keeps_payload_and_queue_time():
    at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    cid = uuid.uuid4()

    raw = serialize_notification({"title": "Alice", "conversation_id": cid}, queued_at=at)
    restored = deserialize_notification(raw)

    assert restored == {
        "title": "Alice",
        "conversation_id": str(cid),
        "queued_at": "2024-05-01T12:00:00+00:00",
    }


@pytest.mark.parametrize(
    "raw",
    [
        "[]",
        json.dumps({"event": "notification:new", "data": {}}),
        json.dumps({"v": 1, "data": "text"}),
        "not json",
    ],
)
def test_foreign_notification_records_are_rejected(raw):
    with pytest.raises(ValueError):
        deserialize_notification(raw)


def test_cursor_is_opaque_and_reversible():
    at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    cid = uuid.uuid4()

    cursor = encode_cursor(at, cid)

    assert "=" not in cursor
    assert decode_cursor(cursor) == (at, cid)


@pytest.mark.parametrize("cursor", ["", "%%%", "bm90IGpzb24", "eyJhdCI6IDF9"])
def test_malformed_cursor_raises_value_error(cursor):
    with pytest.raises(ValueError):
        decode_cursor(cursor)
