from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.content import (
    DELETED_PLACEHOLDER,
    ContentError,
    LocationContent,
    MediaContent,
    StickerContent,
    TextContent,
    content_from_dict,
    content_to_dict,
    parse_content,
)
from chat_relay.domain.value_objects.enums import MessageType


def test_text_accepts_plain_string_and_object():
    assert parse_content(MessageType.TEXT, "hi") == TextContent(text="hi")
    assert parse_content(MessageType.TEXT, {"text": "hi"}) == TextContent(text="hi")


@pytest.mark.parametrize("raw", [None, "", "   ", {"url": "x"}, 5])
def test_text_rejects_missing_text(raw):
    with pytest.raises(ContentError):
        parse_content(MessageType.TEXT, raw)


def test_text_length_limit():
    with pytest.raises(ContentError):
        parse_content(MessageType.TEXT, "x" * 11, max_text_length=10)


def test_media_accepts_nested_payload():
    content = parse_content(
        MessageType.IMAGE,
        {"media": {"url": "https://cdn/x.png", "mimeType": "image/png",
                   "dimensions": {"width": 10, "height": 20}}},
    )

    assert content == MediaContent(
        url="https://cdn/x.png", mime_type="image/png", width=10, height=20,
    )


def test_location_validates_coordinates():
    assert parse_content(MessageType.LOCATION, {"latitude": 10, "longitude": 20}) == (
        LocationContent(latitude=10.0, longitude=20.0)
    )
    with pytest.raises(ContentError):
        parse_content(MessageType.LOCATION, {"latitude": 100, "longitude": 0})
    with pytest.raises(ContentError):
        parse_content(MessageType.LOCATION, {"latitude": "north", "longitude": 0})


def test_sticker_requires_id():
    assert parse_content(MessageType.STICKER, {"id": "cat"}) == StickerContent(sticker_id="cat")
    with pytest.raises(ContentError):
        parse_content(MessageType.STICKER, {})


def test_message_rejects_content_of_wrong_variant():
    with pytest.raises(ContentError):
        Message(
            id=uuid.uuid4(),
            conversation_id=uuid.uuid4(),
            sender_id=1,
            type=MessageType.IMAGE,
            content=TextContent(text="not an image"),
            created_at=datetime.now(timezone.utc),
        )


def test_stored_content_round_trip():
    content = MediaContent(url="u", filename="a.pdf", size=3)
    assert content_from_dict(MessageType.FILE, content_to_dict(content)) == content


def test_deleted_message_displays_placeholder_for_any_type():
    msg = Message(
        id=uuid.uuid4(),
        conversation_id=uuid.uuid4(),
        sender_id=1,
        type=MessageType.IMAGE,
        content=MediaContent(url="u"),
        created_at=datetime.now(timezone.utc),
    )
    assert msg.display_content == "📷 Image"
    assert replace(msg, is_deleted=True).display_content == DELETED_PLACEHOLDER
