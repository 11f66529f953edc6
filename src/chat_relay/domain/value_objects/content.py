"""Message content variants, one per message type.

A message carries exactly one variant; which one is fixed by its type.
`parse_content` is the only way raw client payloads become content.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from chat_relay.domain.value_objects.enums import MessageType

DELETED_PLACEHOLDER = "This message was deleted"


class ContentError(ValueError):
    """Raw payload does not match the shape required by the message type."""


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str


@dataclass(frozen=True, slots=True)
class SystemContent:
    text: str


@dataclass(frozen=True, slots=True)
class MediaContent:
    """Image, video, audio and file messages."""

    url: str
    filename: str | None = None
    size: int | None = None
    mime_type: str | None = None
    duration: float | None = None
    thumbnail: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True, slots=True)
class LocationContent:
    latitude: float
    longitude: float
    address: str | None = None


@dataclass(frozen=True, slots=True)
class ContactContent:
    name: str
    phone: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class StickerContent:
    sticker_id: str
    url: str | None = None


MessageContent = (
    TextContent
    | SystemContent
    | MediaContent
    | LocationContent
    | ContactContent
    | StickerContent
)

CONTENT_TYPES: dict[MessageType, type] = {
    MessageType.TEXT: TextContent,
    MessageType.SYSTEM: SystemContent,
    MessageType.IMAGE: MediaContent,
    MessageType.VIDEO: MediaContent,
    MessageType.AUDIO: MediaContent,
    MessageType.FILE: MediaContent,
    MessageType.LOCATION: LocationContent,
    MessageType.CONTACT: ContactContent,
    MessageType.STICKER: StickerContent,
}

_PREVIEWS: dict[MessageType, str] = {
    MessageType.IMAGE: "📷 Image",
    MessageType.VIDEO: "🎥 Video",
    MessageType.AUDIO: "🎵 Audio",
    MessageType.FILE: "📎 File",
    MessageType.LOCATION: "📍 Location",
    MessageType.CONTACT: "👤 Contact",
    MessageType.STICKER: "😀 Sticker",
}


def check_content(msg_type: MessageType, content: MessageContent) -> None:
    expected = CONTENT_TYPES[msg_type]
    if not isinstance(content, expected):
        raise ContentError(
            f"{msg_type.value} message requires {expected.__name__}, "
            f"got {type(content).__name__}"
        )


def _text(raw: Any, max_length: int) -> str:
    if isinstance(raw, dict):
        raw = raw.get("text")
    if not isinstance(raw, str) or not raw.strip():
        raise ContentError("text is required")
    if len(raw) > max_length:
        raise ContentError(f"text cannot exceed {max_length} characters")
    return raw


def _require_dict(msg_type: MessageType, raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ContentError(f"{msg_type.value} content must be an object")
    # Nested shapes from older clients: {"media": {...}}, {"location": {...}}
    nested = raw.get(
        "media" if CONTENT_TYPES[msg_type] is MediaContent else msg_type.value
    )
    return nested if isinstance(nested, dict) else raw


def _number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ContentError(f"{key} must be a number")
    return float(value)


def parse_content(
    msg_type: MessageType,
    raw: Any,
    *,
    max_text_length: int = 5000,
) -> MessageContent:
    """Build the content variant for *msg_type* from a client payload."""
    if msg_type is MessageType.TEXT:
        return TextContent(text=_text(raw, max_text_length))
    if msg_type is MessageType.SYSTEM:
        return SystemContent(text=_text(raw, max_text_length))

    data = _require_dict(msg_type, raw)
    kind = CONTENT_TYPES[msg_type]

    if kind is MediaContent:
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise ContentError("url is required")
        dimensions = data.get("dimensions") or {}
        return MediaContent(
            url=url,
            filename=data.get("filename"),
            size=data.get("size"),
            mime_type=data.get("mime_type", data.get("mimeType")),
            duration=data.get("duration"),
            thumbnail=data.get("thumbnail"),
            width=data.get("width", dimensions.get("width")),
            height=data.get("height", dimensions.get("height")),
        )

    if kind is LocationContent:
        latitude = _number(data, "latitude")
        longitude = _number(data, "longitude")
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ContentError("coordinates out of range")
        return LocationContent(
            latitude=latitude, longitude=longitude, address=data.get("address"),
        )

    if kind is ContactContent:
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ContentError("contact name is required")
        return ContactContent(
            name=name, phone=data.get("phone"), email=data.get("email"),
        )

    sticker_id = data.get("sticker_id", data.get("id"))
    if not isinstance(sticker_id, str) or not sticker_id:
        raise ContentError("sticker id is required")
    return StickerContent(sticker_id=sticker_id, url=data.get("url"))


def content_to_dict(content: MessageContent) -> dict[str, Any]:
    return asdict(content)


def content_from_dict(msg_type: MessageType, data: dict[str, Any]) -> MessageContent:
    """Rebuild a stored variant. Stored rows are trusted, no validation."""
    return CONTENT_TYPES[msg_type](**data)


def preview_text(msg_type: MessageType, content: MessageContent) -> str:
    if isinstance(content, (TextContent, SystemContent)):
        return content.text
    return _PREVIEWS.get(msg_type, "Unknown message type")
