"""Keyset cursors for the conversation list.

A cursor marks the last row of a page by its activity timestamp and id.
Clients get it base64-encoded and must treat it as opaque.
"""
from __future__ import annotations

import base64
import json
from datetime import datetime
from uuid import UUID


def encode_cursor(last_activity: datetime, conversation_id: UUID) -> str:
    raw = json.dumps(
        {"at": last_activity.isoformat(), "id": str(conversation_id)},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    """Raises ValueError for anything that was not produced by encode_cursor."""
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return datetime.fromisoformat(data["at"]), UUID(data["id"])
    except (KeyError, TypeError) as exc:
        raise ValueError("Malformed cursor") from exc
