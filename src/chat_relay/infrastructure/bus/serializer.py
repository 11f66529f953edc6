"""Wire format of queued notifications.

Each entry is a JSON object stamped with the time it was queued so clients
can order notifications they receive late.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

FORMAT_VERSION = 1


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_notification(notification: dict[str, Any], queued_at: datetime | None = None) -> str:
    record = {
        "v": FORMAT_VERSION,
        "queued_at": queued_at or datetime.now(timezone.utc),
        "data": notification,
    }
    return json.dumps(record, cls=_Encoder)


def deserialize_notification(raw: str | bytes) -> dict[str, Any]:
    """Returns the notification with `queued_at` merged in.

    Raises ValueError for entries not written by serialize_notification.
    """
    record = json.loads(raw)
    if not isinstance(record, dict) or record.get("v") != FORMAT_VERSION:
        raise ValueError("Unsupported notification record")
    data = record.get("data")
    if not isinstance(data, dict):
        raise ValueError("Notification record has no data")
    return {**data, "queued_at": record.get("queued_at")}
