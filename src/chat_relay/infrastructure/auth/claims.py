from __future__ import annotations

from typing import Any

import jwt

from chat_relay.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """`sub` carries the numeric user id; `name` is optional display text."""
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("Token subject is not a user id") from exc
    name = payload.get("name")
    return Principal(
        user_id=user_id,
        display_name=name if isinstance(name, str) and name else None,
    )
