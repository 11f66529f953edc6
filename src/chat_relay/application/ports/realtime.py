from __future__ import annotations

from typing import Protocol


class ConnectionHandle(Protocol):
    """A live client connection able to receive serialized events."""

    async def send_text(self, data: str) -> None: ...
