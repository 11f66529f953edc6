from __future__ import annotations

from typing import Protocol

from chat_relay.application.dto.principal import Principal


class TokenVerifier(Protocol):
    """Turns a bearer token into the caller's identity.

    Implementations raise on any token they cannot verify; callers
    map that to 401 over HTTP and close code 4001 over the socket.
    """

    async def verify(self, token: str) -> Principal: ...
