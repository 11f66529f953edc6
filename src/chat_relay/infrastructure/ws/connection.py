from __future__ import annotations

from starlette.websockets import WebSocket


class WebSocketConnection:
    """ConnectionHandle over a Starlette WebSocket.

    Identity-hashed, so it can key the presence registry.
    """

    __slots__ = ("_websocket",)

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send_text(self, data: str) -> None:
        await self._websocket.send_text(data)
