"""In-process presence registry: which user is attached to which live connection."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Collection, Iterable
from uuid import UUID

from chat_relay.application.ports.realtime import ConnectionHandle
from chat_relay.infrastructure.ws.protocol import USER_OFFLINE, USER_ONLINE, encode

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Tracks one live connection per user and conversation room membership.

    Created once per application and torn down with it; nothing here is
    shared across processes.
    """

    def __init__(self) -> None:
        self._by_user: dict[int, ConnectionHandle] = {}
        self._by_handle: dict[ConnectionHandle, int] = {}
        self._rooms: dict[UUID, set[ConnectionHandle]] = {}
        self._lock = asyncio.Lock()

    async def register(self, user_id: int, handle: ConnectionHandle) -> ConnectionHandle | None:
        """Attach *handle* to the user. Returns the handle it replaced, if any.

        Last writer wins: a reconnect without a clean disconnect detaches the
        old handle, including its room memberships.
        """
        async with self._lock:
            previous = self._by_user.get(user_id)
            if previous is handle:
                return None
            if previous is not None:
                self._by_handle.pop(previous, None)
                self._leave_all(previous)
            self._by_user[user_id] = handle
            self._by_handle[handle] = user_id
        logger.debug("Registered user %s (online=%d)", user_id, len(self._by_user))
        return previous

    async def unregister(self, handle: ConnectionHandle) -> int | None:
        """Detach *handle*. Returns the user id only if it was that user's
        current handle, i.e. the user is now offline. Idempotent."""
        async with self._lock:
            self._leave_all(handle)
            user_id = self._by_handle.pop(handle, None)
            if user_id is None:
                return None
            if self._by_user.get(user_id) is handle:
                del self._by_user[user_id]
        logger.debug("Unregistered user %s (online=%d)", user_id, len(self._by_user))
        return user_id

    def is_online(self, user_id: int) -> bool:
        return user_id in self._by_user

    def handle_for(self, user_id: int) -> ConnectionHandle | None:
        return self._by_user.get(user_id)

    def user_for(self, handle: ConnectionHandle) -> int | None:
        return self._by_handle.get(handle)

    def online_user_ids(self) -> set[int]:
        return set(self._by_user)

    async def join_room(self, handle: ConnectionHandle, conversation_id: UUID) -> None:
        async with self._lock:
            if handle in self._by_handle:
                self._rooms.setdefault(conversation_id, set()).add(handle)

    async def leave_room(self, handle: ConnectionHandle, conversation_id: UUID) -> None:
        async with self._lock:
            self._discard(conversation_id, handle)

    async def evict(self, user_id: int, conversation_id: UUID) -> bool:
        """Drop the user's connection from the room. Returns whether it was there."""
        async with self._lock:
            handle = self._by_user.get(user_id)
            if handle is None or handle not in self._rooms.get(conversation_id, ()):
                return False
            self._discard(conversation_id, handle)
        logger.debug("Evicted user %s from room %s", user_id, conversation_id)
        return True

    def in_room(self, handle: ConnectionHandle, conversation_id: UUID) -> bool:
        return handle in self._rooms.get(conversation_id, ())

    def _discard(self, conversation_id: UUID, handle: ConnectionHandle) -> None:
        members = self._rooms.get(conversation_id)
        if members is None:
            return
        members.discard(handle)
        if not members:
            del self._rooms[conversation_id]

    def _leave_all(self, handle: ConnectionHandle) -> None:
        for conversation_id in [c for c, m in self._rooms.items() if handle in m]:
            self._discard(conversation_id, handle)

    async def send(self, handle: ConnectionHandle, event_type: str, data: dict[str, Any]) -> bool:
        return await self._send_raw(handle, encode(event_type, data))

    async def broadcast_to_room(
        self,
        conversation_id: UUID,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude: ConnectionHandle | None = None,
        members: Collection[int] | None = None,
    ) -> int:
        """Send to every connection in the conversation room. Returns delivered count.

        With *members*, connections whose user is not listed are skipped even
        if they are still in the room.
        """
        targets = [
            h for h in self._rooms.get(conversation_id, ())
            if h is not exclude
            and (members is None or self._by_handle.get(h) in members)
        ]
        return await self.deliver(targets, encode(event_type, data))

    async def broadcast(
        self,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude: ConnectionHandle | None = None,
    ) -> int:
        """Send to every live connection except *exclude*."""
        targets = [h for h in self._by_handle if h is not exclude]
        return await self.deliver(targets, encode(event_type, data))

    async def broadcast_online(self, user_id: int) -> int:
        return await self.broadcast(
            USER_ONLINE, {"user_id": user_id}, exclude=self._by_user.get(user_id),
        )

    async def broadcast_offline(self, user_id: int) -> int:
        return await self.broadcast(
            USER_OFFLINE, {"user_id": user_id}, exclude=self._by_user.get(user_id),
        )

    async def deliver(self, handles: Iterable[ConnectionHandle], raw: str) -> int:
        """Send one frame to many connections concurrently.

        Each send is isolated: a failing or slow connection does not keep the
        others from receiving the frame.
        """
        handles = list(handles)
        if not handles:
            return 0
        results = await asyncio.gather(*(self._send_raw(h, raw) for h in handles))
        return sum(results)

    async def _send_raw(self, handle: ConnectionHandle, raw: str) -> bool:
        try:
            await handle.send_text(raw)
            return True
        except Exception:
            logger.debug("Send failed for user %s", self._by_handle.get(handle), exc_info=True)
            async with self._lock:
                self._leave_all(handle)
            return False

    async def close(self) -> None:
        async with self._lock:
            self._by_user.clear()
            self._by_handle.clear()
            self._rooms.clear()
