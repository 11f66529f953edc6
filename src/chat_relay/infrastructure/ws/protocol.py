"""WebSocket message envelope models and event names."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # conversation:join | message:send | typing:start | ping ...
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # message:new | message:sent | user:online | error | pong ...
    data: dict[str, Any] = {}


# inbound
CONVERSATION_JOIN = "conversation:join"
CONVERSATION_LEAVE = "conversation:leave"
MESSAGE_SEND = "message:send"
MESSAGE_REACT = "message:react"
MESSAGE_REMOVE_REACTION = "message:remove_reaction"
MESSAGE_READ = "message:read"
MESSAGE_DELIVERED = "message:delivered"
TYPING_START = "typing:start"
TYPING_STOP = "typing:stop"
USER_STATUS_UPDATE = "user:status_update"
CALL_INITIATE = "call:initiate"
CALL_ACCEPT = "call:accept"
CALL_REJECT = "call:reject"
CALL_END = "call:end"
PING = "ping"

# outbound
CONVERSATION_JOINED = "conversation:joined"
CONVERSATION_LEFT = "conversation:left"
MESSAGE_NEW = "message:new"
MESSAGE_SENT = "message:sent"
MESSAGE_EDITED = "message:edited"
MESSAGE_DELETED = "message:deleted"
REACTION_ADDED = "message:reaction"
REACTION_REMOVED = "message:reaction_removed"
READ_RECEIPT = "message:read"
DELIVERY_RECEIPT = "message:delivered"
USER_ONLINE = "user:online"
USER_OFFLINE = "user:offline"
STATUS_UPDATED = "user:status_updated"
NOTIFICATION_NEW = "notification:new"
CALL_INITIATED = "call:initiated"
CALL_INCOMING = "call:incoming"
CALL_ACCEPTED = "call:accepted"
CALL_REJECTED = "call:rejected"
CALL_ENDED = "call:ended"
ERROR = "error"
PONG = "pong"


def encode(event_type: str, data: dict[str, Any]) -> str:
    return WsOutbound(type=event_type, data=data).model_dump_json()
