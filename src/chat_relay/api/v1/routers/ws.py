from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from chat_relay.api.deps import get_verifier
from chat_relay.application.dto.message import SendMessageDTO
from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import (
    AppError,
    ForbiddenError,
    TransientError,
    ValidationError,
)
from chat_relay.config import settings
from chat_relay.domain.entities.conversation import Conversation
from chat_relay.domain.value_objects.enums import MessageType, PresenceStatus
from chat_relay.infrastructure.ws import protocol as ev
from chat_relay.infrastructure.ws.connection import WebSocketConnection
from chat_relay.infrastructure.ws.protocol import WsInbound
from chat_relay.infrastructure.ws.registry import PresenceRegistry
from chat_relay.services import (
    conversation_service,
    message_service,
    presence_service,
    user_service,
)
from chat_relay.services.notification_router import NotificationRouter, message_payload
from chat_relay.workers.presence_reconciler import UoWFactory

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


class _Session:
    """Per-connection context handed to every event handler."""

    def __init__(self, websocket: WebSocket, principal: Principal) -> None:
        state = websocket.app.state
        self.principal = principal
        self.handle = WebSocketConnection(websocket)
        self.registry: PresenceRegistry = state.registry
        self.notifier: NotificationRouter = state.notifier
        self.uow_factory: UoWFactory = state.uow_factory

    @property
    def user_id(self) -> int:
        return self.principal.user_id

    async def reply(self, event_type: str, data: dict[str, Any]) -> None:
        await self.registry.send(self.handle, event_type, data)


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    await websocket.accept()
    session = _Session(websocket, principal)
    async with session.uow_factory() as uow:
        await presence_service.connect(
            principal, session.handle, session.registry,
            websocket.app.state.notification_queue, uow,
        )
    logger.info("User %s connected", principal.user_id)

    heartbeat_task = asyncio.create_task(
        _heartbeat(session), name=f"ws-heartbeat-{principal.user_id}",
    )
    try:
        await _read_loop(websocket, session)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for user %s", principal.user_id)
    finally:
        heartbeat_task.cancel()
        async with session.uow_factory() as uow:
            await presence_service.disconnect(session.handle, session.registry, uow)
        logger.info("User %s disconnected", principal.user_id)


async def _heartbeat(session: _Session) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await session.reply(ev.PONG, {})
    except asyncio.CancelledError:
        pass


async def _read_loop(ws: WebSocket, session: _Session) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except Exception:
            await session.reply(
                ev.ERROR, {"code": "invalid_payload", "message": "Malformed event"},
            )
            continue

        handler = _HANDLERS.get(msg.type)
        if handler is None:
            await session.reply(
                ev.ERROR,
                {"code": "unknown_type", "message": f"Unknown event {msg.type}"},
            )
            continue

        try:
            await handler(session, msg.data)
        except TransientError as exc:
            logger.warning("Transient failure on %s: %s", msg.type, exc.detail)
            await session.reply(
                ev.ERROR, {"code": exc.code, "message": exc.public_detail, "event": msg.type},
            )
        except AppError as exc:
            await session.reply(
                ev.ERROR, {"code": exc.code, "message": exc.detail, "event": msg.type},
            )
        except Exception:
            logger.exception("Unhandled error on %s for user %s", msg.type, session.user_id)
            await session.reply(
                ev.ERROR,
                {
                    "code": TransientError.code,
                    "message": TransientError.public_detail,
                    "event": msg.type,
                },
            )


def _uuid(data: dict[str, Any], key: str) -> UUID:
    try:
        return UUID(str(data[key]))
    except (KeyError, ValueError) as exc:
        raise ValidationError(f"{key} is required and must be a UUID") from exc


def _optional_uuid(data: dict[str, Any], key: str) -> UUID | None:
    return _uuid(data, key) if data.get(key) else None


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{key} is required")
    return value


async def _ping(session: _Session, data: dict[str, Any]) -> None:
    await session.reply(ev.PONG, {})


async def _join(session: _Session, data: dict[str, Any]) -> None:
    conversation_id = _uuid(data, "conversation_id")
    async with session.uow_factory() as uow:
        await conversation_service.get_conversation(conversation_id, session.principal, uow)
        await session.registry.join_room(session.handle, conversation_id)
        await conversation_service.reset_unread_count(uow, conversation_id, session.user_id)
        await uow.commit()
    await session.reply(ev.CONVERSATION_JOINED, {"conversation_id": str(conversation_id)})


async def _leave(session: _Session, data: dict[str, Any]) -> None:
    conversation_id = _uuid(data, "conversation_id")
    await session.registry.leave_room(session.handle, conversation_id)
    await session.reply(ev.CONVERSATION_LEFT, {"conversation_id": str(conversation_id)})


async def _send(session: _Session, data: dict[str, Any]) -> None:
    # Older clients nest the payload under "message".
    body = data.get("message") if isinstance(data.get("message"), dict) else data
    try:
        msg_type = MessageType(body.get("type", MessageType.TEXT))
    except ValueError as exc:
        raise ValidationError("Unknown message type") from exc
    client_id = body.get("client_id")
    dto = SendMessageDTO(
        conversation_id=_uuid(data, "conversation_id"),
        type=msg_type,
        content=body.get("content"),
        reply_to_id=_optional_uuid(body, "reply_to_id"),
        client_id=str(client_id) if client_id is not None else None,
    )
    async with session.uow_factory() as uow:
        msg, created = await message_service.send_message(
            session.principal, dto, uow, session.notifier,
            origin=session.handle,
            max_text_length=settings.MESSAGE_TEXT_MAX_LENGTH,
        )
    if not created:
        await session.reply(
            ev.MESSAGE_SENT, {"message": message_payload(msg), "client_id": msg.client_id},
        )


async def _react(session: _Session, data: dict[str, Any]) -> None:
    async with session.uow_factory() as uow:
        await message_service.add_reaction(
            _uuid(data, "message_id"), session.principal, _str(data, "reaction"),
            uow, session.notifier,
        )


async def _remove_reaction(session: _Session, data: dict[str, Any]) -> None:
    async with session.uow_factory() as uow:
        await message_service.remove_reaction(
            _uuid(data, "message_id"), session.principal, _str(data, "reaction"),
            uow, session.notifier,
        )


async def _read(session: _Session, data: dict[str, Any]) -> None:
    async with session.uow_factory() as uow:
        if data.get("message_id"):
            await message_service.mark_as_read(
                _uuid(data, "message_id"), session.principal, uow, session.notifier,
            )
        else:
            await conversation_service.mark_conversation_read(
                _uuid(data, "conversation_id"), session.principal, uow, session.notifier,
            )


async def _delivered(session: _Session, data: dict[str, Any]) -> None:
    async with session.uow_factory() as uow:
        await message_service.mark_as_delivered(
            _uuid(data, "message_id"), session.principal, uow, session.notifier,
        )


async def _room_member(session: _Session, data: dict[str, Any]) -> Conversation:
    conversation_id = _uuid(data, "conversation_id")
    async with session.uow_factory() as uow:
        return await conversation_service.get_conversation(
            conversation_id, session.principal, uow,
        )


def _typing(event_type: str) -> Callable[[_Session, dict[str, Any]], Awaitable[None]]:
    async def handler(session: _Session, data: dict[str, Any]) -> None:
        conversation = await _room_member(session, data)
        await session.notifier.publish(
            conversation,
            event_type,
            {
                "conversation_id": str(conversation.id),
                "user_id": session.user_id,
                "display_name": session.principal.label,
            },
            exclude=session.handle,
        )
    return handler


async def _status_update(session: _Session, data: dict[str, Any]) -> None:
    try:
        status = PresenceStatus(data.get("status"))
    except ValueError as exc:
        raise ValidationError("Unknown status") from exc
    status_message = data.get("status_message")
    if status_message is not None and not isinstance(status_message, str):
        raise ValidationError("status_message must be a string")
    async with session.uow_factory() as uow:
        await user_service.update_status(
            session.principal, status, status_message, uow, session.registry,
        )


async def _call_initiate(session: _Session, data: dict[str, Any]) -> None:
    conversation = await _room_member(session, data)
    call_type = data.get("call_type", "audio")
    if call_type not in ("audio", "video"):
        raise ValidationError("call_type must be audio or video")
    call_id = uuid.uuid4().hex
    await session.notifier.publish(
        conversation,
        ev.CALL_INCOMING,
        {
            "call_id": call_id,
            "conversation_id": str(conversation.id),
            "call_type": call_type,
            "caller_id": session.user_id,
            "caller_name": session.principal.label,
        },
        exclude=session.handle,
    )
    await session.reply(
        ev.CALL_INITIATED, {"call_id": call_id, "conversation_id": str(conversation.id)},
    )


def _call_signal(event_type: str) -> Callable[[_Session, dict[str, Any]], Awaitable[None]]:
    async def handler(session: _Session, data: dict[str, Any]) -> None:
        conversation = await _room_member(session, data)
        if not session.registry.in_room(session.handle, conversation.id):
            raise ForbiddenError("Join the conversation first")
        await session.notifier.publish(
            conversation,
            event_type,
            {
                "call_id": _str(data, "call_id"),
                "conversation_id": str(conversation.id),
                "user_id": session.user_id,
            },
            exclude=session.handle,
        )
    return handler


_HANDLERS: dict[str, Callable[[_Session, dict[str, Any]], Awaitable[None]]] = {
    ev.PING: _ping,
    ev.CONVERSATION_JOIN: _join,
    ev.CONVERSATION_LEAVE: _leave,
    ev.MESSAGE_SEND: _send,
    ev.MESSAGE_REACT: _react,
    ev.MESSAGE_REMOVE_REACTION: _remove_reaction,
    ev.MESSAGE_READ: _read,
    ev.MESSAGE_DELIVERED: _delivered,
    ev.TYPING_START: _typing(ev.TYPING_START),
    ev.TYPING_STOP: _typing(ev.TYPING_STOP),
    ev.USER_STATUS_UPDATE: _status_update,
    ev.CALL_INITIATE: _call_initiate,
    ev.CALL_ACCEPT: _call_signal(ev.CALL_ACCEPTED),
    ev.CALL_REJECT: _call_signal(ev.CALL_REJECTED),
    ev.CALL_END: _call_signal(ev.CALL_ENDED),
}
