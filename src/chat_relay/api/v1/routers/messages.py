from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, Response

from chat_relay.api.deps import CurrentPrincipal, NotifierDep, UoWDep
from chat_relay.api.v1.schemas.message import (
    EditMessageRequest,
    ForwardMessageRequest,
    MessageResponse,
    ReactionRequest,
    SendMessageRequest,
)
from chat_relay.application.dto.message import SendMessageDTO
from chat_relay.config import settings
from chat_relay.services import message_service

router = APIRouter(prefix="/api/v1/chat", tags=["messages"])


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    before: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(
        conversation_id, principal, uow, before=before, limit=limit,
    )
    return [MessageResponse.from_entity(m) for m in messages]


@router.get(
    "/conversations/{conversation_id}/messages/search",
    response_model=list[MessageResponse],
)
async def search_messages(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    q: str = Query(...),
    limit: int = Query(50, ge=1, le=200),
) -> list[MessageResponse]:
    messages = await message_service.search_messages(
        conversation_id, principal, q, uow,
        limit=limit, min_length=settings.SEARCH_MIN_LENGTH,
    )
    return [MessageResponse.from_entity(m) for m in messages]


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
    response: Response,
) -> MessageResponse:
    msg, created = await message_service.send_message(
        principal,
        SendMessageDTO(
            conversation_id=conversation_id,
            type=body.type,
            content=body.content,
            reply_to_id=body.reply_to_id,
            client_id=body.client_id,
        ),
        uow,
        notifier,
        max_text_length=settings.MESSAGE_TEXT_MAX_LENGTH,
    )
    if not created:
        response.status_code = 200
    return MessageResponse.from_entity(msg)


@router.get("/messages/{message_id}", response_model=MessageResponse)
async def get_message(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.get_message(message_id, principal, uow)
    return MessageResponse.from_entity(msg)


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: UUID,
    body: EditMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> MessageResponse:
    msg = await message_service.edit_message(
        message_id, principal, body.text, uow, notifier,
        max_text_length=settings.MESSAGE_TEXT_MAX_LENGTH,
    )
    return MessageResponse.from_entity(msg)


@router.delete("/messages/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> MessageResponse:
    msg = await message_service.delete_message(message_id, principal, uow, notifier)
    return MessageResponse.from_entity(msg)


@router.post("/messages/{message_id}/reactions", response_model=MessageResponse)
async def add_reaction(
    message_id: UUID,
    body: ReactionRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> MessageResponse:
    msg = await message_service.add_reaction(
        message_id, principal, body.reaction, uow, notifier,
    )
    return MessageResponse.from_entity(msg)


@router.delete("/messages/{message_id}/reactions/{reaction}", response_model=MessageResponse)
async def remove_reaction(
    message_id: UUID,
    reaction: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> MessageResponse:
    msg = await message_service.remove_reaction(
        message_id, principal, reaction, uow, notifier,
    )
    return MessageResponse.from_entity(msg)


@router.post("/messages/{message_id}/read", response_model=MessageResponse)
async def mark_as_read(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> MessageResponse:
    msg = await message_service.mark_as_read(message_id, principal, uow, notifier)
    return MessageResponse.from_entity(msg)


@router.post("/messages/{message_id}/delivered", response_model=MessageResponse)
async def mark_as_delivered(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> MessageResponse:
    msg = await message_service.mark_as_delivered(message_id, principal, uow, notifier)
    return MessageResponse.from_entity(msg)


@router.post(
    "/messages/{message_id}/forward",
    response_model=list[MessageResponse],
    status_code=201,
)
async def forward_message(
    message_id: UUID,
    body: ForwardMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> list[MessageResponse]:
    copies = await message_service.forward_message(
        message_id, principal, body.conversation_ids, uow, notifier,
    )
    return [MessageResponse.from_entity(m) for m in copies]
