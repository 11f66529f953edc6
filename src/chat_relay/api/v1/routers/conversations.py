from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response

from chat_relay.api.deps import CurrentPrincipal, NotifierDep, UoWDep
from chat_relay.api.v1.schemas.common import CountResponse, PaginatedResponse
from chat_relay.api.v1.schemas.conversation import (
    AddParticipantsRequest,
    ConversationResponse,
    CreateConversationRequest,
    MuteRequest,
    MuteResponse,
    RenameConversationRequest,
)
from chat_relay.application.dto.conversation import CreateConversationDTO
from chat_relay.config import settings
from chat_relay.domain.value_objects.enums import ConversationKind
from chat_relay.infrastructure.db.repositories._cursor import encode_cursor
from chat_relay.services import conversation_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["conversations"])


@router.post("", response_model=ConversationResponse, status_code=201)
async def create_conversation(
    body: CreateConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> ConversationResponse:
    conv, created = await conversation_service.create_conversation(
        principal,
        CreateConversationDTO(
            kind=body.kind, participant_ids=body.participant_ids, name=body.name,
        ),
        uow,
        name_max_length=settings.CONVERSATION_NAME_MAX_LENGTH,
    )
    if not created:
        response.status_code = 200
    return ConversationResponse.from_entity(conv, principal.user_id)


@router.get("", response_model=PaginatedResponse[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    kind: ConversationKind | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[ConversationResponse]:
    convs = await conversation_service.list_user_conversations(
        principal, uow, kind=kind, cursor=cursor, limit=limit,
    )
    next_cursor = None
    if len(convs) == limit:
        last = convs[-1]
        next_cursor = encode_cursor(last.last_message_at or last.created_at, last.id)
    return PaginatedResponse[ConversationResponse](
        items=[ConversationResponse.from_entity(c, principal.user_id) for c in convs],
        next_cursor=next_cursor,
    )


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.get_conversation(conversation_id, principal, uow)
    return ConversationResponse.from_entity(conv, principal.user_id)


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def rename_conversation(
    conversation_id: UUID,
    body: RenameConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.rename_conversation(
        conversation_id, principal, body.name, uow,
        max_length=settings.CONVERSATION_NAME_MAX_LENGTH,
    )
    return ConversationResponse.from_entity(conv, principal.user_id)


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.delete_conversation(conversation_id, principal, uow)


@router.post("/{conversation_id}/hide", status_code=204)
async def hide_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.hide_conversation(conversation_id, principal, uow)


@router.post("/{conversation_id}/read", response_model=CountResponse)
async def mark_conversation_read(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> CountResponse:
    added = await conversation_service.mark_conversation_read(
        conversation_id, principal, uow, notifier,
    )
    return CountResponse(count=added)


@router.post("/{conversation_id}/participants", response_model=ConversationResponse)
async def add_participants(
    conversation_id: UUID,
    body: AddParticipantsRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.add_participants(
        conversation_id, principal, body.user_ids, uow,
    )
    return ConversationResponse.from_entity(conv, principal.user_id)


@router.delete("/{conversation_id}/participants/{user_id}", status_code=204)
async def remove_participant(
    conversation_id: UUID,
    user_id: int,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> None:
    await conversation_service.remove_participant(
        conversation_id, principal, user_id, uow, notifier,
    )


@router.post("/{conversation_id}/leave", status_code=204)
async def leave_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> None:
    await conversation_service.leave_conversation(conversation_id, principal, uow, notifier)


@router.post("/{conversation_id}/pins/{message_id}", status_code=204)
async def pin_message(
    conversation_id: UUID,
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.pin_message(conversation_id, message_id, principal, uow)


@router.delete("/{conversation_id}/pins/{message_id}", status_code=204)
async def unpin_message(
    conversation_id: UUID,
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.unpin_message(conversation_id, message_id, principal, uow)


@router.post("/{conversation_id}/archive", status_code=204)
async def archive_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.archive_conversation(conversation_id, principal, uow)


@router.delete("/{conversation_id}/archive", status_code=204)
async def unarchive_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.archive_conversation(
        conversation_id, principal, uow, archived=False,
    )


@router.post("/{conversation_id}/mute", response_model=MuteResponse)
async def mute_conversation(
    conversation_id: UUID,
    body: MuteRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MuteResponse:
    until = await conversation_service.mute_conversation(
        conversation_id, principal, uow, duration_seconds=body.duration_seconds,
    )
    return MuteResponse(muted_until=until)


@router.delete("/{conversation_id}/mute", status_code=204)
async def unmute_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.unmute_conversation(conversation_id, principal, uow)
