from __future__ import annotations

from fastapi import APIRouter

from chat_relay.api.deps import CurrentPrincipal, RegistryDep, UoWDep
from chat_relay.api.v1.schemas.user import UpdateStatusRequest, UserResponse
from chat_relay.services import user_service

router = APIRouter(prefix="/api/v1/chat/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_me(principal: CurrentPrincipal, uow: UoWDep) -> UserResponse:
    user = await user_service.get_profile(principal.user_id, uow)
    return UserResponse.from_entity(user, principal.user_id)


@router.put("/me/status", response_model=UserResponse)
async def update_status(
    body: UpdateStatusRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    registry: RegistryDep,
) -> UserResponse:
    user = await user_service.update_status(
        principal, body.status, body.status_message, uow, registry,
    )
    return UserResponse.from_entity(user, principal.user_id)


@router.get("/online", response_model=list[UserResponse])
async def list_online_users(principal: CurrentPrincipal, uow: UoWDep) -> list[UserResponse]:
    users = await user_service.list_online_users(uow)
    return [UserResponse.from_entity(u, principal.user_id) for u in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, principal: CurrentPrincipal, uow: UoWDep) -> UserResponse:
    user = await user_service.get_profile(user_id, uow)
    return UserResponse.from_entity(user, principal.user_id)


@router.post("/{user_id}/block", status_code=204)
async def block_user(user_id: int, principal: CurrentPrincipal, uow: UoWDep) -> None:
    await user_service.block_user(principal, user_id, uow)


@router.delete("/{user_id}/block", status_code=204)
async def unblock_user(user_id: int, principal: CurrentPrincipal, uow: UoWDep) -> None:
    await user_service.unblock_user(principal, user_id, uow)
