from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_db, list_params, require_admin
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.apps.api.schemas import PermissionsModel
from flecto_manager.domain.models import User
from flecto_manager.domain.types import Action, AdminSection, RoleType
from flecto_manager.services import roles as role_service
from flecto_manager.services import users as user_service


router = APIRouter(prefix="/users", tags=["users"], responses=DEFAULT_ERROR_RESPONSES)

_read = require_admin(AdminSection.USERS, Action.READ)
_write = require_admin(AdminSection.USERS, Action.WRITE)


class UserCreateRequest(BaseModel):
    username: str
    firstname: str
    lastname: str
    password: str | None = None
    active: bool = True


class UserUpdateRequest(BaseModel):
    firstname: str
    lastname: str


class UserPasswordRequest(BaseModel):
    password: str = Field(min_length=1)


class UserStatusRequest(BaseModel):
    active: bool


class UserRolesRequest(BaseModel):
    role_codes: list[str]


class UserResponse(BaseModel):
    id: int
    username: str
    firstname: str
    lastname: str
    active: bool
    created_at: datetime
    updated_at: datetime


class UserDetailResponse(UserResponse):
    roles: list[str]
    permissions: PermissionsModel


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        firstname=user.firstname,
        lastname=user.lastname,
        active=user.active,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@router.get("", response_model=SuccessEnvelope[PageEnvelope[UserResponse]])
async def list_users(
    request: Request,
    active: bool | None = None,
    params=Depends(list_params),
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    search, sorts, pagination = params
    result = await user_service.search_users(db, search=search, active=active, sorts=sorts, pagination=pagination)
    return success_response(request=request, data=page_envelope(result, [user_to_response(u) for u in result.items]))


@router.get("/{user_id}", response_model=SuccessEnvelope[UserDetailResponse])
async def get_user(
    user_id: int,
    request: Request,
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.get_user(db, user_id)
    roles = await role_service.get_user_roles(db, user.id)
    permissions = await role_service.get_permissions_by_username(db, user.username)
    payload = UserDetailResponse(
        **user_to_response(user).model_dump(),
        roles=[role.code for role in roles if role.type != RoleType.USER.value],
        permissions=PermissionsModel.from_permissions(permissions),
    )
    return success_response(request=request, data=payload)


@router.post("", status_code=201, response_model=SuccessEnvelope[UserResponse])
async def create_user(
    request: Request,
    payload: UserCreateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.create_user(
        db,
        username=payload.username,
        firstname=payload.firstname,
        lastname=payload.lastname,
        password=payload.password,
        active=payload.active,
    )
    return success_response(request=request, data=user_to_response(user))


@router.put("/{user_id}", response_model=SuccessEnvelope[UserResponse])
async def update_user(
    user_id: int,
    request: Request,
    payload: UserUpdateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.update_user(db, user_id, firstname=payload.firstname, lastname=payload.lastname)
    return success_response(request=request, data=user_to_response(user))


@router.delete("/{user_id}", response_model=SuccessEnvelope[dict[str, int]])
async def delete_user(
    user_id: int,
    request: Request,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await user_service.delete_user(db, user_id)
    return success_response(request=request, data={"id": user_id})


@router.put("/{user_id}/roles", response_model=SuccessEnvelope[list[str]])
async def update_user_roles(
    user_id: int,
    request: Request,
    payload: UserRolesRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    roles = await role_service.update_user_roles(db, user_id, payload.role_codes)
    return success_response(request=request, data=[role.code for role in roles])


@router.put("/{user_id}/password", response_model=SuccessEnvelope[UserResponse])
async def set_user_password(
    user_id: int,
    request: Request,
    payload: UserPasswordRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.set_password(db, user_id, payload.password)
    return success_response(request=request, data=user_to_response(user))


@router.put("/{user_id}/status", response_model=SuccessEnvelope[UserResponse])
async def set_user_status(
    user_id: int,
    request: Request,
    payload: UserStatusRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.update_status(db, user_id, payload.active)
    return success_response(request=request, data=user_to_response(user))
