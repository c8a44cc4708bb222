from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_db, list_params, require_admin
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.apps.api.routes.users import UserResponse, user_to_response
from flecto_manager.apps.api.schemas import PermissionsModel
from flecto_manager.domain.models import Role
from flecto_manager.domain.types import Action, AdminSection, RoleType
from flecto_manager.services import roles as role_service


router = APIRouter(prefix="/roles", tags=["roles"], responses=DEFAULT_ERROR_RESPONSES)

_read = require_admin(AdminSection.ROLES, Action.READ)
_write = require_admin(AdminSection.ROLES, Action.WRITE)


class RoleCreateRequest(BaseModel):
    code: str
    type: str = RoleType.ROLE.value


class RoleUpdateRequest(BaseModel):
    code: str


class RoleResponse(BaseModel):
    id: int
    code: str
    type: str
    created_at: datetime
    updated_at: datetime


class RoleDetailResponse(RoleResponse):
    permissions: PermissionsModel


def role_to_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id, code=role.code, type=role.type, created_at=role.created_at, updated_at=role.updated_at
    )


@router.get("", response_model=SuccessEnvelope[PageEnvelope[RoleResponse]])
async def list_roles(
    request: Request,
    type: str | None = RoleType.ROLE.value,
    params=Depends(list_params),
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    search, sorts, pagination = params
    result = await role_service.search_roles(
        db, search=search, role_type=type, sorts=sorts, pagination=pagination
    )
    return success_response(request=request, data=page_envelope(result, [role_to_response(r) for r in result.items]))


@router.get("/{role_id}", response_model=SuccessEnvelope[RoleDetailResponse])
async def get_role(
    role_id: int,
    request: Request,
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    role = await role_service.get_role(db, role_id)
    permissions = await role_service.get_permissions_by_role_id(db, role.id)
    payload = RoleDetailResponse(
        **role_to_response(role).model_dump(),
        permissions=PermissionsModel.from_permissions(permissions),
    )
    return success_response(request=request, data=payload)


@router.post("", status_code=201, response_model=SuccessEnvelope[RoleResponse])
async def create_role(
    request: Request,
    payload: RoleCreateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    role = await role_service.create_role(db, code=payload.code, role_type=payload.type)
    return success_response(request=request, data=role_to_response(role))


@router.put("/{role_id}", response_model=SuccessEnvelope[RoleResponse])
async def update_role(
    role_id: int,
    request: Request,
    payload: RoleUpdateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    role = await role_service.update_role(db, role_id, code=payload.code)
    return success_response(request=request, data=role_to_response(role))


@router.delete("/{role_id}", response_model=SuccessEnvelope[dict[str, int]])
async def delete_role(
    role_id: int,
    request: Request,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await role_service.delete_role(db, role_id)
    return success_response(request=request, data={"id": role_id})


@router.put("/{role_id}/permissions", response_model=SuccessEnvelope[PermissionsModel])
async def update_role_permissions(
    role_id: int,
    request: Request,
    payload: PermissionsModel,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await role_service.update_role_permissions(db, role_id, payload.to_permissions())
    permissions = await role_service.get_permissions_by_role_id(db, role_id)
    return success_response(request=request, data=PermissionsModel.from_permissions(permissions))


@router.get("/{role_id}/users", response_model=SuccessEnvelope[PageEnvelope[UserResponse]])
async def list_role_users(
    role_id: int,
    request: Request,
    params=Depends(list_params),
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    search, sorts, pagination = params
    await role_service.get_role(db, role_id)
    result = await role_service.get_role_users(db, role_id, search=search, sorts=sorts, pagination=pagination)
    return success_response(request=request, data=page_envelope(result, [user_to_response(u) for u in result.items]))


@router.get("/{role_id}/candidates", response_model=SuccessEnvelope[PageEnvelope[UserResponse]])
async def list_role_candidates(
    role_id: int,
    request: Request,
    params=Depends(list_params),
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Users that could still be added to the role.
    search, _sorts, pagination = params
    await role_service.get_role(db, role_id)
    result = await role_service.get_users_not_in_role(db, role_id, search=search, pagination=pagination)
    return success_response(request=request, data=page_envelope(result, [user_to_response(u) for u in result.items]))


@router.post("/{role_id}/users/{user_id}", status_code=201, response_model=SuccessEnvelope[dict[str, int]])
async def add_role_user(
    role_id: int,
    user_id: int,
    request: Request,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await role_service.add_user_to_role(db, user_id=user_id, role_id=role_id)
    return success_response(request=request, data={"role_id": role_id, "user_id": user_id})


@router.delete("/{role_id}/users/{user_id}", response_model=SuccessEnvelope[dict[str, int]])
async def remove_role_user(
    role_id: int,
    user_id: int,
    request: Request,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await role_service.remove_user_from_role(db, user_id=user_id, role_id=role_id)
    return success_response(request=request, data={"role_id": role_id, "user_id": user_id})
