from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_db, list_params, require_admin
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.apps.api.schemas import PermissionsModel
from flecto_manager.domain.models import Token
from flecto_manager.domain.types import Action, AdminSection
from flecto_manager.services import roles as role_service
from flecto_manager.services.auth import api_tokens


router = APIRouter(prefix="/tokens", tags=["tokens"], responses=DEFAULT_ERROR_RESPONSES)

_read = require_admin(AdminSection.TOKENS, Action.READ)
_write = require_admin(AdminSection.TOKENS, Action.WRITE)


class TokenCreateRequest(BaseModel):
    name: str
    expires_at: datetime | None = None
    permissions: PermissionsModel = Field(default_factory=PermissionsModel)


class TokenResponse(BaseModel):
    id: int
    name: str
    preview: str
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime


class TokenDetailResponse(TokenResponse):
    permissions: PermissionsModel


class TokenCreatedResponse(TokenDetailResponse):
    # The plain token is returned exactly once, at creation.
    token: str


def _to_response(token: Token) -> TokenResponse:
    return TokenResponse(
        id=token.id,
        name=token.name,
        preview=token.preview,
        expires_at=token.expires_at,
        created_at=token.created_at,
        updated_at=token.updated_at,
    )


@router.get("", response_model=SuccessEnvelope[PageEnvelope[TokenResponse]])
async def list_tokens(
    request: Request,
    params=Depends(list_params),
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    search, sorts, pagination = params
    result = await api_tokens.search_tokens(db, search=search, sorts=sorts, pagination=pagination)
    return success_response(request=request, data=page_envelope(result, [_to_response(t) for t in result.items]))


@router.get("/{token_id}", response_model=SuccessEnvelope[TokenDetailResponse])
async def get_token(
    token_id: int,
    request: Request,
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    token = await api_tokens.get_token(db, token_id)
    permissions = await role_service.get_permissions_by_token_name(db, token.name)
    payload = TokenDetailResponse(
        **_to_response(token).model_dump(),
        permissions=PermissionsModel.from_permissions(permissions),
    )
    return success_response(request=request, data=payload)


@router.post("", status_code=201, response_model=SuccessEnvelope[TokenCreatedResponse])
async def create_token(
    request: Request,
    payload: TokenCreateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    token, plain = await api_tokens.create_token(
        db, payload.name, payload.expires_at, payload.permissions.to_permissions()
    )
    data = TokenCreatedResponse(
        **_to_response(token).model_dump(),
        permissions=payload.permissions,
        token=plain,
    )
    return success_response(request=request, data=data)


@router.delete("/{token_id}", response_model=SuccessEnvelope[dict[str, int]])
async def delete_token(
    token_id: int,
    request: Request,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await api_tokens.delete_token(db, token_id)
    return success_response(request=request, data={"id": token_id})
