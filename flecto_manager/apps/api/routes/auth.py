from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_current_principal, get_db
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import SuccessEnvelope, success_response
from flecto_manager.apps.api.schemas import PermissionsModel
from flecto_manager.core.errors import InvalidCredentials, UserNotFound
from flecto_manager.domain.models import User
from flecto_manager.domain.types import AuthType
from flecto_manager.services.auth import login as login_service
from flecto_manager.services.auth.jwt_tokens import TokenPair, parse_token


router = APIRouter(prefix="/auth", tags=["auth"], responses=DEFAULT_ERROR_RESPONSES)


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class AuthUserResponse(BaseModel):
    id: int
    username: str
    firstname: str
    lastname: str


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: int
    user: AuthUserResponse


class MeResponse(BaseModel):
    user_id: int
    username: str
    auth_type: str
    permissions: PermissionsModel


def _to_response(user: User, pair: TokenPair) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_at=pair.expires_at,
        user=AuthUserResponse(
            id=user.id, username=user.username, firstname=user.firstname, lastname=user.lastname
        ),
    )


@router.post("/login", response_model=SuccessEnvelope[TokenPairResponse])
async def login(request: Request, payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> dict:
    try:
        user, pair = await login_service.login(db, payload.username, payload.password)
    except UserNotFound as exc:
        # Unknown and inactive users look like bad credentials to clients.
        raise InvalidCredentials() from exc
    return success_response(request=request, data=_to_response(user, pair))


@router.post("/refresh", response_model=SuccessEnvelope[TokenPairResponse])
async def refresh(request: Request, payload: RefreshRequest, db: AsyncSession = Depends(get_db)) -> dict:
    claims = parse_token(payload.refresh_token)
    try:
        user, pair = await login_service.refresh(db, payload.refresh_token, claims)
    except UserNotFound as exc:
        raise InvalidCredentials() from exc
    return success_response(request=request, data=_to_response(user, pair))


@router.post("/logout", response_model=SuccessEnvelope[dict[str, bool]])
async def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # API tokens carry no refresh state.
    if principal.auth_type != AuthType.TOKEN.value:
        await login_service.logout(db, principal.user_id)
    return success_response(request=request, data={"logged_out": True})


@router.get("/me", response_model=SuccessEnvelope[MeResponse])
async def me(request: Request, principal: Principal = Depends(get_current_principal)) -> dict:
    payload = MeResponse(
        user_id=principal.user_id,
        username=principal.username,
        auth_type=principal.auth_type,
        permissions=PermissionsModel.from_permissions(principal.permissions),
    )
    return success_response(request=request, data=payload)
