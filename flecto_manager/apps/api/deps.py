from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.config import get_settings
from flecto_manager.core.errors import ExpiredError, UnauthorizedError
from flecto_manager.domain.types import Action, AdminSection, AuthType, ResourceType, SubjectPermissions, TokenType
from flecto_manager.persistence.db import get_session
from flecto_manager.persistence.query import PaginationInput, SortInput, parse_sort_param
from flecto_manager.persistence.repos import users as users_repo
from flecto_manager.services import roles as role_service
from flecto_manager.services.auth.api_tokens import looks_like_token, validate_token
from flecto_manager.services.auth.jwt_tokens import parse_token
from flecto_manager.services.authz.permissions import can_admin, can_resource


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # API tokens authenticate with user_id 0 and the token name as username.
    user_id: int
    username: str
    auth_type: str
    permissions: SubjectPermissions


def _auth_error(message: str) -> HTTPException:
    # Normalize auth errors for clients without leaking internal details.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden_error(message: str) -> HTTPException:
    # Use 403 for authenticated principals lacking permissions.
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


def _parse_bearer_token(header_value: str | None) -> str:
    if not header_value:
        raise _auth_error("Missing bearer token")
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _auth_error("Invalid authorization header")
    return token.strip()


async def _principal_from_api_token(db: AsyncSession, plain: str) -> Principal:
    try:
        token, permissions = await validate_token(db, plain)
    except (UnauthorizedError, ExpiredError) as exc:
        raise _auth_error(exc.message) from exc
    return Principal(user_id=0, username=token.name, auth_type=AuthType.TOKEN.value, permissions=permissions)


async def _principal_from_jwt(db: AsyncSession, raw: str) -> Principal:
    try:
        claims = parse_token(raw)
    except UnauthorizedError as exc:
        raise _auth_error(exc.message) from exc
    if claims.token_type != TokenType.ACCESS.value:
        raise _auth_error("Access token required")
    user = await users_repo.get_user(db, claims.user_id)
    if user is None or not user.active:
        raise _auth_error("Unknown or inactive user")
    permissions = await role_service.get_permissions_by_username(db, user.username)
    return Principal(user_id=user.id, username=user.username, auth_type=claims.auth_type, permissions=permissions)


async def get_current_principal(request: Request, db: AsyncSession = Depends(get_db)) -> Principal:
    settings = get_settings()
    raw = _parse_bearer_token(request.headers.get(settings.auth_header_name))
    if looks_like_token(raw):
        principal = await _principal_from_api_token(db, raw)
    else:
        principal = await _principal_from_jwt(db, raw)
    request.state.principal = principal
    return principal


def require_resource(resource: ResourceType, action: Action):
    # Dependency factory for routes scoped by the {namespace_code}/{project_code} path params.
    async def _dependency(
        namespace_code: str,
        project_code: str,
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not can_resource(principal.permissions, namespace_code, project_code, resource, action):
            raise _forbidden_error("Insufficient permissions for this project")
        return principal

    return _dependency


def require_admin(section: AdminSection, action: Action):
    async def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not can_admin(principal.permissions, section, action):
            raise _forbidden_error("Insufficient permissions for this operation")
        return principal

    return _dependency


def list_params(
    search: str | None = None,
    sort: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> tuple[str | None, list[SortInput], PaginationInput]:
    # Shared query parameters of every list endpoint.
    return search, parse_sort_param(sort), PaginationInput(limit=limit, offset=offset)
