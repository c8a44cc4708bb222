from __future__ import annotations

import base64
import logging
import secrets
from datetime import datetime
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import (
    InvalidToken,
    TokenAlreadyExists,
    TokenExpired,
    TokenNameTooLong,
    TokenNotFound,
)
from flecto_manager.domain.models import TOKEN_NAME_MAX_LENGTH, Role, Token
from flecto_manager.domain.types import RoleType, SubjectPermissions
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.query import (
    TOKEN_SORT_COLUMNS,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    paginate,
)
from flecto_manager.persistence.repos import permissions as permissions_repo
from flecto_manager.persistence.repos import roles as roles_repo
from flecto_manager.persistence.repos import tokens as tokens_repo
from flecto_manager.services.auth.jwt_tokens import hash_token
from flecto_manager.services.roles import token_role_code
from flecto_manager.services.validation import ensure_valid, validate_token_name


logger = logging.getLogger(__name__)

TOKEN_PREFIX = "flecto_"
TOKEN_BYTES = 32
# Characters of the body shown before the ellipsis in a preview.
PREVIEW_HEAD = 4
PREVIEW_TAIL = 4


def generate_token() -> str:
    body = base64.urlsafe_b64encode(secrets.token_bytes(TOKEN_BYTES)).rstrip(b"=").decode("ascii")
    return f"{TOKEN_PREFIX}{body}"


def token_preview(plain: str) -> str:
    # "flecto_XXXX...YYYY"; short values are returned unchanged.
    head = len(TOKEN_PREFIX) + PREVIEW_HEAD
    if len(plain) <= len(TOKEN_PREFIX) + PREVIEW_HEAD + PREVIEW_TAIL:
        return plain
    return f"{plain[:head]}...{plain[-PREVIEW_TAIL:]}"


def looks_like_token(value: str) -> bool:
    return value.startswith(TOKEN_PREFIX)


async def create_token(
    session: AsyncSession,
    name: str,
    expires_at: datetime | None,
    permissions: SubjectPermissions,
) -> tuple[Token, str]:
    """Issue a new API token and return it with its plain value.

    The plain value is only ever available here; the database keeps its
    SHA-256 and a short preview. The token row, its implicit role and the
    role's permissions are written in one transaction.
    """
    if len(name) > TOKEN_NAME_MAX_LENGTH:
        raise TokenNameTooLong()
    ensure_valid(validate_token_name(name))
    if await tokens_repo.get_token_by_name(session, name) is not None:
        raise TokenAlreadyExists()

    plain = generate_token()
    token = Token(name=name, token_hash=hash_token(plain), preview=token_preview(plain), expires_at=expires_at)
    role = Role(code=token_role_code(name), type=RoleType.TOKEN.value)
    async with transaction(session):
        session.add_all([token, role])
        await session.flush()
        session.add_all(permissions_repo.build_rows(role.id, permissions))
    logger.info("api token created token_id=%s name=%s", token.id, token.name)
    return token, plain


async def validate_token(session: AsyncSession, plain: str) -> tuple[Token, SubjectPermissions]:
    if len(plain) < len(TOKEN_PREFIX) or not looks_like_token(plain):
        raise InvalidToken()
    token = await tokens_repo.get_token_by_hash(session, hash_token(plain))
    if token is None:
        raise InvalidToken()
    if token.is_expired():
        raise TokenExpired()
    role = await roles_repo.get_role_by_code(session, token_role_code(token.name), RoleType.TOKEN.value)
    if role is None:
        return token, SubjectPermissions()
    return token, await permissions_repo.load_subject_permissions(session, [role.id])


async def get_token(session: AsyncSession, token_id: int) -> Token:
    token = await tokens_repo.get_token(session, token_id)
    if token is None:
        raise TokenNotFound()
    return token


async def get_token_role(session: AsyncSession, token: Token) -> Role | None:
    return await roles_repo.get_role_by_code(session, token_role_code(token.name), RoleType.TOKEN.value)


async def delete_token(session: AsyncSession, token_id: int) -> None:
    token = await get_token(session, token_id)
    role = await get_token_role(session, token)
    async with transaction(session):
        if role is not None:
            await permissions_repo.delete_for_role(session, role.id)
            await session.delete(role)
        await session.delete(token)
    logger.info("api token deleted token_id=%s", token_id)


async def search_tokens(
    session: AsyncSession,
    *,
    search: str | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = apply_sort(tokens_repo.search_statement(search=search), TOKEN_SORT_COLUMNS, sorts)
    return await paginate(session, stmt.order_by(Token.id), pagination)
