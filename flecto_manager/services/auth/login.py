from __future__ import annotations

import hmac
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import InvalidCredentials, UserInactive, UserNotFound
from flecto_manager.domain.models import User
from flecto_manager.domain.types import AuthType, TokenType
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.repos import users as users_repo
from flecto_manager.services.auth.jwt_tokens import TokenClaims, TokenPair, hash_token, issue_token_pair
from flecto_manager.services.auth.passwords import verify_password


logger = logging.getLogger(__name__)


async def login(session: AsyncSession, username: str, password: str) -> tuple[User, TokenPair]:
    user = await users_repo.get_user_by_username(session, username)
    if user is None:
        raise InvalidCredentials()
    if not user.active or not user.password:
        raise UserNotFound()
    if not verify_password(password, user.password):
        raise InvalidCredentials()

    pair = issue_token_pair(user, AuthType.BASIC.value)
    async with transaction(session):
        await users_repo.set_refresh_token_hash(session, user.id, hash_token(pair.refresh_token))
    logger.info("login succeeded user_id=%s", user.id)
    return user, pair


async def refresh(session: AsyncSession, refresh_token: str, claims: TokenClaims) -> tuple[User, TokenPair]:
    # Rotation: the presented token must match the stored hash, which is then replaced.
    if claims.token_type != TokenType.REFRESH.value:
        raise InvalidCredentials()
    user = await users_repo.get_user(session, claims.user_id)
    if user is None:
        raise UserNotFound()
    if not user.active:
        raise UserInactive()
    if not user.refresh_token_hash or not hmac.compare_digest(
        hash_token(refresh_token), user.refresh_token_hash
    ):
        raise InvalidCredentials()

    pair = issue_token_pair(user, claims.auth_type)
    async with transaction(session):
        await users_repo.set_refresh_token_hash(session, user.id, hash_token(pair.refresh_token))
    return user, pair


async def logout(session: AsyncSession, user_id: int) -> None:
    async with transaction(session):
        await users_repo.set_refresh_token_hash(session, user_id, "")
