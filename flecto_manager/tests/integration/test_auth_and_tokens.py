from __future__ import annotations

from datetime import timedelta

import pytest

from flecto_manager.core.errors import (
    InvalidCredentials,
    InvalidToken,
    TokenAlreadyExists,
    TokenExpired,
    TokenNameTooLong,
    TokenNotFound,
    UserInactive,
    UserNotFound,
    ValidationFailedError,
)
from flecto_manager.domain.models import utc_now
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.persistence.repos import users as users_repo
from flecto_manager.services import roles as role_service
from flecto_manager.services import users as user_service
from flecto_manager.services.auth import api_tokens, login as login_service
from flecto_manager.services.auth.jwt_tokens import hash_token, parse_token
from flecto_manager.tests.utils.factories import FULL_ACCESS, project_rules


@pytest.mark.asyncio
async def test_login_stores_refresh_hash_and_rotates_on_refresh() -> None:
    async with SessionLocal() as session:
        await user_service.create_user(
            session, username="alice", firstname="Alice", lastname="Doe", password="s3cret-pass"
        )
        user, pair = await login_service.login(session, "alice", "s3cret-pass")
        stored = await users_repo.get_user(session, user.id)
        await session.refresh(stored)
        assert stored.refresh_token_hash == hash_token(pair.refresh_token)

        claims = parse_token(pair.refresh_token)
        _user, rotated = await login_service.refresh(session, pair.refresh_token, claims)
        assert rotated.refresh_token != pair.refresh_token
        # The previous refresh token is single-use.
        with pytest.raises(InvalidCredentials):
            await login_service.refresh(session, pair.refresh_token, claims)
        # Access tokens cannot be used to refresh.
        with pytest.raises(InvalidCredentials):
            await login_service.refresh(session, rotated.access_token, parse_token(rotated.access_token))


@pytest.mark.asyncio
async def test_login_failures() -> None:
    async with SessionLocal() as session:
        user = await user_service.create_user(
            session, username="alice", firstname="Alice", lastname="Doe", password="s3cret-pass"
        )
        with pytest.raises(InvalidCredentials):
            await login_service.login(session, "alice", "wrong")
        with pytest.raises(InvalidCredentials):
            await login_service.login(session, "nobody", "s3cret-pass")

        _user, pair = await login_service.login(session, "alice", "s3cret-pass")
        await user_service.update_status(session, user.id, False)
        with pytest.raises(UserNotFound):
            await login_service.login(session, "alice", "s3cret-pass")
        with pytest.raises(UserInactive):
            await login_service.refresh(session, pair.refresh_token, parse_token(pair.refresh_token))


@pytest.mark.asyncio
async def test_logout_invalidates_refresh_token() -> None:
    async with SessionLocal() as session:
        await user_service.create_user(
            session, username="alice", firstname="Alice", lastname="Doe", password="s3cret-pass"
        )
        user, pair = await login_service.login(session, "alice", "s3cret-pass")
        await login_service.logout(session, user.id)
        with pytest.raises(InvalidCredentials):
            await login_service.refresh(session, pair.refresh_token, parse_token(pair.refresh_token))


@pytest.mark.asyncio
async def test_api_token_lifecycle() -> None:
    async with SessionLocal() as session:
        token, plain = await api_tokens.create_token(session, "ci-deploy", None, project_rules("redirect", "read"))
        assert plain.startswith("flecto_")
        assert token.token_hash == hash_token(plain)
        assert token.preview == api_tokens.token_preview(plain)
        assert plain not in token.preview

        validated, permissions = await api_tokens.validate_token(session, plain)
        assert validated.id == token.id
        assert [rule.key for rule in permissions.resources] == ["acme|web|redirect|read"]
        by_name = await role_service.get_permissions_by_token_name(session, "ci-deploy")
        assert by_name.resources == permissions.resources

        with pytest.raises(TokenAlreadyExists):
            await api_tokens.create_token(session, "ci-deploy", None, FULL_ACCESS)

        await api_tokens.delete_token(session, token.id)
        with pytest.raises(InvalidToken):
            await api_tokens.validate_token(session, plain)
        with pytest.raises(TokenNotFound):
            await api_tokens.get_token(session, token.id)
        assert (await role_service.get_permissions_by_token_name(session, "ci-deploy")).resources == []


@pytest.mark.asyncio
async def test_api_token_validation_errors() -> None:
    async with SessionLocal() as session:
        with pytest.raises(TokenNameTooLong):
            await api_tokens.create_token(session, "t" * 301, None, FULL_ACCESS)
        with pytest.raises(ValidationFailedError):
            await api_tokens.create_token(session, "", None, FULL_ACCESS)

        _token, plain = await api_tokens.create_token(
            session, "expired", utc_now() - timedelta(minutes=1), FULL_ACCESS
        )
        with pytest.raises(TokenExpired):
            await api_tokens.validate_token(session, plain)
        for bogus in ("flecto_", "flecto_unknown", "Bearer abc"):
            with pytest.raises(InvalidToken):
                await api_tokens.validate_token(session, bogus)
