from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import UserAlreadyExists, UserNotFound
from flecto_manager.domain.models import Role, User, UserRole
from flecto_manager.domain.types import RoleType
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.query import (
    USER_SORT_COLUMNS,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    paginate,
)
from flecto_manager.persistence.repos import permissions as permissions_repo
from flecto_manager.persistence.repos import roles as roles_repo
from flecto_manager.persistence.repos import users as users_repo
from flecto_manager.services.auth.passwords import hash_password
from flecto_manager.services.validation import ensure_valid, validate_user


logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: int) -> User:
    user = await users_repo.get_user(session, user_id)
    if user is None:
        raise UserNotFound()
    return user


async def get_user_by_username(session: AsyncSession, username: str) -> User:
    user = await users_repo.get_user_by_username(session, username)
    if user is None:
        raise UserNotFound()
    return user


async def create_user(
    session: AsyncSession,
    *,
    username: str,
    firstname: str,
    lastname: str,
    password: str | None = None,
    active: bool = True,
) -> User:
    # The user and its implicit role (code = username) are created together.
    ensure_valid(validate_user(username=username, firstname=firstname, lastname=lastname))
    if await users_repo.get_user_by_username(session, username) is not None:
        raise UserAlreadyExists()
    user = User(
        username=username,
        firstname=firstname,
        lastname=lastname,
        password=hash_password(password) if password else None,
        active=active,
    )
    async with transaction(session):
        session.add(user)
        role = await roles_repo.get_role_by_code(session, username, RoleType.USER.value)
        if role is None:
            role = Role(code=username, type=RoleType.USER.value)
            session.add(role)
        await session.flush()
        session.add(UserRole(user_id=user.id, role_id=role.id))
    logger.info("user created user_id=%s username=%s", user.id, user.username)
    return user


async def update_user(session: AsyncSession, user_id: int, *, firstname: str, lastname: str) -> User:
    user = await get_user(session, user_id)
    ensure_valid(validate_user(username=user.username, firstname=firstname, lastname=lastname))
    async with transaction(session):
        user.firstname = firstname
        user.lastname = lastname
    return user


async def delete_user(session: AsyncSession, user_id: int) -> None:
    user = await get_user(session, user_id)
    role = await roles_repo.get_role_by_code(session, user.username, RoleType.USER.value)
    async with transaction(session):
        if role is not None:
            await permissions_repo.delete_for_role(session, role.id)
            await session.delete(role)
        await session.delete(user)
    logger.info("user deleted user_id=%s", user_id)


async def set_password(session: AsyncSession, user_id: int, password: str) -> User:
    user = await get_user(session, user_id)
    async with transaction(session):
        user.password = hash_password(password)
    return user


async def update_status(session: AsyncSession, user_id: int, active: bool) -> User:
    user = await get_user(session, user_id)
    async with transaction(session):
        user.active = active
    return user


async def search_users(
    session: AsyncSession,
    *,
    search: str | None = None,
    active: bool | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = apply_sort(users_repo.search_statement(search=search, active=active), USER_SORT_COLUMNS, sorts)
    return await paginate(session, stmt.order_by(User.id), pagination)
