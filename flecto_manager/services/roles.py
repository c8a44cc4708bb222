from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import (
    RoleAlreadyExists,
    RoleNotFound,
    UserAlreadyInRole,
    UserNotFound,
    UserNotInRole,
)
from flecto_manager.domain.models import Role, UserRole, utc_now
from flecto_manager.domain.types import RoleType, SubjectPermissions
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.query import (
    ROLE_SORT_COLUMNS,
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
from flecto_manager.services.validation import ensure_valid, validate_role


logger = logging.getLogger(__name__)

TOKEN_ROLE_PREFIX = "token_"


def token_role_code(token_name: str) -> str:
    return f"{TOKEN_ROLE_PREFIX}{token_name}"


async def get_role(session: AsyncSession, role_id: int) -> Role:
    role = await roles_repo.get_role(session, role_id)
    if role is None:
        raise RoleNotFound()
    return role


async def get_role_by_code(session: AsyncSession, code: str, role_type: str = RoleType.ROLE.value) -> Role:
    role = await roles_repo.get_role_by_code(session, code, role_type)
    if role is None:
        raise RoleNotFound()
    return role


async def create_role(session: AsyncSession, *, code: str, role_type: str = RoleType.ROLE.value) -> Role:
    if await roles_repo.get_role_by_code(session, code, role_type) is not None:
        raise RoleAlreadyExists()
    ensure_valid(validate_role(code=code, role_type=role_type))
    role = Role(code=code, type=role_type)
    async with transaction(session):
        session.add(role)
    return role


async def update_role(session: AsyncSession, role_id: int, *, code: str) -> Role:
    role = await get_role(session, role_id)
    ensure_valid(validate_role(code=code, role_type=role.type))
    if code != role.code and await roles_repo.get_role_by_code(session, code, role.type) is not None:
        raise RoleAlreadyExists()
    async with transaction(session):
        role.code = code
    return role


async def delete_role(session: AsyncSession, role_id: int) -> None:
    role = await get_role(session, role_id)
    # Permissions and user links cascade with the role row.
    async with transaction(session):
        await permissions_repo.delete_for_role(session, role.id)
        await session.delete(role)


async def search_roles(
    session: AsyncSession,
    *,
    search: str | None = None,
    role_type: str | None = RoleType.ROLE.value,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = apply_sort(roles_repo.search_statement(search=search, role_type=role_type), ROLE_SORT_COLUMNS, sorts)
    return await paginate(session, stmt.order_by(Role.id), pagination)


async def add_user_to_role(session: AsyncSession, *, user_id: int, role_id: int) -> None:
    if await users_repo.get_user(session, user_id) is None:
        raise UserNotFound()
    await get_role(session, role_id)
    if await roles_repo.get_user_role(session, user_id, role_id) is not None:
        raise UserAlreadyInRole()
    async with transaction(session):
        session.add(UserRole(user_id=user_id, role_id=role_id))


async def remove_user_from_role(session: AsyncSession, *, user_id: int, role_id: int) -> None:
    link = await roles_repo.get_user_role(session, user_id, role_id)
    if link is None:
        raise UserNotInRole()
    async with transaction(session):
        await session.delete(link)


async def get_user_roles(session: AsyncSession, user_id: int) -> list[Role]:
    return await roles_repo.list_roles_for_user(session, user_id)


async def get_role_users(
    session: AsyncSession,
    role_id: int,
    *,
    search: str | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = apply_sort(roles_repo.users_in_role_statement(role_id, search=search), USER_SORT_COLUMNS, sorts, "users")
    return await paginate(session, stmt, pagination)


async def get_users_not_in_role(
    session: AsyncSession,
    role_id: int,
    *,
    search: str | None = None,
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = roles_repo.users_not_in_role_statement(role_id, search=search)
    return await paginate(session, stmt, pagination)


async def get_permissions_by_role_id(session: AsyncSession, role_id: int) -> SubjectPermissions:
    return await permissions_repo.load_subject_permissions(session, [role_id])


async def get_permissions_by_role_code(session: AsyncSession, code: str) -> SubjectPermissions:
    role = await get_role_by_code(session, code, RoleType.ROLE.value)
    return await permissions_repo.load_subject_permissions(session, [role.id])


async def get_permissions_by_username(session: AsyncSession, username: str) -> SubjectPermissions:
    # Union of the implicit user role and every named role, deduplicated.
    user = await users_repo.get_user_by_username(session, username)
    if user is None:
        raise UserNotFound()
    roles = await roles_repo.list_roles_for_user(session, user.id)
    return await permissions_repo.load_subject_permissions(session, [role.id for role in roles])


async def get_permissions_by_token_name(session: AsyncSession, token_name: str) -> SubjectPermissions:
    # A token whose role vanished simply has no permissions.
    role = await roles_repo.get_role_by_code(session, token_role_code(token_name), RoleType.TOKEN.value)
    if role is None:
        return SubjectPermissions()
    return await permissions_repo.load_subject_permissions(session, [role.id])


async def update_role_permissions(
    session: AsyncSession, role_id: int, permissions: SubjectPermissions
) -> Role:
    role = await get_role(session, role_id)
    async with transaction(session):
        await permissions_repo.delete_for_role(session, role.id)
        session.add_all(permissions_repo.build_rows(role.id, permissions))
        role.updated_at = utc_now()
    logger.info(
        "role permissions replaced role_id=%s resources=%s admin=%s",
        role.id,
        len(permissions.resources),
        len(permissions.admin),
    )
    return role


async def update_user_roles(session: AsyncSession, user_id: int, role_codes: list[str]) -> list[Role]:
    if await users_repo.get_user(session, user_id) is None:
        raise UserNotFound()
    codes = list(dict.fromkeys(role_codes))
    roles = await roles_repo.list_roles_by_codes(session, codes, RoleType.ROLE.value)
    if len(roles) != len(codes):
        found = {role.code for role in roles}
        missing = [code for code in codes if code not in found]
        raise RoleNotFound(f"Role not found: {', '.join(missing)}")
    async with transaction(session):
        await roles_repo.delete_named_role_links(session, user_id)
        session.add_all([UserRole(user_id=user_id, role_id=role.id) for role in roles])
    return roles
