from __future__ import annotations

from sqlalchemy import Select, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import Role, User, UserRole
from flecto_manager.domain.types import RoleType


async def get_role(session: AsyncSession, role_id: int) -> Role | None:
    return await session.get(Role, role_id)


async def get_role_by_code(session: AsyncSession, code: str, role_type: str) -> Role | None:
    result = await session.execute(select(Role).where(Role.code == code, Role.type == role_type))
    return result.scalar_one_or_none()


async def list_roles_by_codes(session: AsyncSession, codes: list[str], role_type: str) -> list[Role]:
    if not codes:
        return []
    result = await session.execute(select(Role).where(Role.code.in_(codes), Role.type == role_type))
    return list(result.scalars().all())


async def get_user_role(session: AsyncSession, user_id: int, role_id: int) -> UserRole | None:
    return await session.get(UserRole, (user_id, role_id))


async def list_roles_for_user(session: AsyncSession, user_id: int) -> list[Role]:
    result = await session.execute(
        select(Role).join(UserRole, UserRole.role_id == Role.id).where(UserRole.user_id == user_id).order_by(Role.id)
    )
    return list(result.scalars().all())


def users_in_role_statement(role_id: int, *, search: str | None = None) -> Select:
    stmt = select(User).join(UserRole, UserRole.user_id == User.id).where(UserRole.role_id == role_id)
    if search:
        stmt = stmt.where(_user_search(search))
    return stmt


def users_not_in_role_statement(role_id: int, *, search: str | None = None) -> Select:
    members = select(UserRole.user_id).where(UserRole.role_id == role_id)
    stmt = select(User).where(User.id.not_in(members))
    if search:
        stmt = stmt.where(_user_search(search))
    return stmt


def _user_search(search: str):
    pattern = f"%{search}%"
    return or_(User.username.ilike(pattern), User.firstname.ilike(pattern), User.lastname.ilike(pattern))


async def delete_named_role_links(session: AsyncSession, user_id: int) -> None:
    # Implicit user/token roles are never touched when named roles are reassigned.
    named_roles = select(Role.id).where(Role.type == RoleType.ROLE.value)
    await session.execute(
        delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id.in_(named_roles))
    )


def search_statement(*, search: str | None = None, role_type: str | None = None) -> Select:
    stmt = select(Role)
    if role_type:
        stmt = stmt.where(Role.type == role_type)
    if search:
        stmt = stmt.where(Role.code.ilike(f"%{search}%"))
    return stmt
