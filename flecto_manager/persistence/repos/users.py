from __future__ import annotations

from sqlalchemy import Select, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import User


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def set_refresh_token_hash(session: AsyncSession, user_id: int, token_hash: str) -> None:
    # Touch only the refresh hash column so concurrent profile edits are not overwritten.
    await session.execute(update(User).where(User.id == user_id).values(refresh_token_hash=token_hash))


def search_statement(*, search: str | None = None, active: bool | None = None) -> Select:
    stmt = select(User)
    if active is not None:
        stmt = stmt.where(User.active.is_(active))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(User.username.ilike(pattern), User.firstname.ilike(pattern), User.lastname.ilike(pattern))
        )
    return stmt
