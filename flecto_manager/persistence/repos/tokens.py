from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import Token


async def get_token(session: AsyncSession, token_id: int) -> Token | None:
    return await session.get(Token, token_id)


async def get_token_by_name(session: AsyncSession, name: str) -> Token | None:
    result = await session.execute(select(Token).where(Token.name == name))
    return result.scalar_one_or_none()


async def get_token_by_hash(session: AsyncSession, token_hash: str) -> Token | None:
    result = await session.execute(select(Token).where(Token.token_hash == token_hash))
    return result.scalar_one_or_none()


def search_statement(*, search: str | None = None) -> Select:
    stmt = select(Token)
    if search:
        stmt = stmt.where(Token.name.ilike(f"%{search}%"))
    return stmt
