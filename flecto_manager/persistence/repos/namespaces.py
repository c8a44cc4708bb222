from __future__ import annotations

from sqlalchemy import Select, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import Namespace


async def get_namespace(session: AsyncSession, namespace_code: str) -> Namespace | None:
    result = await session.execute(select(Namespace).where(Namespace.namespace_code == namespace_code))
    return result.scalar_one_or_none()


def search_statement(*, search: str | None = None) -> Select:
    stmt = select(Namespace)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Namespace.namespace_code.ilike(pattern), Namespace.name.ilike(pattern)))
    return stmt
