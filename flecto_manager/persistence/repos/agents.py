from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import Agent
from flecto_manager.persistence.guards import project_predicate


async def get_agent(session: AsyncSession, namespace_code: str, project_code: str, name: str) -> Agent | None:
    result = await session.execute(
        select(Agent).where(project_predicate(Agent, namespace_code, project_code), Agent.name == name)
    )
    return result.scalar_one_or_none()


async def count_seen_since(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    since: datetime,
    *,
    status: str | None = None,
) -> int:
    stmt = select(func.count(Agent.id)).where(
        project_predicate(Agent, namespace_code, project_code),
        Agent.last_hit_at > since,
    )
    if status is not None:
        stmt = stmt.where(Agent.status == status)
    return int(await session.scalar(stmt) or 0)


def search_statement(
    namespace_code: str,
    project_code: str,
    *,
    search: str | None = None,
    status: str | None = None,
    agent_type: str | None = None,
) -> Select:
    stmt = select(Agent).where(project_predicate(Agent, namespace_code, project_code))
    if search:
        stmt = stmt.where(Agent.name.ilike(f"%{search}%"))
    if status:
        stmt = stmt.where(Agent.status == status)
    if agent_type:
        stmt = stmt.where(Agent.type == agent_type)
    return stmt
