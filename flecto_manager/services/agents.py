from __future__ import annotations

import logging
from datetime import timedelta
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.config import get_settings
from flecto_manager.core.errors import AgentNotFound, ValidationFailedError
from flecto_manager.domain.models import Agent, utc_now
from flecto_manager.domain.types import AgentPayload
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.query import (
    AGENT_SORT_COLUMNS,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    paginate,
)
from flecto_manager.persistence.repos import agents as agents_repo
from flecto_manager.services.projects import get_project
from flecto_manager.services.validation import ValidationIssue, ensure_valid, validate_agent


logger = logging.getLogger(__name__)


async def get_agent(session: AsyncSession, namespace_code: str, project_code: str, name: str) -> Agent:
    agent = await agents_repo.get_agent(session, namespace_code, project_code, name)
    if agent is None:
        raise AgentNotFound()
    return agent


async def upsert_agent(
    session: AsyncSession, namespace_code: str, project_code: str, payload: AgentPayload
) -> Agent:
    # Agents report on every load; an existing row is refreshed in place.
    ensure_valid(validate_agent(payload))
    await get_project(session, namespace_code, project_code)
    agent = await agents_repo.get_agent(session, namespace_code, project_code, payload.name)
    if agent is None and payload.load_duration_ms == 0:
        raise ValidationFailedError([ValidationIssue("load_duration_ms", "required", 0)])
    now = utc_now()
    async with transaction(session):
        if agent is None:
            agent = Agent(namespace_code=namespace_code, project_code=project_code, name=payload.name)
            session.add(agent)
        agent.type = payload.type
        agent.status = payload.status
        agent.version = payload.version
        agent.error = payload.error
        agent.load_duration_ms = payload.load_duration_ms
        agent.last_hit_at = now
    return agent


async def update_last_hit(session: AsyncSession, namespace_code: str, project_code: str, name: str) -> Agent:
    agent = await get_agent(session, namespace_code, project_code, name)
    async with transaction(session):
        agent.last_hit_at = utc_now()
    return agent


async def delete_agent(session: AsyncSession, namespace_code: str, project_code: str, name: str) -> None:
    agent = await get_agent(session, namespace_code, project_code, name)
    async with transaction(session):
        await session.delete(agent)


async def count_online(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    threshold: timedelta | None = None,
    status: str | None = None,
) -> int:
    if threshold is None:
        threshold = timedelta(seconds=get_settings().agent_offline_threshold_s)
    since = utc_now() - threshold
    return await agents_repo.count_seen_since(session, namespace_code, project_code, since, status=status)


async def search_agents(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    *,
    search: str | None = None,
    status: str | None = None,
    agent_type: str | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = agents_repo.search_statement(
        namespace_code, project_code, search=search, status=status, agent_type=agent_type
    )
    stmt = apply_sort(stmt, AGENT_SORT_COLUMNS, sorts)
    return await paginate(session, stmt.order_by(Agent.id), pagination)
