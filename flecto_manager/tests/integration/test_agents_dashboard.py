from __future__ import annotations

from datetime import timedelta

import pytest

from flecto_manager.core.errors import AgentNotFound, ProjectNotFound, ValidationFailedError
from flecto_manager.domain.models import Agent, utc_now
from flecto_manager.domain.types import AgentPayload
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.services import agents as agent_service
from flecto_manager.services import dashboard as dashboard_service
from flecto_manager.services import publish as publish_service
from flecto_manager.services.drafts import pages as page_drafts
from flecto_manager.services.drafts import redirects as redirect_drafts
from flecto_manager.tests.utils.factories import NAMESPACE, PROJECT, create_project, page_payload, redirect_payload


def _agent(name: str = "edge-1", status: str = "success", load_duration_ms: int = 12) -> AgentPayload:
    return AgentPayload(name=name, type="traefik", status=status, version="1.2.0", load_duration_ms=load_duration_ms)


@pytest.mark.asyncio
async def test_upsert_agent_creates_then_refreshes() -> None:
    await create_project()
    async with SessionLocal() as session:
        created = await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent())
        first_hit = created.last_hit_at
        updated = await agent_service.upsert_agent(
            session, NAMESPACE, PROJECT, _agent(status="error", load_duration_ms=0)
        )
        assert updated.id == created.id
        assert updated.status == "error"
        assert updated.last_hit_at >= first_hit
        assert (await agent_service.search_agents(session, NAMESPACE, PROJECT)).total == 1


@pytest.mark.asyncio
async def test_new_agent_requires_load_duration() -> None:
    await create_project()
    async with SessionLocal() as session:
        with pytest.raises(ValidationFailedError):
            await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent(load_duration_ms=0))
        with pytest.raises(ValidationFailedError):
            await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent(name="edge 1"))
        with pytest.raises(ProjectNotFound):
            await agent_service.upsert_agent(session, NAMESPACE, "missing", _agent())


@pytest.mark.asyncio
async def test_hit_and_delete_agent() -> None:
    await create_project()
    async with SessionLocal() as session:
        agent = await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent())
        agent.last_hit_at = utc_now() - timedelta(days=2)
        await session.commit()

        hit = await agent_service.update_last_hit(session, NAMESPACE, PROJECT, "edge-1")
        assert hit.last_hit_at > utc_now() - timedelta(minutes=1)
        await agent_service.delete_agent(session, NAMESPACE, PROJECT, "edge-1")
        with pytest.raises(AgentNotFound):
            await agent_service.get_agent(session, NAMESPACE, PROJECT, "edge-1")
        with pytest.raises(AgentNotFound):
            await agent_service.update_last_hit(session, NAMESPACE, PROJECT, "edge-1")


@pytest.mark.asyncio
async def test_dashboard_counts_published_rows_drafts_and_agents() -> None:
    await create_project()
    async with SessionLocal() as session:
        await redirect_drafts.create_draft(session, NAMESPACE, PROJECT, new_payload=redirect_payload("/a"))
        await redirect_drafts.create_draft(
            session, NAMESPACE, PROJECT, new_payload=redirect_payload("^/b$", "/c", type="regex")
        )
        await page_drafts.create_draft(session, NAMESPACE, PROJECT, new_payload=page_payload())
        await publish_service.publish(session, NAMESPACE, PROJECT)
        # A pending CREATE leaves a stub that is not counted as a redirect.
        await redirect_drafts.create_draft(session, NAMESPACE, PROJECT, new_payload=redirect_payload("/d"))

        await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent("edge-1"))
        await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent("edge-2", status="error"))
        stale = await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent("edge-3"))
        stale.last_hit_at = utc_now() - timedelta(days=2)
        await session.commit()

        dashboard = await dashboard_service.get_project_dashboard(session, NAMESPACE, PROJECT)
        assert dashboard.version == 2
        assert dashboard.published_at is not None
        assert dashboard.redirects.total == 2
        assert dashboard.redirects.by_key == {"basic": 1, "basic_host": 0, "regex": 1, "regex_host": 0}
        assert dashboard.redirect_drafts.by_key == {"CREATE": 1, "UPDATE": 0, "DELETE": 0}
        assert dashboard.pages.total == 1
        assert dashboard.page_drafts.total == 0
        assert dashboard.agents_online == 2
        assert dashboard.agents_error == 1

        with pytest.raises(ProjectNotFound):
            await dashboard_service.get_project_dashboard(session, NAMESPACE, "missing")


@pytest.mark.asyncio
async def test_agents_are_scoped_per_project() -> None:
    await create_project()
    await create_project(project_code="shop")
    async with SessionLocal() as session:
        await agent_service.upsert_agent(session, NAMESPACE, PROJECT, _agent())
        await agent_service.upsert_agent(session, NAMESPACE, "shop", _agent())
        rows = (await agent_service.search_agents(session, NAMESPACE, "shop")).items
        assert [(row.project_code, row.name) for row in rows] == [("shop", "edge-1")]
        assert isinstance(rows[0], Agent)
