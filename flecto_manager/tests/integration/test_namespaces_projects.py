from __future__ import annotations

import pytest
from sqlalchemy import func, select

from flecto_manager.core.errors import (
    NamespaceAlreadyExists,
    NamespaceNotFound,
    ProjectAlreadyExists,
    ProjectNotFound,
    ValidationFailedError,
)
from flecto_manager.domain.models import Redirect, RedirectDraft
from flecto_manager.domain.types import WILDCARD, ResourceRule
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.services import namespaces as namespace_service
from flecto_manager.services import projects as project_service
from flecto_manager.services.drafts import redirects as redirect_drafts
from flecto_manager.tests.utils.factories import redirect_payload


async def _seed(session) -> None:
    for namespace_code in ("acme", "beta"):
        await namespace_service.create_namespace(session, namespace_code=namespace_code, name=namespace_code.title())
    for namespace_code, project_code in (("acme", "web"), ("acme", "shop"), ("beta", "web")):
        await project_service.create_project(
            session, namespace_code=namespace_code, project_code=project_code, name=project_code.title()
        )


@pytest.mark.asyncio
async def test_namespace_and_project_crud() -> None:
    async with SessionLocal() as session:
        await _seed(session)
        with pytest.raises(NamespaceAlreadyExists):
            await namespace_service.create_namespace(session, namespace_code="acme", name="Again")
        with pytest.raises(ValidationFailedError):
            await namespace_service.create_namespace(session, namespace_code="bad code", name="Bad")
        with pytest.raises(ProjectAlreadyExists):
            await project_service.create_project(session, namespace_code="acme", project_code="web", name="Web")
        with pytest.raises(NamespaceNotFound):
            await project_service.create_project(session, namespace_code="gamma", project_code="web", name="Web")

        project = await project_service.get_project(session, "acme", "web")
        assert project.version == 1
        assert project.published_at is None
        renamed = await project_service.update_project(session, "acme", "web", name="Website")
        assert renamed.name == "Website"
        namespace = await namespace_service.update_namespace(session, "beta", name="Beta Corp")
        assert namespace.name == "Beta Corp"


@pytest.mark.asyncio
async def test_deleting_a_namespace_cascades_to_project_rows() -> None:
    async with SessionLocal() as session:
        await _seed(session)
        await redirect_drafts.create_draft(session, "acme", "web", new_payload=redirect_payload())
        await namespace_service.delete_namespace(session, "acme")

        with pytest.raises(ProjectNotFound):
            await project_service.get_project(session, "acme", "web")
        assert await session.scalar(select(func.count()).select_from(Redirect)) == 0
        assert await session.scalar(select(func.count()).select_from(RedirectDraft)) == 0
        assert (await project_service.search_projects(session)).total == 1


@pytest.mark.asyncio
async def test_search_filters_by_rules() -> None:
    async with SessionLocal() as session:
        await _seed(session)
        rules = [ResourceRule("acme", "shop", WILDCARD, "read"), ResourceRule("beta", WILDCARD, WILDCARD, "read")]

        visible = await project_service.search_projects(session, rules=rules)
        assert sorted((p.namespace_code, p.project_code) for p in visible.items) == [("acme", "shop"), ("beta", "web")]
        in_acme = await project_service.search_projects(session, rules=rules, namespace_code="acme")
        assert [p.project_code for p in in_acme.items] == ["shop"]
        assert (await project_service.search_projects(session, rules=[])).total == 0
        assert (await project_service.search_projects(session)).total == 3

        namespaces = await namespace_service.search_namespaces(session, rules=[ResourceRule("beta", "web", "*", "read")])
        assert [n.namespace_code for n in namespaces.items] == ["beta"]
        found = await project_service.search_projects(session, search="sho")
        assert [p.project_code for p in found.items] == ["shop"]
