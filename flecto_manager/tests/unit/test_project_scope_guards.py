from __future__ import annotations

import pytest

from flecto_manager.domain.models import Page, Redirect
from flecto_manager.persistence.guards import ProjectScopeError, project_predicate
from flecto_manager.persistence.repos import agents as agents_repo
from flecto_manager.persistence.repos import pages as pages_repo
from flecto_manager.persistence.repos import redirects as redirects_repo


def test_predicate_requires_both_codes() -> None:
    with pytest.raises(ProjectScopeError):
        project_predicate(Redirect, "acme", "")
    with pytest.raises(ProjectScopeError):
        project_predicate(Page, None, "web")  # type: ignore[arg-type]
    clause = str(project_predicate(Redirect, "acme", "web"))
    assert "redirects.namespace_code" in clause
    assert "redirects.project_code" in clause


@pytest.mark.asyncio
async def test_redirect_repo_requires_project_scope() -> None:
    with pytest.raises(ProjectScopeError):
        await redirects_repo.get_redirect(None, None, "web", 1)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_page_repo_requires_project_scope() -> None:
    with pytest.raises(ProjectScopeError):
        await pages_repo.get_page(None, "acme", None, 1)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_agent_repo_requires_project_scope() -> None:
    with pytest.raises(ProjectScopeError):
        await agents_repo.get_agent(None, "", "web", "edge-1")  # type: ignore[arg-type]
