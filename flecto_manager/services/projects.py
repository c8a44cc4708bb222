from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import NamespaceNotFound, ProjectAlreadyExists, ProjectNotFound
from flecto_manager.domain.models import Project
from flecto_manager.domain.types import ResourceRule
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.query import (
    PROJECT_SORT_COLUMNS,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    paginate,
)
from flecto_manager.persistence.repos import namespaces as namespaces_repo
from flecto_manager.persistence.repos import projects as projects_repo
from flecto_manager.services.authz.permissions import (
    filter_query_by_namespace_project,
    filter_query_by_project,
)
from flecto_manager.services.validation import ensure_valid, validate_project


logger = logging.getLogger(__name__)


async def get_project(session: AsyncSession, namespace_code: str, project_code: str) -> Project:
    project = await projects_repo.get_project(session, namespace_code, project_code)
    if project is None:
        raise ProjectNotFound()
    return project


async def get_version(session: AsyncSession, namespace_code: str, project_code: str) -> int:
    project = await get_project(session, namespace_code, project_code)
    return project.version


async def create_project(
    session: AsyncSession, *, namespace_code: str, project_code: str, name: str
) -> Project:
    if await namespaces_repo.get_namespace(session, namespace_code) is None:
        raise NamespaceNotFound()
    ensure_valid(validate_project(namespace_code=namespace_code, project_code=project_code, name=name))
    if await projects_repo.get_project(session, namespace_code, project_code) is not None:
        raise ProjectAlreadyExists()
    project = Project(namespace_code=namespace_code, project_code=project_code, name=name, version=1)
    async with transaction(session):
        session.add(project)
    logger.info("project created namespace=%s project=%s", namespace_code, project_code)
    return project


async def update_project(session: AsyncSession, namespace_code: str, project_code: str, *, name: str) -> Project:
    project = await get_project(session, namespace_code, project_code)
    ensure_valid(validate_project(namespace_code=namespace_code, project_code=project_code, name=name))
    async with transaction(session):
        project.name = name
    return project


async def delete_project(session: AsyncSession, namespace_code: str, project_code: str) -> None:
    project = await get_project(session, namespace_code, project_code)
    async with transaction(session):
        await session.delete(project)
    logger.info("project deleted namespace=%s project=%s", namespace_code, project_code)


async def search_projects(
    session: AsyncSession,
    *,
    rules: list[ResourceRule] | None = None,
    namespace_code: str | None = None,
    search: str | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = projects_repo.search_statement(namespace_code=namespace_code, search=search)
    if rules is not None:
        if namespace_code:
            stmt = filter_query_by_project(
                stmt, rules, namespace_code, Project.namespace_code, Project.project_code
            )
        else:
            stmt = filter_query_by_namespace_project(stmt, rules, Project.namespace_code, Project.project_code)
    stmt = apply_sort(stmt, PROJECT_SORT_COLUMNS, sorts)
    return await paginate(session, stmt.order_by(Project.id), pagination)
