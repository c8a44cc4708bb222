from __future__ import annotations

from sqlalchemy import Select, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import Project
from flecto_manager.persistence.guards import project_predicate


async def get_project(session: AsyncSession, namespace_code: str, project_code: str) -> Project | None:
    result = await session.execute(select(Project).where(project_predicate(Project, namespace_code, project_code)))
    return result.scalar_one_or_none()


async def lock_project(session: AsyncSession, namespace_code: str, project_code: str) -> Project | None:
    # Non-blocking row lock; contention surfaces as a driver lock error instead of waiting.
    predicate = project_predicate(Project, namespace_code, project_code)
    if session.get_bind().dialect.name == "sqlite":
        # SQLite has no row locks; a no-op write claims the database write lock up front.
        await session.execute(
            update(Project).where(predicate).values(version=Project.version).execution_options(synchronize_session=False)
        )
    result = await session.execute(
        select(Project).where(predicate).with_for_update(nowait=True).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def search_statement(*, namespace_code: str | None = None, search: str | None = None) -> Select:
    stmt = select(Project)
    if namespace_code:
        stmt = stmt.where(Project.namespace_code == namespace_code)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Project.project_code.ilike(pattern), Project.name.ilike(pattern)))
    return stmt
