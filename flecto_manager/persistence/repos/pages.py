from __future__ import annotations

from sqlalchemy import Select, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import Page, PageDraft
from flecto_manager.domain.types import DraftChangeType
from flecto_manager.persistence.guards import project_predicate


async def get_page(session: AsyncSession, namespace_code: str, project_code: str, page_id: int) -> Page | None:
    result = await session.execute(
        select(Page).where(project_predicate(Page, namespace_code, project_code), Page.id == page_id)
    )
    return result.scalar_one_or_none()


async def get_draft(session: AsyncSession, namespace_code: str, project_code: str, draft_id: int) -> PageDraft | None:
    result = await session.execute(
        select(PageDraft).where(
            project_predicate(PageDraft, namespace_code, project_code),
            PageDraft.id == draft_id,
        )
    )
    return result.scalar_one_or_none()


async def get_draft_for_page(session: AsyncSession, page_id: int) -> PageDraft | None:
    result = await session.execute(select(PageDraft).where(PageDraft.old_page_id == page_id))
    return result.scalar_one_or_none()


async def is_path_available(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    path: str,
    *,
    exclude_page_id: int = 0,
    exclude_draft_id: int = 0,
) -> bool:
    used_by_page = exists(
        select(Page.id).where(
            project_predicate(Page, namespace_code, project_code),
            Page.path == path,
            Page.id != exclude_page_id,
        )
    )
    used_by_draft = exists(
        select(PageDraft.id).where(
            project_predicate(PageDraft, namespace_code, project_code),
            PageDraft.new_path == path,
            PageDraft.id != exclude_draft_id,
            PageDraft.change_type != DraftChangeType.DELETE.value,
        )
    )
    taken = await session.scalar(select(or_(used_by_page, used_by_draft)))
    return not bool(taken)


async def projected_total_content_size(session: AsyncSession, namespace_code: str, project_code: str) -> int:
    """Content size the project would hold if every pending draft were published.

    Published pages without a draft keep their size; pages with a draft are
    replaced by the draft's size (zero for deletions, which are not counted).
    """
    untouched = await session.scalar(
        select(func.coalesce(func.sum(Page.content_size), 0)).where(
            project_predicate(Page, namespace_code, project_code),
            Page.is_published.is_(True),
            ~exists(select(PageDraft.id).where(PageDraft.old_page_id == Page.id)),
        )
    )
    drafted = await session.scalar(
        select(func.coalesce(func.sum(PageDraft.content_size), 0)).where(
            project_predicate(PageDraft, namespace_code, project_code),
            PageDraft.change_type.in_([DraftChangeType.CREATE.value, DraftChangeType.UPDATE.value]),
        )
    )
    return int(untouched or 0) + int(drafted or 0)


async def count_drafts(session: AsyncSession, namespace_code: str, project_code: str) -> int:
    count = await session.scalar(
        select(func.count(PageDraft.id)).where(project_predicate(PageDraft, namespace_code, project_code))
    )
    return int(count or 0)


async def count_by_type(session: AsyncSession, namespace_code: str, project_code: str) -> dict[str, int]:
    result = await session.execute(
        select(Page.type, func.count(Page.id))
        .where(project_predicate(Page, namespace_code, project_code), Page.type.is_not(None))
        .group_by(Page.type)
    )
    return {row[0]: int(row[1]) for row in result.all()}


async def count_drafts_by_change_type(
    session: AsyncSession, namespace_code: str, project_code: str
) -> dict[str, int]:
    result = await session.execute(
        select(PageDraft.change_type, func.count(PageDraft.id))
        .where(project_predicate(PageDraft, namespace_code, project_code))
        .group_by(PageDraft.change_type)
    )
    return {row[0]: int(row[1]) for row in result.all()}


def published_statement(namespace_code: str, project_code: str) -> Select:
    return (
        select(Page)
        .where(project_predicate(Page, namespace_code, project_code), Page.is_published.is_(True))
        .order_by(Page.id)
    )


def search_statement(
    namespace_code: str,
    project_code: str,
    *,
    search: str | None = None,
    page_type: str | None = None,
    change_type: str | None = None,
) -> Select:
    stmt = (
        select(Page, PageDraft)
        .outerjoin(PageDraft, PageDraft.old_page_id == Page.id)
        .where(project_predicate(Page, namespace_code, project_code))
    )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Page.path.ilike(pattern), PageDraft.new_path.ilike(pattern)))
    if page_type:
        stmt = stmt.where(or_(Page.type == page_type, PageDraft.new_type == page_type))
    if change_type:
        stmt = stmt.where(PageDraft.change_type == change_type)
    return stmt
