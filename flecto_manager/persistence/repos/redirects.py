from __future__ import annotations

from sqlalchemy import Select, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import Redirect, RedirectDraft
from flecto_manager.domain.types import DraftChangeType
from flecto_manager.persistence.guards import project_predicate


async def get_redirect(
    session: AsyncSession, namespace_code: str, project_code: str, redirect_id: int
) -> Redirect | None:
    result = await session.execute(
        select(Redirect).where(
            project_predicate(Redirect, namespace_code, project_code),
            Redirect.id == redirect_id,
        )
    )
    return result.scalar_one_or_none()


async def get_draft(
    session: AsyncSession, namespace_code: str, project_code: str, draft_id: int
) -> RedirectDraft | None:
    result = await session.execute(
        select(RedirectDraft).where(
            project_predicate(RedirectDraft, namespace_code, project_code),
            RedirectDraft.id == draft_id,
        )
    )
    return result.scalar_one_or_none()


async def get_draft_for_redirect(session: AsyncSession, redirect_id: int) -> RedirectDraft | None:
    result = await session.execute(select(RedirectDraft).where(RedirectDraft.old_redirect_id == redirect_id))
    return result.scalar_one_or_none()


async def find_by_source(
    session: AsyncSession, namespace_code: str, project_code: str, source: str
) -> Redirect | None:
    # Stubs carry no source, so a match is always a row with a payload.
    result = await session.execute(
        select(Redirect)
        .where(project_predicate(Redirect, namespace_code, project_code), Redirect.source == source)
        .order_by(Redirect.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_draft_by_new_source(
    session: AsyncSession, namespace_code: str, project_code: str, source: str
) -> RedirectDraft | None:
    result = await session.execute(
        select(RedirectDraft)
        .where(
            project_predicate(RedirectDraft, namespace_code, project_code),
            RedirectDraft.new_source == source,
            RedirectDraft.change_type != DraftChangeType.DELETE.value,
        )
        .order_by(RedirectDraft.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def is_source_available(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    source: str,
    *,
    exclude_redirect_id: int = 0,
    exclude_draft_id: int = 0,
) -> bool:
    # A source is taken by any redirect row or by any pending non-delete draft.
    used_by_redirect = exists(
        select(Redirect.id).where(
            project_predicate(Redirect, namespace_code, project_code),
            Redirect.source == source,
            Redirect.id != exclude_redirect_id,
        )
    )
    used_by_draft = exists(
        select(RedirectDraft.id).where(
            project_predicate(RedirectDraft, namespace_code, project_code),
            RedirectDraft.new_source == source,
            RedirectDraft.id != exclude_draft_id,
            RedirectDraft.change_type != DraftChangeType.DELETE.value,
        )
    )
    taken = await session.scalar(select(or_(used_by_redirect, used_by_draft)))
    return not bool(taken)


async def count_drafts(session: AsyncSession, namespace_code: str, project_code: str) -> int:
    count = await session.scalar(
        select(func.count(RedirectDraft.id)).where(
            project_predicate(RedirectDraft, namespace_code, project_code)
        )
    )
    return int(count or 0)


async def count_by_type(session: AsyncSession, namespace_code: str, project_code: str) -> dict[str, int]:
    # Stubs have no type and are left out of the breakdown.
    result = await session.execute(
        select(Redirect.type, func.count(Redirect.id))
        .where(project_predicate(Redirect, namespace_code, project_code), Redirect.type.is_not(None))
        .group_by(Redirect.type)
    )
    return {row[0]: int(row[1]) for row in result.all()}


async def count_drafts_by_change_type(
    session: AsyncSession, namespace_code: str, project_code: str
) -> dict[str, int]:
    result = await session.execute(
        select(RedirectDraft.change_type, func.count(RedirectDraft.id))
        .where(project_predicate(RedirectDraft, namespace_code, project_code))
        .group_by(RedirectDraft.change_type)
    )
    return {row[0]: int(row[1]) for row in result.all()}


def published_statement(namespace_code: str, project_code: str) -> Select:
    return (
        select(Redirect)
        .where(project_predicate(Redirect, namespace_code, project_code), Redirect.is_published.is_(True))
        .order_by(Redirect.id)
    )


def search_statement(
    namespace_code: str,
    project_code: str,
    *,
    search: str | None = None,
    redirect_type: str | None = None,
    change_type: str | None = None,
) -> Select:
    # Rows (published or stub) joined with their pending draft, if any.
    stmt = (
        select(Redirect, RedirectDraft)
        .outerjoin(RedirectDraft, RedirectDraft.old_redirect_id == Redirect.id)
        .where(project_predicate(Redirect, namespace_code, project_code))
    )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Redirect.source.ilike(pattern),
                Redirect.target.ilike(pattern),
                RedirectDraft.new_source.ilike(pattern),
                RedirectDraft.new_target.ilike(pattern),
            )
        )
    if redirect_type:
        stmt = stmt.where(or_(Redirect.type == redirect_type, RedirectDraft.new_type == redirect_type))
    if change_type:
        stmt = stmt.where(RedirectDraft.change_type == change_type)
    return stmt
