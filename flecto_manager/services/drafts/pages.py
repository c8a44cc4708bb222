from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.config import get_settings
from flecto_manager.core.errors import (
    ContentSizeExceeded,
    DraftAlreadyPending,
    DraftNotEditable,
    InvalidDraftArguments,
    PageDraftNotFound,
    PageNotFound,
    PathAlreadyUsed,
    TotalSizeLimitReached,
)
from flecto_manager.domain.models import Page, PageDraft
from flecto_manager.domain.types import DraftChangeType, PagePayload
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.guards import project_predicate
from flecto_manager.persistence.query import (
    PAGE_SORT_COLUMNS,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    paginate,
)
from flecto_manager.persistence.repos import pages as pages_repo
from flecto_manager.services.drafts.common import derive_change_type, ensure_project
from flecto_manager.services.validation import ensure_valid, validate_page


logger = logging.getLogger(__name__)


async def get_draft(session: AsyncSession, namespace_code: str, project_code: str, draft_id: int) -> PageDraft:
    draft = await pages_repo.get_draft(session, namespace_code, project_code, draft_id)
    if draft is None:
        raise PageDraftNotFound()
    return draft


def _ensure_content_size(payload: PagePayload) -> None:
    if payload.content_size > get_settings().page_size_limit:
        raise ContentSizeExceeded()


async def _ensure_total_size(session: AsyncSession, namespace_code: str, project_code: str, added: int) -> None:
    # Measured against what the project would hold once every pending draft is published.
    current = await pages_repo.projected_total_content_size(session, namespace_code, project_code)
    if current + added > get_settings().page_total_size_limit:
        raise TotalSizeLimitReached()


async def _ensure_path_available(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    path: str,
    *,
    exclude_page_id: int = 0,
    exclude_draft_id: int = 0,
) -> None:
    available = await pages_repo.is_path_available(
        session,
        namespace_code,
        project_code,
        path,
        exclude_page_id=exclude_page_id,
        exclude_draft_id=exclude_draft_id,
    )
    if not available:
        raise PathAlreadyUsed()


async def create_draft(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    old_page_id: int | None = None,
    new_payload: PagePayload | None = None,
) -> PageDraft:
    change_type = derive_change_type(old_page_id, new_payload)
    await ensure_project(session, namespace_code, project_code)

    if old_page_id is not None:
        if await pages_repo.get_page(session, namespace_code, project_code, old_page_id) is None:
            raise PageNotFound()
        if await pages_repo.get_draft_for_page(session, old_page_id) is not None:
            raise DraftAlreadyPending()

    if new_payload is not None:
        ensure_valid(validate_page(new_payload))
        _ensure_content_size(new_payload)
        await _ensure_path_available(
            session, namespace_code, project_code, new_payload.path, exclude_page_id=old_page_id or 0
        )
        await _ensure_total_size(session, namespace_code, project_code, new_payload.content_size)

    draft = PageDraft(namespace_code=namespace_code, project_code=project_code, change_type=change_type.value)
    draft.new_payload = new_payload
    async with transaction(session):
        if change_type is DraftChangeType.CREATE:
            stub = Page(namespace_code=namespace_code, project_code=project_code, is_published=False)
            session.add(stub)
            await session.flush()
            draft.old_page_id = stub.id
        else:
            draft.old_page_id = old_page_id
        session.add(draft)
    return draft


async def update_draft(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    draft_id: int,
    new_payload: PagePayload | None,
) -> PageDraft:
    if new_payload is None:
        raise InvalidDraftArguments("A new page payload is required")
    draft = await get_draft(session, namespace_code, project_code, draft_id)
    if draft.change_type == DraftChangeType.DELETE.value:
        raise DraftNotEditable()
    ensure_valid(validate_page(new_payload))
    _ensure_content_size(new_payload)
    if draft.new_path != new_payload.path:
        await _ensure_path_available(
            session,
            namespace_code,
            project_code,
            new_payload.path,
            exclude_page_id=draft.old_page_id,
            exclude_draft_id=draft.id,
        )
    delta = new_payload.content_size - draft.content_size
    if delta > 0:
        await _ensure_total_size(session, namespace_code, project_code, delta)
    async with transaction(session):
        draft.new_payload = new_payload
    return draft


async def delete_draft(session: AsyncSession, namespace_code: str, project_code: str, draft_id: int) -> None:
    draft = await get_draft(session, namespace_code, project_code, draft_id)
    async with transaction(session):
        await session.delete(draft)
        if draft.change_type == DraftChangeType.CREATE.value:
            await session.execute(delete(Page).where(Page.id == draft.old_page_id, Page.is_published.is_(False)))


async def discard_drafts(session: AsyncSession, namespace_code: str, project_code: str) -> None:
    await session.execute(delete(PageDraft).where(project_predicate(PageDraft, namespace_code, project_code)))
    await session.execute(
        delete(Page).where(project_predicate(Page, namespace_code, project_code), Page.is_published.is_(False))
    )


async def rollback(session: AsyncSession, namespace_code: str, project_code: str) -> None:
    logger.info("page rollback started namespace=%s project=%s", namespace_code, project_code)
    async with transaction(session):
        await discard_drafts(session, namespace_code, project_code)
    logger.info("page rollback completed namespace=%s project=%s", namespace_code, project_code)


async def get_page(session: AsyncSession, namespace_code: str, project_code: str, page_id: int) -> Page:
    page = await pages_repo.get_page(session, namespace_code, project_code, page_id)
    if page is None:
        raise PageNotFound()
    return page


async def find_published(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    pagination: PaginationInput | None = None,
    *,
    default_limit: int | None = None,
) -> PageResult:
    stmt = pages_repo.published_statement(namespace_code, project_code)
    return await paginate(session, stmt, pagination, default_limit=default_limit)


async def search(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    *,
    search: str | None = None,
    page_type: str | None = None,
    change_type: str | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = pages_repo.search_statement(
        namespace_code, project_code, search=search, page_type=page_type, change_type=change_type
    )
    stmt = apply_sort(stmt, PAGE_SORT_COLUMNS, sorts, "pages")
    return await paginate(session, stmt.order_by(Page.id), pagination, scalars=False)
