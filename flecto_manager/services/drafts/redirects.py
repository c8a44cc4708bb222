from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import (
    DraftAlreadyPending,
    DraftNotEditable,
    InvalidDraftArguments,
    RedirectDraftNotFound,
    RedirectNotFound,
    SourceAlreadyUsed,
)
from flecto_manager.domain.models import Redirect, RedirectDraft
from flecto_manager.domain.types import DraftChangeType, RedirectPayload
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.guards import project_predicate
from flecto_manager.persistence.query import (
    REDIRECT_SORT_COLUMNS,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    paginate,
)
from flecto_manager.persistence.repos import redirects as redirects_repo
from flecto_manager.services.drafts.common import derive_change_type, ensure_project
from flecto_manager.services.validation import ensure_valid, validate_redirect


logger = logging.getLogger(__name__)


async def get_draft(session: AsyncSession, namespace_code: str, project_code: str, draft_id: int) -> RedirectDraft:
    draft = await redirects_repo.get_draft(session, namespace_code, project_code, draft_id)
    if draft is None:
        raise RedirectDraftNotFound()
    return draft


async def _ensure_source_available(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    source: str,
    *,
    exclude_redirect_id: int = 0,
    exclude_draft_id: int = 0,
) -> None:
    available = await redirects_repo.is_source_available(
        session,
        namespace_code,
        project_code,
        source,
        exclude_redirect_id=exclude_redirect_id,
        exclude_draft_id=exclude_draft_id,
    )
    if not available:
        raise SourceAlreadyUsed()


async def create_draft(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    old_redirect_id: int | None = None,
    new_payload: RedirectPayload | None = None,
) -> RedirectDraft:
    change_type = derive_change_type(old_redirect_id, new_payload)
    await ensure_project(session, namespace_code, project_code)

    if old_redirect_id is not None:
        if await redirects_repo.get_redirect(session, namespace_code, project_code, old_redirect_id) is None:
            raise RedirectNotFound()
        if await redirects_repo.get_draft_for_redirect(session, old_redirect_id) is not None:
            raise DraftAlreadyPending()

    if new_payload is not None:
        ensure_valid(validate_redirect(new_payload))
        await _ensure_source_available(
            session, namespace_code, project_code, new_payload.source, exclude_redirect_id=old_redirect_id or 0
        )

    draft = RedirectDraft(namespace_code=namespace_code, project_code=project_code, change_type=change_type.value)
    draft.new_payload = new_payload
    async with transaction(session):
        if change_type is DraftChangeType.CREATE:
            # The stub gives the draft a row id to own until publish.
            stub = Redirect(namespace_code=namespace_code, project_code=project_code, is_published=False)
            session.add(stub)
            await session.flush()
            draft.old_redirect_id = stub.id
        else:
            draft.old_redirect_id = old_redirect_id
        session.add(draft)
    return draft


async def update_draft(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    draft_id: int,
    new_payload: RedirectPayload | None,
) -> RedirectDraft:
    if new_payload is None:
        raise InvalidDraftArguments("A new redirect payload is required")
    draft = await get_draft(session, namespace_code, project_code, draft_id)
    if draft.change_type == DraftChangeType.DELETE.value:
        raise DraftNotEditable()
    ensure_valid(validate_redirect(new_payload))
    if draft.new_source != new_payload.source:
        await _ensure_source_available(
            session,
            namespace_code,
            project_code,
            new_payload.source,
            exclude_redirect_id=draft.old_redirect_id,
            exclude_draft_id=draft.id,
        )
    async with transaction(session):
        draft.new_payload = new_payload
    return draft


async def delete_draft(session: AsyncSession, namespace_code: str, project_code: str, draft_id: int) -> None:
    draft = await get_draft(session, namespace_code, project_code, draft_id)
    async with transaction(session):
        await session.delete(draft)
        if draft.change_type == DraftChangeType.CREATE.value:
            await session.execute(
                delete(Redirect).where(Redirect.id == draft.old_redirect_id, Redirect.is_published.is_(False))
            )


async def discard_drafts(session: AsyncSession, namespace_code: str, project_code: str) -> None:
    # Published rows survive; every draft and every unpublished stub goes. Caller owns the transaction.
    await session.execute(delete(RedirectDraft).where(project_predicate(RedirectDraft, namespace_code, project_code)))
    await session.execute(
        delete(Redirect).where(
            project_predicate(Redirect, namespace_code, project_code),
            Redirect.is_published.is_(False),
        )
    )


async def rollback(session: AsyncSession, namespace_code: str, project_code: str) -> None:
    logger.info("redirect rollback started namespace=%s project=%s", namespace_code, project_code)
    async with transaction(session):
        await discard_drafts(session, namespace_code, project_code)
    logger.info("redirect rollback completed namespace=%s project=%s", namespace_code, project_code)


async def get_redirect(session: AsyncSession, namespace_code: str, project_code: str, redirect_id: int) -> Redirect:
    redirect = await redirects_repo.get_redirect(session, namespace_code, project_code, redirect_id)
    if redirect is None:
        raise RedirectNotFound()
    return redirect


async def find_published(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    pagination: PaginationInput | None = None,
    *,
    default_limit: int | None = None,
) -> PageResult:
    stmt = redirects_repo.published_statement(namespace_code, project_code)
    return await paginate(session, stmt, pagination, default_limit=default_limit)


async def search(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    *,
    search: str | None = None,
    redirect_type: str | None = None,
    change_type: str | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    # Items are (redirect, draft-or-None) pairs.
    stmt = redirects_repo.search_statement(
        namespace_code, project_code, search=search, redirect_type=redirect_type, change_type=change_type
    )
    stmt = apply_sort(stmt, REDIRECT_SORT_COLUMNS, sorts, "redirects")
    return await paginate(session, stmt.order_by(Redirect.id), pagination, scalars=False)
