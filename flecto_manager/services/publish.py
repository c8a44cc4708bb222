"""Atomic promotion of a project's pending drafts.

A publish holds a non-blocking row lock on the project for the whole
transaction, so two publishes of the same project never interleave: the
loser fails fast with ``PublishInProgress`` instead of waiting. Drafts are
read after the lock is taken, which guarantees that the version bump covers
exactly the drafts that were applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Sequence, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.config import get_settings
from flecto_manager.core.errors import FlectoError, NothingToPublish, ProjectNotFound, PublishInProgress, StorageError
from flecto_manager.domain.models import Page, PageDraft, Project, Redirect, RedirectDraft, utc_now
from flecto_manager.domain.types import DraftChangeType
from flecto_manager.persistence.db import is_lock_error, transaction
from flecto_manager.persistence.guards import project_predicate
from flecto_manager.persistence.repos import pages as pages_repo
from flecto_manager.persistence.repos import projects as projects_repo
from flecto_manager.persistence.repos import redirects as redirects_repo
from flecto_manager.services.drafts import pages as page_drafts
from flecto_manager.services.drafts import redirects as redirect_drafts


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PublishSummary:
    namespace_code: str
    project_code: str
    version: int
    published_at: datetime
    redirects_upserted: int
    redirects_deleted: int
    pages_upserted: int
    pages_deleted: int


def _batches(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def _lock_project(session: AsyncSession, namespace_code: str, project_code: str) -> Project:
    try:
        project = await projects_repo.lock_project(session, namespace_code, project_code)
    except SQLAlchemyError as exc:
        if is_lock_error(exc):
            logger.warning("publish lock busy namespace=%s project=%s", namespace_code, project_code)
            raise PublishInProgress() from exc
        raise
    if project is None:
        raise ProjectNotFound()
    return project


async def _apply_redirects(
    session: AsyncSession, drafts: list[RedirectDraft], published_at: datetime, batch_size: int
) -> tuple[int, int]:
    upserts = {d.old_redirect_id: d for d in drafts if d.change_type != DraftChangeType.DELETE.value}
    deletes = [d.old_redirect_id for d in drafts if d.change_type == DraftChangeType.DELETE.value]
    for ids in _batches(list(upserts), batch_size):
        result = await session.execute(select(Redirect).where(Redirect.id.in_(ids)))
        for redirect in result.scalars():
            redirect.apply_payload(upserts[redirect.id].new_payload)
            redirect.is_published = True
            redirect.published_at = published_at
        await session.flush()
    draft_ids = [d.id for d in drafts]
    for ids in _batches(draft_ids, batch_size):
        await session.execute(delete(RedirectDraft).where(RedirectDraft.id.in_(ids)))
    for ids in _batches(deletes, batch_size):
        await session.execute(delete(Redirect).where(Redirect.id.in_(ids)))
    return len(upserts), len(deletes)


async def _apply_pages(
    session: AsyncSession, drafts: list[PageDraft], published_at: datetime, batch_size: int
) -> tuple[int, int]:
    upserts = {d.old_page_id: d for d in drafts if d.change_type != DraftChangeType.DELETE.value}
    deletes = [d.old_page_id for d in drafts if d.change_type == DraftChangeType.DELETE.value]
    for ids in _batches(list(upserts), batch_size):
        result = await session.execute(select(Page).where(Page.id.in_(ids)))
        for page in result.scalars():
            page.apply_payload(upserts[page.id].new_payload)
            page.is_published = True
            page.published_at = published_at
        await session.flush()
    draft_ids = [d.id for d in drafts]
    for ids in _batches(draft_ids, batch_size):
        await session.execute(delete(PageDraft).where(PageDraft.id.in_(ids)))
    for ids in _batches(deletes, batch_size):
        await session.execute(delete(Page).where(Page.id.in_(ids)))
    return len(upserts), len(deletes)


async def _list_redirect_drafts(session: AsyncSession, namespace_code: str, project_code: str) -> list[RedirectDraft]:
    result = await session.execute(
        select(RedirectDraft)
        .where(project_predicate(RedirectDraft, namespace_code, project_code))
        .order_by(RedirectDraft.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _list_page_drafts(session: AsyncSession, namespace_code: str, project_code: str) -> list[PageDraft]:
    result = await session.execute(
        select(PageDraft)
        .where(project_predicate(PageDraft, namespace_code, project_code))
        .order_by(PageDraft.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def publish(session: AsyncSession, namespace_code: str, project_code: str) -> PublishSummary:
    if await projects_repo.get_project(session, namespace_code, project_code) is None:
        raise ProjectNotFound()
    redirect_count = await redirects_repo.count_drafts(session, namespace_code, project_code)
    page_count = await pages_repo.count_drafts(session, namespace_code, project_code)
    if redirect_count == 0 and page_count == 0:
        raise NothingToPublish()

    batch_size = max(1, get_settings().publish_batch_size)
    published_at = utc_now()
    logger.info(
        "publish started namespace=%s project=%s redirect_drafts=%s page_drafts=%s",
        namespace_code,
        project_code,
        redirect_count,
        page_count,
    )
    try:
        async with transaction(session):
            project = await _lock_project(session, namespace_code, project_code)
            redirect_drafts_rows = await _list_redirect_drafts(session, namespace_code, project_code)
            page_drafts_rows = await _list_page_drafts(session, namespace_code, project_code)
            if not redirect_drafts_rows and not page_drafts_rows:
                # Another publish consumed the drafts between the count and the lock.
                raise NothingToPublish()
            redirects_upserted, redirects_deleted = await _apply_redirects(
                session, redirect_drafts_rows, published_at, batch_size
            )
            pages_upserted, pages_deleted = await _apply_pages(session, page_drafts_rows, published_at, batch_size)
            project.version = project.version + 1
            project.published_at = published_at
    except (PublishInProgress, NothingToPublish):
        raise
    except StorageError as exc:
        if exc.storage_kind == StorageError.LOCK_CONFLICT:
            # A concurrent publish holds the write lock past the initial claim.
            logger.warning("publish lock lost namespace=%s project=%s", namespace_code, project_code)
            raise PublishInProgress() from exc
        logger.error("publish failed namespace=%s project=%s error=%s", namespace_code, project_code, exc)
        raise
    except FlectoError as exc:
        logger.error("publish failed namespace=%s project=%s error=%s", namespace_code, project_code, exc)
        raise

    logger.info(
        "publish completed namespace=%s project=%s version=%s", namespace_code, project_code, project.version
    )
    return PublishSummary(
        namespace_code=namespace_code,
        project_code=project_code,
        version=project.version,
        published_at=published_at,
        redirects_upserted=redirects_upserted,
        redirects_deleted=redirects_deleted,
        pages_upserted=pages_upserted,
        pages_deleted=pages_deleted,
    )


async def rollback(session: AsyncSession, namespace_code: str, project_code: str) -> None:
    # Discards every pending change of the project, for redirects and pages alike, in one unit.
    if await projects_repo.get_project(session, namespace_code, project_code) is None:
        raise ProjectNotFound()
    logger.info("rollback started namespace=%s project=%s", namespace_code, project_code)
    try:
        async with transaction(session):
            await redirect_drafts.discard_drafts(session, namespace_code, project_code)
            await page_drafts.discard_drafts(session, namespace_code, project_code)
    except FlectoError as exc:
        logger.error("rollback failed namespace=%s project=%s error=%s", namespace_code, project_code, exc)
        raise
    logger.info("rollback completed namespace=%s project=%s", namespace_code, project_code)
