from __future__ import annotations

import pytest

from flecto_manager.core.errors import InvalidImportHeader
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.services import publish as publish_service
from flecto_manager.services.drafts import redirects as redirect_drafts
from flecto_manager.services.redirect_import import ImportErrorReason, import_file
from flecto_manager.tests.utils.factories import NAMESPACE, PROJECT, create_project, redirect_payload


def _tsv(*rows: str) -> bytes:
    return ("type\tsource\ttarget\tstatus\n" + "".join(f"{row}\n" for row in rows)).encode("utf-8")


async def _pending_by_source(session) -> dict[str, tuple[str, str]]:
    result = await redirect_drafts.search(session, NAMESPACE, PROJECT)
    return {
        draft.new_source: (draft.change_type, draft.new_target)
        for _redirect, draft in result.items
        if draft is not None
    }


@pytest.mark.asyncio
async def test_import_creates_drafts_for_new_sources() -> None:
    await create_project()
    async with SessionLocal() as session:
        result = await import_file(
            session, NAMESPACE, PROJECT, _tsv("BASIC\t/a\t/x\t301", "REGEX\t^/b/(.*)$\t/y/$1\tFOUND")
        )
        assert result.success is True
        assert (result.total_lines, result.imported, result.skipped, result.error_count) == (2, 2, 0, 0)
        assert await _pending_by_source(session) == {"/a": ("CREATE", "/x"), "^/b/(.*)$": ("CREATE", "/y/$1")}


@pytest.mark.asyncio
async def test_existing_sources_need_overwrite() -> None:
    await create_project()
    async with SessionLocal() as session:
        await redirect_drafts.create_draft(session, NAMESPACE, PROJECT, new_payload=redirect_payload("/a", "/x"))
        await publish_service.publish(session, NAMESPACE, PROJECT)

        result = await import_file(session, NAMESPACE, PROJECT, _tsv("basic\t/a\t/changed\t301", "basic\t/b\t/y\t301"))
        assert result.success is False
        assert result.imported == 1
        assert [(error.line, error.reason) for error in result.errors] == [
            (2, ImportErrorReason.SOURCE_ALREADY_EXISTS)
        ]
        assert await _pending_by_source(session) == {"/b": ("CREATE", "/y")}


@pytest.mark.asyncio
async def test_overwrite_reconciles_published_and_pending_rows() -> None:
    await create_project()
    async with SessionLocal() as session:
        await redirect_drafts.create_draft(session, NAMESPACE, PROJECT, new_payload=redirect_payload("/same", "/x"))
        await redirect_drafts.create_draft(session, NAMESPACE, PROJECT, new_payload=redirect_payload("/changed", "/x"))
        await publish_service.publish(session, NAMESPACE, PROJECT)
        await redirect_drafts.create_draft(session, NAMESPACE, PROJECT, new_payload=redirect_payload("/pending", "/x"))

        result = await import_file(
            session,
            NAMESPACE,
            PROJECT,
            _tsv(
                "basic\t/same\t/x\t301",
                "basic\t/changed\t/y\t301",
                "basic\t/pending\t/z\t302",
            ),
            overwrite=True,
        )
        assert result.success is True
        assert (result.imported, result.skipped) == (2, 1)
        assert await _pending_by_source(session) == {
            "/changed": ("UPDATE", "/y"),
            "/pending": ("CREATE", "/z"),
        }

        # Re-importing the same content is a no-op.
        again = await import_file(
            session,
            NAMESPACE,
            PROJECT,
            _tsv("basic\t/changed\t/y\t301", "basic\t/pending\t/z\t302"),
            overwrite=True,
        )
        assert (again.imported, again.skipped) == (0, 2)


@pytest.mark.asyncio
async def test_parse_and_row_errors_are_reported_together() -> None:
    await create_project()
    async with SessionLocal() as session:
        result = await import_file(
            session,
            NAMESPACE,
            PROJECT,
            _tsv(
                "basic\t/ok\t/x\t301",
                "basic\tno-slash\t/x\t301",
                "basic\t/ok\t/y\t301",
                "nope\t/z\t/x\t301",
            ),
        )
        assert result.success is False
        assert result.total_lines == 4
        assert result.imported == 1
        assert [(error.line, error.reason) for error in result.errors] == [
            (3, ImportErrorReason.INVALID_REDIRECT),
            (4, ImportErrorReason.DUPLICATE_SOURCE_IN_FILE),
            (5, ImportErrorReason.INVALID_TYPE),
        ]
        assert await _pending_by_source(session) == {"/ok": ("CREATE", "/x")}


@pytest.mark.asyncio
async def test_broken_header_writes_nothing() -> None:
    await create_project()
    async with SessionLocal() as session:
        with pytest.raises(InvalidImportHeader):
            await import_file(session, NAMESPACE, PROJECT, b"source\ttarget\n/a\t/b\n")
        assert await _pending_by_source(session) == {}
