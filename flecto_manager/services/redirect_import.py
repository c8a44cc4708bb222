"""Bulk import of redirects from tab-separated files.

The pipeline has two phases. ``parse_file`` turns raw bytes into parsed rows
and per-line errors without touching the database; only a broken header is
fatal. ``import_rows`` reconciles the rows with published redirects and
pending drafts inside a single transaction: identical rows are skipped,
changed rows update or create drafts, and new sources get a stub plus a
CREATE draft. A failing row is reported and never aborts the whole file.
"""

from __future__ import annotations

import csv
import io
import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.config import get_settings
from flecto_manager.core.errors import InvalidImportFile, InvalidImportHeader
from flecto_manager.domain.models import Redirect, RedirectDraft
from flecto_manager.domain.types import DraftChangeType, RedirectPayload, RedirectStatus, RedirectType
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.repos import redirects as redirects_repo
from flecto_manager.services.drafts.common import ensure_project
from flecto_manager.services.validation import validate_redirect


logger = logging.getLogger(__name__)

IMPORT_HEADER = ("type", "source", "target", "status")
ALLOWED_EXTENSIONS = (".csv", ".tsv")
ALLOWED_CONTENT_TYPES = (
    "text/csv",
    "text/tab-separated-values",
    "text/plain",
    "application/csv",
    "application/octet-stream",
)

_STATUS_ALIASES = {str(int(status)): status for status in RedirectStatus}
_STATUS_ALIASES.update({status.name: status for status in RedirectStatus})


class ImportErrorReason(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_REDIRECT = "INVALID_REDIRECT"
    INVALID_TYPE = "INVALID_TYPE"
    INVALID_STATUS = "INVALID_STATUS"
    EMPTY_SOURCE = "EMPTY_SOURCE"
    EMPTY_TARGET = "EMPTY_TARGET"
    DUPLICATE_SOURCE_IN_FILE = "DUPLICATE_SOURCE_IN_FILE"
    SOURCE_ALREADY_EXISTS = "SOURCE_ALREADY_EXISTS"
    DATABASE_ERROR = "DATABASE_ERROR"


@dataclass(frozen=True)
class ImportRowError:
    line: int
    reason: ImportErrorReason
    message: str
    source: str = ""
    target: str = ""


@dataclass(frozen=True)
class ParsedRow:
    line: int
    payload: RedirectPayload


@dataclass
class ParseResult:
    rows: list[ParsedRow] = field(default_factory=list)
    errors: list[ImportRowError] = field(default_factory=list)


@dataclass
class ImportResult:
    success: bool = True
    total_lines: int = 0
    imported: int = 0
    skipped: int = 0
    errors: list[ImportRowError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def validate_file(filename: str, content_type: str | None, size: int) -> None:
    # Metadata checks run before the upload body is parsed.
    max_size = get_settings().import_max_file_size
    if size > max_size:
        raise InvalidImportFile(
            f"file too large: maximum size is {max_size / (1024 * 1024):.0f}MB, got {size / (1024 * 1024):.2f}MB"
        )
    extension = os.path.splitext(filename or "")[1].lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise InvalidImportFile("invalid file type: only .csv and .tsv files are allowed")
    normalized = (content_type or "").lower()
    if not any(normalized.startswith(allowed) for allowed in ALLOWED_CONTENT_TYPES):
        raise InvalidImportFile(f"invalid content type: {content_type}")


def parse_redirect_type(value: str) -> str | None:
    try:
        return RedirectType[value.upper()].value
    except KeyError:
        return None


def parse_redirect_status(value: str) -> int | None:
    status = _STATUS_ALIASES.get(value.upper())
    return int(status) if status is not None else None


def _records(text: str):
    # Blank lines are not records and do not advance the line counter.
    reader = csv.reader(io.StringIO(text, newline=""), delimiter="\t", strict=False)
    for record in reader:
        if record:
            yield record


def parse_file(data: bytes) -> ParseResult:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise InvalidImportFile("file is not valid UTF-8") from exc

    records = _records(text)
    header = next(records, None)
    if header is None:
        raise InvalidImportHeader("failed to read header: file is empty")
    if len(header) != len(IMPORT_HEADER):
        raise InvalidImportHeader(
            f"invalid header: expected {len(IMPORT_HEADER)} columns (type, source, target, status), got {len(header)}"
        )
    for index, expected in enumerate(IMPORT_HEADER):
        if header[index].strip().lower() != expected:
            raise InvalidImportHeader(
                f"invalid header: column {index + 1} should be '{expected}', got '{header[index]}'"
            )

    result = ParseResult()
    first_seen: dict[str, int] = {}
    line = 1
    for record in records:
        line += 1
        if len(record) != len(IMPORT_HEADER):
            result.errors.append(
                ImportRowError(line, ImportErrorReason.INVALID_FORMAT, f"expected 4 columns, got {len(record)}")
            )
            continue

        raw_type = record[0].strip()
        redirect_type = parse_redirect_type(raw_type)
        if redirect_type is None:
            result.errors.append(
                ImportRowError(
                    line,
                    ImportErrorReason.INVALID_TYPE,
                    f"invalid redirect type '{raw_type}': must be BASIC, BASIC_HOST, REGEX, or REGEX_HOST",
                )
            )
            continue

        source = record[1].strip()
        target = record[2].strip()
        if not source:
            result.errors.append(
                ImportRowError(line, ImportErrorReason.EMPTY_SOURCE, "source cannot be empty", target=target)
            )
            continue
        if not target:
            result.errors.append(
                ImportRowError(line, ImportErrorReason.EMPTY_TARGET, "target cannot be empty", source=source)
            )
            continue

        raw_status = record[3].strip()
        status = parse_redirect_status(raw_status)
        if status is None:
            result.errors.append(
                ImportRowError(
                    line,
                    ImportErrorReason.INVALID_STATUS,
                    f"invalid redirect status '{raw_status}': must be MOVED_PERMANENT (301), FOUND (302), "
                    "TEMPORARY_REDIRECT (307), or PERMANENT_REDIRECT (308)",
                    source=source,
                    target=target,
                )
            )
            continue

        if source in first_seen:
            result.errors.append(
                ImportRowError(
                    line,
                    ImportErrorReason.DUPLICATE_SOURCE_IN_FILE,
                    f"duplicate source in file, first occurrence at line {first_seen[source]}",
                    source=source,
                    target=target,
                )
            )
            continue
        first_seen[source] = line
        result.rows.append(
            ParsedRow(line, RedirectPayload(type=redirect_type, source=source, target=target, status=status))
        )
    return result


def redirects_equal(a: RedirectPayload | None, b: RedirectPayload | None) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return a.type == b.type and a.source == b.source and a.target == b.target and int(a.status) == int(b.status)


def _row_error(row: ParsedRow, reason: ImportErrorReason, message: str) -> ImportRowError:
    return ImportRowError(row.line, reason, message, source=row.payload.source, target=row.payload.target)


async def _create_new(session: AsyncSession, namespace_code: str, project_code: str, row: ParsedRow) -> None:
    stub = Redirect(namespace_code=namespace_code, project_code=project_code, is_published=False)
    session.add(stub)
    await session.flush()
    draft = RedirectDraft(
        namespace_code=namespace_code,
        project_code=project_code,
        change_type=DraftChangeType.CREATE.value,
        old_redirect_id=stub.id,
    )
    draft.new_payload = row.payload
    session.add(draft)
    await session.flush()


async def _reconcile_existing(session: AsyncSession, namespace_code: str, project_code: str, row: ParsedRow) -> bool:
    # Returns True when something was written, False when the row was a no-op.
    proposed = row.payload
    redirect = await redirects_repo.find_by_source(session, namespace_code, project_code, proposed.source)
    if redirect is not None:
        draft = await redirects_repo.get_draft_for_redirect(session, redirect.id)
        if draft is not None:
            if redirects_equal(draft.new_payload, proposed):
                return False
            draft.new_payload = proposed
            await session.flush()
            return True
        if redirects_equal(redirect.payload, proposed):
            return False
        draft = RedirectDraft(
            namespace_code=namespace_code,
            project_code=project_code,
            change_type=DraftChangeType.UPDATE.value,
            old_redirect_id=redirect.id,
        )
        draft.new_payload = proposed
        session.add(draft)
        await session.flush()
        return True

    draft = await redirects_repo.find_draft_by_new_source(session, namespace_code, project_code, proposed.source)
    if draft is not None:
        if redirects_equal(draft.new_payload, proposed):
            return False
        draft.new_payload = proposed
        await session.flush()
        return True

    logger.warning(
        "import source reported in use but not found namespace=%s project=%s line=%s source=%s",
        namespace_code,
        project_code,
        row.line,
        proposed.source,
    )
    await _create_new(session, namespace_code, project_code, row)
    return True


async def _import_row(
    session: AsyncSession, namespace_code: str, project_code: str, row: ParsedRow, unavailable: set[str]
) -> tuple[bool, ImportRowError | None]:
    issues = validate_redirect(row.payload)
    if issues:
        detail = ", ".join(f"{issue.field}: {issue.rule}" for issue in issues)
        return False, _row_error(row, ImportErrorReason.INVALID_REDIRECT, f"invalid data: {detail}")
    try:
        # A savepoint keeps one failing row from poisoning the surrounding transaction.
        async with session.begin_nested():
            if row.payload.source in unavailable:
                imported = await _reconcile_existing(session, namespace_code, project_code, row)
            else:
                await _create_new(session, namespace_code, project_code, row)
                imported = True
    except SQLAlchemyError as exc:
        logger.warning("import row failed line=%s error=%s", row.line, exc)
        return False, _row_error(row, ImportErrorReason.DATABASE_ERROR, f"failed to import redirect: {exc}")
    return imported, None


async def import_rows(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    rows: list[ParsedRow],
    *,
    overwrite: bool = False,
) -> ImportResult:
    result = ImportResult(success=True, total_lines=len(rows))
    if not rows:
        return result
    await ensure_project(session, namespace_code, project_code)

    unavailable: set[str] = set()
    for row in rows:
        if not await redirects_repo.is_source_available(session, namespace_code, project_code, row.payload.source):
            unavailable.add(row.payload.source)

    to_import: list[ParsedRow] = []
    for row in rows:
        if row.payload.source in unavailable and not overwrite:
            result.errors.append(
                _row_error(row, ImportErrorReason.SOURCE_ALREADY_EXISTS, "source already exists and overwrite is disabled")
            )
            continue
        to_import.append(row)

    if to_import:
        async with transaction(session):
            for row in to_import:
                imported, error = await _import_row(session, namespace_code, project_code, row, unavailable)
                if error is not None:
                    result.errors.append(error)
                elif imported:
                    result.imported += 1
                else:
                    result.skipped += 1

    result.success = result.error_count == 0
    return result


async def import_file(
    session: AsyncSession,
    namespace_code: str,
    project_code: str,
    data: bytes,
    *,
    overwrite: bool = False,
) -> ImportResult:
    # Parse errors and reconciliation errors are reported together, ordered by line.
    parsed = parse_file(data)
    logger.info(
        "import started namespace=%s project=%s rows=%s parse_errors=%s overwrite=%s",
        namespace_code,
        project_code,
        len(parsed.rows),
        len(parsed.errors),
        overwrite,
    )
    result = await import_rows(session, namespace_code, project_code, parsed.rows, overwrite=overwrite)
    result.total_lines = len(parsed.rows) + len(parsed.errors)
    result.errors = sorted(parsed.errors + result.errors, key=lambda error: error.line)
    result.success = result.error_count == 0
    logger.info(
        "import completed namespace=%s project=%s imported=%s skipped=%s errors=%s",
        namespace_code,
        project_code,
        result.imported,
        result.skipped,
        result.error_count,
    )
    return result
