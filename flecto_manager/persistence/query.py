from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy import Select, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.config import get_settings


SORT_ASC = "ASC"
SORT_DESC = "DESC"

# External sort keys accepted by list endpoints, mapped to physical columns.
REDIRECT_SORT_COLUMNS = {
    "source": "source",
    "target": "target",
    "type": "type",
    "status": "status",
    "updatedAt": "updated_at",
}
PAGE_SORT_COLUMNS = {
    "path": "path",
    "contentType": "content_type",
    "type": "type",
    "updatedAt": "updated_at",
}
ROLE_SORT_COLUMNS = {
    "id": "id",
    "code": "code",
    "type": "type",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
TOKEN_SORT_COLUMNS = {
    "id": "id",
    "name": "name",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "expiresAt": "expires_at",
}
USER_SORT_COLUMNS = {
    "id": "id",
    "username": "username",
    "lastname": "lastname",
    "firstname": "firstname",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
AGENT_SORT_COLUMNS = {
    "name": "name",
    "status": "status",
    "type": "type",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "lastHitAt": "last_hit_at",
}
PROJECT_SORT_COLUMNS = {
    "id": "id",
    "namespaceCode": "namespace_code",
    "code": "project_code",
    "name": "name",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
NAMESPACE_SORT_COLUMNS = {
    "id": "id",
    "namespaceCode": "namespace_code",
    "name": "name",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


@dataclass(frozen=True)
class SortInput:
    column: str
    direction: str = SORT_ASC


def parse_sort_param(raw: str | None) -> list[SortInput]:
    # Parse "field,-other" query strings; a leading "-" means descending.
    if not raw:
        return []
    sorts: list[SortInput] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if part.startswith("-"):
            sorts.append(SortInput(column=part[1:], direction=SORT_DESC))
        else:
            sorts.append(SortInput(column=part, direction=SORT_ASC))
    return sorts


def apply_sort(
    stmt: Select,
    allowed: dict[str, str],
    sorts: Sequence[SortInput],
    table_prefix: str | None = None,
) -> Select:
    # Unknown keys are skipped; any direction other than DESC sorts ascending.
    for sort in sorts:
        column = allowed.get(sort.column)
        if column is None:
            continue
        if table_prefix:
            column = f"{table_prefix}.{column}"
        expr = literal_column(column)
        if (sort.direction or "").upper() == SORT_DESC:
            stmt = stmt.order_by(expr.desc())
        else:
            stmt = stmt.order_by(expr.asc())
    return stmt


@dataclass(frozen=True)
class PaginationInput:
    limit: int | None = None
    offset: int | None = None

    def resolved_limit(self, default: int | None = None) -> int:
        if self.limit is None or self.limit <= 0:
            return default if default is not None else get_settings().default_page_limit
        return self.limit

    def resolved_offset(self) -> int:
        if self.offset is None or self.offset < 0:
            return 0
        return self.offset


@dataclass(frozen=True)
class PageResult:
    items: list[Any]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


async def paginate(
    session: AsyncSession,
    stmt: Select,
    pagination: PaginationInput | None = None,
    *,
    default_limit: int | None = None,
    scalars: bool = True,
) -> PageResult:
    # Count over the filtered statement before applying limit/offset.
    pagination = pagination or PaginationInput()
    limit = pagination.resolved_limit(default_limit)
    offset = pagination.resolved_offset()
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = int(await session.scalar(count_stmt) or 0)
    result = await session.execute(stmt.limit(limit).offset(offset))
    items = list(result.scalars().all()) if scalars else list(result.all())
    return PageResult(items=items, total=total, limit=limit, offset=offset)
