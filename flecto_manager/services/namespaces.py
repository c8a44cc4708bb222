from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import NamespaceAlreadyExists, NamespaceNotFound
from flecto_manager.domain.models import Namespace
from flecto_manager.domain.types import ResourceRule
from flecto_manager.persistence.db import transaction
from flecto_manager.persistence.query import (
    NAMESPACE_SORT_COLUMNS,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    paginate,
)
from flecto_manager.persistence.repos import namespaces as namespaces_repo
from flecto_manager.services.authz.permissions import filter_query_by_namespace
from flecto_manager.services.validation import ensure_valid, validate_namespace


logger = logging.getLogger(__name__)


async def get_namespace(session: AsyncSession, namespace_code: str) -> Namespace:
    namespace = await namespaces_repo.get_namespace(session, namespace_code)
    if namespace is None:
        raise NamespaceNotFound()
    return namespace


async def create_namespace(session: AsyncSession, *, namespace_code: str, name: str) -> Namespace:
    ensure_valid(validate_namespace(namespace_code=namespace_code, name=name))
    if await namespaces_repo.get_namespace(session, namespace_code) is not None:
        raise NamespaceAlreadyExists()
    namespace = Namespace(namespace_code=namespace_code, name=name)
    async with transaction(session):
        session.add(namespace)
    logger.info("namespace created namespace=%s", namespace_code)
    return namespace


async def update_namespace(session: AsyncSession, namespace_code: str, *, name: str) -> Namespace:
    namespace = await get_namespace(session, namespace_code)
    ensure_valid(validate_namespace(namespace_code=namespace_code, name=name))
    async with transaction(session):
        namespace.name = name
    return namespace


async def delete_namespace(session: AsyncSession, namespace_code: str) -> None:
    namespace = await get_namespace(session, namespace_code)
    # Projects and everything they own go with the namespace.
    async with transaction(session):
        await session.delete(namespace)
    logger.info("namespace deleted namespace=%s", namespace_code)


async def search_namespaces(
    session: AsyncSession,
    *,
    rules: list[ResourceRule] | None = None,
    search: str | None = None,
    sorts: Sequence[SortInput] = (),
    pagination: PaginationInput | None = None,
) -> PageResult:
    stmt = namespaces_repo.search_statement(search=search)
    if rules is not None:
        stmt = filter_query_by_namespace(stmt, rules, Namespace.namespace_code)
    stmt = apply_sort(stmt, NAMESPACE_SORT_COLUMNS, sorts)
    return await paginate(session, stmt.order_by(Namespace.id), pagination)
