"""Permission evaluation and list-query rewriting.

Rules are 4-tuples ``(namespace, project, resource, action)`` where any
dimension may be ``*``. On the request side, the ``any`` resource asks
whether the subject holds the action on at least one resource in scope.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Select, and_, false, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import FlectoError
from flecto_manager.domain.types import WILDCARD, ResourceRule, ResourceType, SubjectPermissions
from flecto_manager.services import roles as role_service


logger = logging.getLogger(__name__)


def _value(item: Any) -> str:
    return getattr(item, "value", item)


def _matches(rule_value: str, requested: str) -> bool:
    return rule_value == WILDCARD or rule_value == requested


def rule_allows(rule: ResourceRule, namespace: str, project: str, resource: str, action: str) -> bool:
    resource_ok = (
        rule.resource == WILDCARD
        or rule.resource == resource
        or resource == ResourceType.ANY.value
    )
    return (
        _matches(rule.namespace, namespace)
        and _matches(rule.project, project)
        and resource_ok
        and _matches(rule.action, action)
    )


def can_resource(
    permissions: SubjectPermissions | None,
    namespace: str,
    project: str,
    resource: Any,
    action: Any,
) -> bool:
    if permissions is None:
        return False
    resource, action = _value(resource), _value(action)
    return any(rule_allows(rule, namespace, project, resource, action) for rule in permissions.resources)


def can_admin(permissions: SubjectPermissions | None, section: Any, action: Any) -> bool:
    if permissions is None:
        return False
    section, action = _value(section), _value(action)
    return any(
        _matches(rule.section, section) and _matches(rule.action, action) for rule in permissions.admin
    )


def rules_for_action(permissions: SubjectPermissions | list[ResourceRule], action: Any) -> list[ResourceRule]:
    rules = permissions.resources if isinstance(permissions, SubjectPermissions) else permissions
    action = _value(action)
    return [rule for rule in rules if _matches(rule.action, action)]


def filter_query_by_namespace(stmt: Select, rules: list[ResourceRule], namespace_column) -> Select:
    if not rules:
        return stmt.where(false())
    if any(rule.namespace == WILDCARD for rule in rules):
        return stmt
    namespaces = sorted({rule.namespace for rule in rules})
    return stmt.where(namespace_column.in_(namespaces))


def filter_query_by_project(
    stmt: Select,
    rules: list[ResourceRule],
    namespace: str,
    namespace_column,
    project_column,
) -> Select:
    if not rules:
        return stmt.where(false())
    projects: set[str] = set()
    for rule in rules:
        if rule.namespace != WILDCARD and rule.namespace != namespace:
            continue
        if rule.project == WILDCARD:
            return stmt.where(namespace_column == namespace)
        projects.add(rule.project)
    if not projects:
        return stmt.where(false())
    return stmt.where(namespace_column == namespace, project_column.in_(sorted(projects)))


def filter_query_by_namespace_project(
    stmt: Select,
    rules: list[ResourceRule],
    namespace_column,
    project_column,
) -> Select:
    if not rules:
        return stmt.where(false())
    if any(rule.namespace == WILDCARD for rule in rules):
        return stmt
    full_access = {rule.namespace for rule in rules if rule.project == WILDCARD}
    specific: dict[str, set[str]] = {}
    for rule in rules:
        if rule.project == WILDCARD or rule.namespace in full_access:
            continue
        specific.setdefault(rule.namespace, set()).add(rule.project)

    clauses = []
    if full_access:
        clauses.append(namespace_column.in_(sorted(full_access)))
    for namespace in sorted(specific):
        clauses.append(and_(namespace_column == namespace, project_column.in_(sorted(specific[namespace]))))
    return stmt.where(or_(*clauses))


async def can_resource_for_username(
    session: AsyncSession,
    username: str,
    namespace: str,
    project: str,
    resource: Any,
    action: Any,
) -> bool:
    permissions = await role_service.get_permissions_by_username(session, username)
    return can_resource(permissions, namespace, project, resource, action)


async def can_resource_for_role_code(
    session: AsyncSession,
    role_code: str,
    namespace: str,
    project: str,
    resource: Any,
    action: Any,
) -> bool:
    permissions = await role_service.get_permissions_by_role_code(session, role_code)
    return can_resource(permissions, namespace, project, resource, action)


async def must_can_resource_for_username(
    session: AsyncSession,
    username: str,
    namespace: str,
    project: str,
    resource: Any,
    action: Any,
) -> bool:
    # Soft-deny: lookup failures count as "not allowed".
    try:
        return await can_resource_for_username(session, username, namespace, project, resource, action)
    except (FlectoError, SQLAlchemyError) as exc:
        logger.warning("permission lookup failed username=%s error=%s", username, exc)
        return False


async def must_can_resource_for_role_code(
    session: AsyncSession,
    role_code: str,
    namespace: str,
    project: str,
    resource: Any,
    action: Any,
) -> bool:
    try:
        return await can_resource_for_role_code(session, role_code, namespace, project, resource, action)
    except (FlectoError, SQLAlchemyError) as exc:
        logger.warning("permission lookup failed role=%s error=%s", role_code, exc)
        return False
