from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.domain.models import AdminPermission, ResourcePermission
from flecto_manager.domain.types import WILDCARD, AdminRule, ResourceRule, SubjectPermissions


async def list_resource_permissions(session: AsyncSession, role_ids: list[int]) -> list[ResourcePermission]:
    if not role_ids:
        return []
    result = await session.execute(
        select(ResourcePermission)
        .where(ResourcePermission.role_id.in_(role_ids))
        .order_by(ResourcePermission.role_id, ResourcePermission.id)
    )
    return list(result.scalars().all())


async def list_admin_permissions(session: AsyncSession, role_ids: list[int]) -> list[AdminPermission]:
    if not role_ids:
        return []
    result = await session.execute(
        select(AdminPermission)
        .where(AdminPermission.role_id.in_(role_ids))
        .order_by(AdminPermission.role_id, AdminPermission.id)
    )
    return list(result.scalars().all())


async def list_by_namespace_and_project(
    session: AsyncSession, namespace_code: str, project_code: str
) -> list[ResourcePermission]:
    # Rules that can apply to a project: exact, wildcard, or namespace-wide (empty project).
    result = await session.execute(
        select(ResourcePermission).where(
            ResourcePermission.namespace.in_([namespace_code, WILDCARD]),
            ResourcePermission.project.in_([project_code, WILDCARD, ""]),
        )
    )
    return list(result.scalars().all())


async def load_subject_permissions(session: AsyncSession, role_ids: list[int]) -> SubjectPermissions:
    resources = await list_resource_permissions(session, role_ids)
    admin = await list_admin_permissions(session, role_ids)
    permissions = SubjectPermissions(
        resources=[ResourceRule.of(p.namespace, p.project, p.resource, p.action) for p in resources],
        admin=[AdminRule.of(p.section, p.action) for p in admin],
    )
    return permissions.deduplicated()


def build_rows(role_id: int, permissions: SubjectPermissions) -> list[ResourcePermission | AdminPermission]:
    rows: list[ResourcePermission | AdminPermission] = []
    unique = permissions.deduplicated()
    for rule in unique.resources:
        rows.append(
            ResourcePermission(
                role_id=role_id,
                namespace=rule.namespace,
                project=rule.project,
                resource=rule.resource,
                action=rule.action,
            )
        )
    for rule in unique.admin:
        rows.append(AdminPermission(role_id=role_id, section=rule.section, action=rule.action))
    return rows


async def delete_for_role(session: AsyncSession, role_id: int) -> None:
    await session.execute(delete(ResourcePermission).where(ResourcePermission.role_id == role_id))
    await session.execute(delete(AdminPermission).where(AdminPermission.role_id == role_id))
