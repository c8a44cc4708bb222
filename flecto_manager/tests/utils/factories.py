from __future__ import annotations

from uuid import uuid4

from sqlalchemy import select

from flecto_manager.domain.models import Namespace, Project
from flecto_manager.domain.types import (
    WILDCARD,
    AdminRule,
    PagePayload,
    RedirectPayload,
    ResourceRule,
    SubjectPermissions,
)
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.services import roles as role_service
from flecto_manager.services import users as user_service
from flecto_manager.services.auth import api_tokens
from flecto_manager.services.auth.jwt_tokens import issue_token_pair


NAMESPACE = "acme"
PROJECT = "web"

FULL_ACCESS = SubjectPermissions(
    resources=[ResourceRule(WILDCARD, WILDCARD, WILDCARD, WILDCARD)],
    admin=[AdminRule(WILDCARD, WILDCARD)],
)


def redirect_payload(source: str = "/old", target: str = "/new", status: int = 301, type: str = "basic") -> RedirectPayload:
    return RedirectPayload(type=type, source=source, target=target, status=status)


def page_payload(
    path: str = "/robots.txt",
    content: str = "User-agent: *",
    content_type: str = "TEXT_PLAIN",
    type: str = "basic",
) -> PagePayload:
    return PagePayload(type=type, path=path, content=content, content_type=content_type)


async def create_project(namespace_code: str = NAMESPACE, project_code: str = PROJECT) -> Project:
    # Insert directly so draft tests do not depend on the admin services.
    async with SessionLocal() as session:
        existing = await session.scalar(select(Namespace).where(Namespace.namespace_code == namespace_code))
        if existing is None:
            session.add(Namespace(namespace_code=namespace_code, name=namespace_code.title()))
            await session.flush()
        project = Project(namespace_code=namespace_code, project_code=project_code, name=project_code.title())
        session.add(project)
        await session.commit()
        return project


async def create_user_with_permissions(
    permissions: SubjectPermissions,
    *,
    username: str | None = None,
    password: str = "s3cret-pass",
) -> tuple[int, str, dict[str, str]]:
    # Provision a user whose implicit role carries the given permissions, plus a bearer header.
    username = username or f"user-{uuid4().hex[:8]}"
    async with SessionLocal() as session:
        user = await user_service.create_user(
            session, username=username, firstname="Test", lastname="User", password=password
        )
        role = await role_service.get_role_by_code(session, username, "user")
        await role_service.update_role_permissions(session, role.id, permissions)
        pair = issue_token_pair(user)
    return user.id, username, {"Authorization": f"Bearer {pair.access_token}"}


async def create_token_headers(permissions: SubjectPermissions, *, name: str | None = None) -> dict[str, str]:
    async with SessionLocal() as session:
        _token, plain = await api_tokens.create_token(session, name or f"token-{uuid4().hex[:8]}", None, permissions)
    return {"Authorization": f"Bearer {plain}"}


def project_rules(resource: str = WILDCARD, action: str = WILDCARD) -> SubjectPermissions:
    return SubjectPermissions(resources=[ResourceRule(NAMESPACE, PROJECT, resource, action)])
