from __future__ import annotations

import pytest
from sqlalchemy import func, select

from flecto_manager.core.errors import (
    RoleAlreadyExists,
    RoleNotFound,
    UserAlreadyExists,
    UserAlreadyInRole,
    UserNotFound,
    UserNotInRole,
    ValidationFailedError,
)
from flecto_manager.domain.models import ResourcePermission, Role
from flecto_manager.domain.types import AdminRule, ResourceRule, RoleType, SubjectPermissions
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.services import roles as role_service
from flecto_manager.services import users as user_service
from flecto_manager.services.auth.passwords import verify_password


async def _user(session, username: str = "alice"):
    return await user_service.create_user(
        session, username=username, firstname="Alice", lastname="Doe", password="s3cret-pass"
    )


@pytest.mark.asyncio
async def test_create_user_adds_implicit_role() -> None:
    async with SessionLocal() as session:
        user = await _user(session, "alice@example.com")
        assert verify_password("s3cret-pass", user.password)

        roles = await role_service.get_user_roles(session, user.id)
        assert [(role.code, role.type) for role in roles] == [("alice@example.com", RoleType.USER.value)]

        with pytest.raises(UserAlreadyExists):
            await _user(session, "alice@example.com")
        with pytest.raises(ValidationFailedError):
            await _user(session, "not a username")


@pytest.mark.asyncio
async def test_permissions_are_the_union_of_user_and_named_roles() -> None:
    async with SessionLocal() as session:
        user = await _user(session)
        own = await role_service.get_role_by_code(session, "alice", RoleType.USER.value)
        await role_service.update_role_permissions(
            session, own.id, SubjectPermissions(resources=[ResourceRule("acme", "web", "redirect", "read")])
        )
        editors = await role_service.create_role(session, code="editors")
        await role_service.update_role_permissions(
            session,
            editors.id,
            SubjectPermissions(
                resources=[
                    ResourceRule("acme", "web", "redirect", "read"),
                    ResourceRule("acme", "web", "page", "write"),
                ],
                admin=[AdminRule("users", "read")],
            ),
        )
        await role_service.add_user_to_role(session, user_id=user.id, role_id=editors.id)

        permissions = await role_service.get_permissions_by_username(session, "alice")
        assert sorted(rule.key for rule in permissions.resources) == [
            "acme|web|page|write",
            "acme|web|redirect|read",
        ]
        assert [rule.key for rule in permissions.admin] == ["users|read"]

        with pytest.raises(UserNotFound):
            await role_service.get_permissions_by_username(session, "nobody")


@pytest.mark.asyncio
async def test_update_role_permissions_replaces_rules() -> None:
    async with SessionLocal() as session:
        role = await role_service.create_role(session, code="ops")
        await role_service.update_role_permissions(
            session, role.id, SubjectPermissions(resources=[ResourceRule("*", "*", "*", "*")] * 2)
        )
        assert await session.scalar(select(func.count()).select_from(ResourcePermission)) == 1
        await role_service.update_role_permissions(session, role.id, SubjectPermissions())
        assert (await role_service.get_permissions_by_role_id(session, role.id)).resources == []


@pytest.mark.asyncio
async def test_role_membership_rules() -> None:
    async with SessionLocal() as session:
        user = await _user(session)
        role = await role_service.create_role(session, code="editors")
        with pytest.raises(RoleAlreadyExists):
            await role_service.create_role(session, code="editors")

        await role_service.add_user_to_role(session, user_id=user.id, role_id=role.id)
        with pytest.raises(UserAlreadyInRole):
            await role_service.add_user_to_role(session, user_id=user.id, role_id=role.id)
        members = await role_service.get_role_users(session, role.id)
        assert [member.username for member in members.items] == ["alice"]
        candidates = await role_service.get_users_not_in_role(session, role.id)
        assert candidates.total == 0

        await role_service.remove_user_from_role(session, user_id=user.id, role_id=role.id)
        with pytest.raises(UserNotInRole):
            await role_service.remove_user_from_role(session, user_id=user.id, role_id=role.id)
        assert (await role_service.get_users_not_in_role(session, role.id)).total == 1


@pytest.mark.asyncio
async def test_update_user_roles_keeps_implicit_role() -> None:
    async with SessionLocal() as session:
        user = await _user(session)
        await role_service.create_role(session, code="editors")
        await role_service.create_role(session, code="viewers")

        assigned = await role_service.update_user_roles(session, user.id, ["editors", "viewers", "editors"])
        assert sorted(role.code for role in assigned) == ["editors", "viewers"]
        await role_service.update_user_roles(session, user.id, ["viewers"])
        roles = await role_service.get_user_roles(session, user.id)
        assert sorted((role.code, role.type) for role in roles) == [("alice", "user"), ("viewers", "role")]

        with pytest.raises(RoleNotFound):
            await role_service.update_user_roles(session, user.id, ["missing"])


@pytest.mark.asyncio
async def test_delete_user_removes_implicit_role() -> None:
    async with SessionLocal() as session:
        user = await _user(session)
        await user_service.delete_user(session, user.id)
        with pytest.raises(UserNotFound):
            await user_service.get_user(session, user.id)
        remaining = await session.scalar(select(func.count()).select_from(Role).where(Role.code == "alice"))
        assert remaining == 0


@pytest.mark.asyncio
async def test_search_roles_defaults_to_named_roles() -> None:
    async with SessionLocal() as session:
        await _user(session)
        await role_service.create_role(session, code="editors")
        named = await role_service.search_roles(session)
        assert [role.code for role in named.items] == ["editors"]
        implicit = await role_service.search_roles(session, role_type=RoleType.USER.value)
        assert [role.code for role in implicit.items] == ["alice"]


@pytest.mark.asyncio
async def test_user_status_and_password() -> None:
    async with SessionLocal() as session:
        user = await _user(session)
        updated = await user_service.update_status(session, user.id, False)
        assert updated.active is False
        await user_service.set_password(session, user.id, "another-pass")
        assert verify_password("another-pass", (await user_service.get_user(session, user.id)).password)
        inactive = await user_service.search_users(session, active=False)
        assert [item.username for item in inactive.items] == ["alice"]
