from __future__ import annotations

import argparse
import asyncio
import getpass
import sys

from flecto_manager.core.errors import FlectoError, RoleAlreadyExists
from flecto_manager.core.logging import configure_logging
from flecto_manager.domain.types import WILDCARD, AdminRule, ResourceRule, SubjectPermissions
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.services import roles as role_service
from flecto_manager.services import users as user_service


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create a flecto-manager user")
    parser.add_argument("--username", required=True, help="Login name (code or email)")
    parser.add_argument("--firstname", required=True)
    parser.add_argument("--lastname", required=True)
    parser.add_argument("--password", default=None, help="Prompted for when omitted")
    parser.add_argument("--superuser", action="store_true", help="Grant full admin and resource access")
    parser.add_argument("--role", default="superuser", help="Role granted with --superuser")
    return parser


def superuser_permissions() -> SubjectPermissions:
    return SubjectPermissions(
        resources=[ResourceRule(WILDCARD, WILDCARD, WILDCARD, WILDCARD)],
        admin=[AdminRule(WILDCARD, WILDCARD)],
    )


async def _create_user(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    async with SessionLocal() as session:
        user = await user_service.create_user(
            session,
            username=args.username,
            firstname=args.firstname,
            lastname=args.lastname,
            password=password,
        )
        if args.superuser:
            # The role is created on first use and reused afterwards.
            try:
                role = await role_service.create_role(session, code=args.role)
            except RoleAlreadyExists:
                role = await role_service.get_role_by_code(session, args.role)
            await role_service.update_role_permissions(session, role.id, superuser_permissions())
            await role_service.add_user_to_role(session, user_id=user.id, role_id=role.id)

    print("User created:")
    print(f"  user_id: {user.id}")
    print(f"  username: {user.username}")
    if args.superuser:
        print(f"  role: {args.role}")
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_user(args))
    except FlectoError as exc:
        print(f"create_user failed: {exc.code}: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
