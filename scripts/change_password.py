from __future__ import annotations

import argparse
import asyncio
import getpass
import sys

from flecto_manager.core.errors import FlectoError
from flecto_manager.core.logging import configure_logging
from flecto_manager.persistence.db import SessionLocal
from flecto_manager.services import users as user_service


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Set the password of an existing user")
    parser.add_argument("--username", required=True)
    parser.add_argument("--password", default=None, help="Prompted for when omitted")
    return parser


async def _change_password(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("New password: ")
    if not password:
        print("change_password failed: empty password", file=sys.stderr)
        return 1
    async with SessionLocal() as session:
        user = await user_service.get_user_by_username(session, args.username)
        await user_service.set_password(session, user.id, password)
    print(f"Password updated for {args.username}")
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_change_password(args))
    except FlectoError as exc:
        print(f"change_password failed: {exc.code}: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
