from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.errors import InvalidDraftArguments, ProjectNotFound
from flecto_manager.domain.types import DraftChangeType
from flecto_manager.persistence.repos import projects as projects_repo


def derive_change_type(old_row_id: int | None, new_payload: object | None) -> DraftChangeType:
    # Exactly one of the three draft kinds follows from which arguments are present.
    if old_row_id is None and new_payload is None:
        raise InvalidDraftArguments()
    if old_row_id is not None and new_payload is not None:
        return DraftChangeType.UPDATE
    if new_payload is not None:
        return DraftChangeType.CREATE
    return DraftChangeType.DELETE


async def ensure_project(session: AsyncSession, namespace_code: str, project_code: str) -> None:
    if await projects_repo.get_project(session, namespace_code, project_code) is None:
        raise ProjectNotFound()
