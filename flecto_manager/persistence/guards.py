from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_


@dataclass(frozen=True)
class ProjectScopeError(RuntimeError):
    # Surface project-owned queries built without a full (namespace, project) scope.
    message: str


def require_project_scope(namespace_code: str | None, project_code: str | None) -> None:
    if not namespace_code or not project_code:
        raise ProjectScopeError("Project predicate requires both namespace_code and project_code")


def project_predicate(model, namespace_code: str, project_code: str) -> object:
    # Build project predicates through a single helper so every owned-row query is scoped.
    require_project_scope(namespace_code, project_code)
    return and_(model.namespace_code == namespace_code, model.project_code == project_code)
