from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import (
    Principal,
    get_current_principal,
    get_db,
    list_params,
    require_admin,
    require_resource,
)
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.domain.models import Project
from flecto_manager.domain.types import Action, AdminSection, ResourceType
from flecto_manager.services import dashboard as dashboard_service
from flecto_manager.services import projects as project_service
from flecto_manager.services import publish as publish_service
from flecto_manager.services.authz.permissions import can_admin, rules_for_action


router = APIRouter(tags=["projects"], responses=DEFAULT_ERROR_RESPONSES)

_PROJECT_PATH = "/namespaces/{namespace_code}/projects/{project_code}"


class ProjectCreateRequest(BaseModel):
    project_code: str
    name: str


class ProjectUpdateRequest(BaseModel):
    name: str


class ProjectResponse(BaseModel):
    id: int
    namespace_code: str
    project_code: str
    name: str
    version: int
    published_at: datetime | None
    created_at: datetime
    updated_at: datetime


class CountBreakdownResponse(BaseModel):
    total: int
    by_key: dict[str, int]


class DashboardResponse(BaseModel):
    version: int
    published_at: datetime | None
    redirects: CountBreakdownResponse
    redirect_drafts: CountBreakdownResponse
    pages: CountBreakdownResponse
    page_drafts: CountBreakdownResponse
    agents_online: int
    agents_error: int


class PublishResponse(BaseModel):
    version: int
    published_at: datetime
    redirects_upserted: int
    redirects_deleted: int
    pages_upserted: int
    pages_deleted: int


def _to_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        namespace_code=project.namespace_code,
        project_code=project.project_code,
        name=project.name,
        version=project.version,
        published_at=project.published_at,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


async def _search(request: Request, principal: Principal, db: AsyncSession, namespace_code: str | None, params) -> dict:
    search, sorts, pagination = params
    rules = None
    if not can_admin(principal.permissions, AdminSection.PROJECTS, Action.READ):
        rules = rules_for_action(principal.permissions, Action.READ)
    result = await project_service.search_projects(
        db, rules=rules, namespace_code=namespace_code, search=search, sorts=sorts, pagination=pagination
    )
    return success_response(request=request, data=page_envelope(result, [_to_response(p) for p in result.items]))


@router.get("/projects", response_model=SuccessEnvelope[PageEnvelope[ProjectResponse]])
async def list_all_projects(
    request: Request,
    params=Depends(list_params),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await _search(request, principal, db, None, params)


@router.get("/namespaces/{namespace_code}/projects", response_model=SuccessEnvelope[PageEnvelope[ProjectResponse]])
async def list_projects(
    namespace_code: str,
    request: Request,
    params=Depends(list_params),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await _search(request, principal, db, namespace_code, params)


@router.post("/namespaces/{namespace_code}/projects", status_code=201, response_model=SuccessEnvelope[ProjectResponse])
async def create_project(
    namespace_code: str,
    request: Request,
    payload: ProjectCreateRequest,
    _principal: Principal = Depends(require_admin(AdminSection.PROJECTS, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    project = await project_service.create_project(
        db, namespace_code=namespace_code, project_code=payload.project_code, name=payload.name
    )
    return success_response(request=request, data=_to_response(project))


@router.get(_PROJECT_PATH, response_model=SuccessEnvelope[ProjectResponse])
async def get_project(
    namespace_code: str,
    project_code: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.ANY, Action.READ)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    project = await project_service.get_project(db, namespace_code, project_code)
    return success_response(request=request, data=_to_response(project))


@router.put(_PROJECT_PATH, response_model=SuccessEnvelope[ProjectResponse])
async def update_project(
    namespace_code: str,
    project_code: str,
    request: Request,
    payload: ProjectUpdateRequest,
    _principal: Principal = Depends(require_admin(AdminSection.PROJECTS, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    project = await project_service.update_project(db, namespace_code, project_code, name=payload.name)
    return success_response(request=request, data=_to_response(project))


@router.delete(_PROJECT_PATH, response_model=SuccessEnvelope[dict[str, str]])
async def delete_project(
    namespace_code: str,
    project_code: str,
    request: Request,
    _principal: Principal = Depends(require_admin(AdminSection.PROJECTS, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await project_service.delete_project(db, namespace_code, project_code)
    return success_response(request=request, data={"namespace_code": namespace_code, "project_code": project_code})


@router.get(f"{_PROJECT_PATH}/dashboard", response_model=SuccessEnvelope[DashboardResponse])
async def get_dashboard(
    namespace_code: str,
    project_code: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.ANY, Action.READ)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    dashboard = await dashboard_service.get_project_dashboard(db, namespace_code, project_code)
    payload = DashboardResponse(
        version=dashboard.version,
        published_at=dashboard.published_at,
        redirects=CountBreakdownResponse(**vars(dashboard.redirects)),
        redirect_drafts=CountBreakdownResponse(**vars(dashboard.redirect_drafts)),
        pages=CountBreakdownResponse(**vars(dashboard.pages)),
        page_drafts=CountBreakdownResponse(**vars(dashboard.page_drafts)),
        agents_online=dashboard.agents_online,
        agents_error=dashboard.agents_error,
    )
    return success_response(request=request, data=payload)


@router.post(f"{_PROJECT_PATH}/publish", response_model=SuccessEnvelope[PublishResponse])
async def publish_project(
    namespace_code: str,
    project_code: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.ANY, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    summary = await publish_service.publish(db, namespace_code, project_code)
    payload = PublishResponse(
        version=summary.version,
        published_at=summary.published_at,
        redirects_upserted=summary.redirects_upserted,
        redirects_deleted=summary.redirects_deleted,
        pages_upserted=summary.pages_upserted,
        pages_deleted=summary.pages_deleted,
    )
    return success_response(request=request, data=payload)


@router.post(f"{_PROJECT_PATH}/rollback", response_model=SuccessEnvelope[dict[str, str]])
async def rollback_project(
    namespace_code: str,
    project_code: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.ANY, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await publish_service.rollback(db, namespace_code, project_code)
    return success_response(request=request, data={"namespace_code": namespace_code, "project_code": project_code})
