from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_db, require_resource
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.core.config import get_settings
from flecto_manager.domain.models import Agent
from flecto_manager.domain.types import Action, AgentPayload, ResourceType, page_mime_type, redirect_http_code
from flecto_manager.persistence.query import PaginationInput
from flecto_manager.services import agents as agent_service
from flecto_manager.services import projects as project_service
from flecto_manager.services.drafts import pages as page_drafts
from flecto_manager.services.drafts import redirects as redirect_drafts


# Polling surface used by edge agents; only published rows are exposed.
router = APIRouter(
    prefix="/api/namespace/{namespace_code}/project/{project_code}",
    tags=["agent-feed"],
    responses=DEFAULT_ERROR_RESPONSES,
)


class VersionResponse(BaseModel):
    version: int


class FeedRedirect(BaseModel):
    id: int
    type: str
    source: str
    target: str
    status: int


class FeedPage(BaseModel):
    id: int
    type: str
    path: str
    content: str
    content_type: str
    mime_type: str


class AgentRequest(BaseModel):
    name: str
    type: str
    status: str
    version: str = ""
    error: str = ""
    load_duration_ms: int = 0


class AgentResponse(BaseModel):
    name: str
    type: str
    status: str
    version: str
    error: str
    load_duration_ms: int
    last_hit_at: datetime


def agent_to_response(agent: Agent) -> AgentResponse:
    return AgentResponse(
        name=agent.name,
        type=agent.type,
        status=agent.status,
        version=agent.version,
        error=agent.error,
        load_duration_ms=agent.load_duration_ms,
        last_hit_at=agent.last_hit_at,
    )


@router.get("/version", response_model=SuccessEnvelope[VersionResponse])
async def get_version(
    namespace_code: str,
    project_code: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.ANY, Action.READ)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    version = await project_service.get_version(db, namespace_code, project_code)
    return success_response(request=request, data=VersionResponse(version=version))


@router.get("/redirects", response_model=SuccessEnvelope[PageEnvelope[FeedRedirect]])
async def list_redirects(
    namespace_code: str,
    project_code: str,
    request: Request,
    limit: int | None = None,
    offset: int | None = None,
    _principal: Principal = Depends(require_resource(ResourceType.REDIRECT, Action.READ)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await redirect_drafts.find_published(
        db,
        namespace_code,
        project_code,
        PaginationInput(limit=limit, offset=offset),
        default_limit=get_settings().agent_feed_page_limit,
    )
    items = [
        FeedRedirect(id=row.id, type=row.type, source=row.source, target=row.target, status=redirect_http_code(row.status))
        for row in result.items
    ]
    return success_response(request=request, data=page_envelope(result, items))


@router.get("/pages", response_model=SuccessEnvelope[PageEnvelope[FeedPage]])
async def list_pages(
    namespace_code: str,
    project_code: str,
    request: Request,
    limit: int | None = None,
    offset: int | None = None,
    _principal: Principal = Depends(require_resource(ResourceType.PAGE, Action.READ)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await page_drafts.find_published(
        db,
        namespace_code,
        project_code,
        PaginationInput(limit=limit, offset=offset),
        default_limit=get_settings().agent_feed_page_limit,
    )
    items = [
        FeedPage(
            id=row.id,
            type=row.type,
            path=row.path,
            content=row.content,
            content_type=row.content_type,
            mime_type=page_mime_type(row.content_type),
        )
        for row in result.items
    ]
    return success_response(request=request, data=page_envelope(result, items))


@router.post("/agents", response_model=SuccessEnvelope[AgentResponse])
async def upsert_agent(
    namespace_code: str,
    project_code: str,
    request: Request,
    payload: AgentRequest,
    _principal: Principal = Depends(require_resource(ResourceType.AGENT, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    agent = await agent_service.upsert_agent(
        db, namespace_code, project_code, AgentPayload(**payload.model_dump())
    )
    return success_response(request=request, data=agent_to_response(agent))


@router.patch("/agents/{name}/hit", response_model=SuccessEnvelope[AgentResponse])
async def hit_agent(
    namespace_code: str,
    project_code: str,
    name: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.AGENT, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    agent = await agent_service.update_last_hit(db, namespace_code, project_code, name)
    return success_response(request=request, data=agent_to_response(agent))
