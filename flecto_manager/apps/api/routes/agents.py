from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_db, list_params, require_resource
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.apps.api.routes.agent_feed import AgentResponse, agent_to_response
from flecto_manager.domain.types import Action, ResourceType
from flecto_manager.services import agents as agent_service


router = APIRouter(
    prefix="/namespaces/{namespace_code}/projects/{project_code}/agents",
    tags=["agents"],
    responses=DEFAULT_ERROR_RESPONSES,
)


@router.get("", response_model=SuccessEnvelope[PageEnvelope[AgentResponse]])
async def list_agents(
    namespace_code: str,
    project_code: str,
    request: Request,
    status: str | None = None,
    type: str | None = None,
    params=Depends(list_params),
    _principal: Principal = Depends(require_resource(ResourceType.AGENT, Action.READ)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    search, sorts, pagination = params
    result = await agent_service.search_agents(
        db,
        namespace_code,
        project_code,
        search=search,
        status=status,
        agent_type=type,
        sorts=sorts,
        pagination=pagination,
    )
    return success_response(request=request, data=page_envelope(result, [agent_to_response(a) for a in result.items]))


@router.get("/{name}", response_model=SuccessEnvelope[AgentResponse])
async def get_agent(
    namespace_code: str,
    project_code: str,
    name: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.AGENT, Action.READ)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    agent = await agent_service.get_agent(db, namespace_code, project_code, name)
    return success_response(request=request, data=agent_to_response(agent))


@router.delete("/{name}", response_model=SuccessEnvelope[dict[str, str]])
async def delete_agent(
    namespace_code: str,
    project_code: str,
    name: str,
    request: Request,
    _principal: Principal = Depends(require_resource(ResourceType.AGENT, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await agent_service.delete_agent(db, namespace_code, project_code, name)
    return success_response(request=request, data={"name": name})
