from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_current_principal, get_db, list_params, require_admin
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.core.errors import NamespaceNotFound
from flecto_manager.domain.models import Namespace
from flecto_manager.domain.types import WILDCARD, Action, AdminSection
from flecto_manager.services import namespaces as namespace_service
from flecto_manager.services.authz.permissions import can_admin, rules_for_action


router = APIRouter(prefix="/namespaces", tags=["namespaces"], responses=DEFAULT_ERROR_RESPONSES)


class NamespaceCreateRequest(BaseModel):
    namespace_code: str
    name: str


class NamespaceUpdateRequest(BaseModel):
    name: str


class NamespaceResponse(BaseModel):
    id: int
    namespace_code: str
    name: str
    created_at: datetime
    updated_at: datetime


def _to_response(namespace: Namespace) -> NamespaceResponse:
    return NamespaceResponse(
        id=namespace.id,
        namespace_code=namespace.namespace_code,
        name=namespace.name,
        created_at=namespace.created_at,
        updated_at=namespace.updated_at,
    )


def _readable_rules(principal: Principal):
    # Namespace admins see everything; others only namespaces their read rules reach.
    if can_admin(principal.permissions, AdminSection.NAMESPACES, Action.READ):
        return None
    return rules_for_action(principal.permissions, Action.READ)


@router.get("", response_model=SuccessEnvelope[PageEnvelope[NamespaceResponse]])
async def list_namespaces(
    request: Request,
    params=Depends(list_params),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    search, sorts, pagination = params
    result = await namespace_service.search_namespaces(
        db, rules=_readable_rules(principal), search=search, sorts=sorts, pagination=pagination
    )
    return success_response(request=request, data=page_envelope(result, [_to_response(n) for n in result.items]))


@router.get("/{namespace_code}", response_model=SuccessEnvelope[NamespaceResponse])
async def get_namespace(
    namespace_code: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rules = _readable_rules(principal)
    if rules is not None and not any(rule.namespace in (WILDCARD, namespace_code) for rule in rules):
        # Hide namespaces outside the caller's reach.
        raise NamespaceNotFound()
    namespace = await namespace_service.get_namespace(db, namespace_code)
    return success_response(request=request, data=_to_response(namespace))


@router.post("", status_code=201, response_model=SuccessEnvelope[NamespaceResponse])
async def create_namespace(
    request: Request,
    payload: NamespaceCreateRequest,
    _principal: Principal = Depends(require_admin(AdminSection.NAMESPACES, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    namespace = await namespace_service.create_namespace(
        db, namespace_code=payload.namespace_code, name=payload.name
    )
    return success_response(request=request, data=_to_response(namespace))


@router.put("/{namespace_code}", response_model=SuccessEnvelope[NamespaceResponse])
async def update_namespace(
    namespace_code: str,
    request: Request,
    payload: NamespaceUpdateRequest,
    _principal: Principal = Depends(require_admin(AdminSection.NAMESPACES, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    namespace = await namespace_service.update_namespace(db, namespace_code, name=payload.name)
    return success_response(request=request, data=_to_response(namespace))


@router.delete("/{namespace_code}", response_model=SuccessEnvelope[dict[str, str]])
async def delete_namespace(
    namespace_code: str,
    request: Request,
    _principal: Principal = Depends(require_admin(AdminSection.NAMESPACES, Action.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await namespace_service.delete_namespace(db, namespace_code)
    return success_response(request=request, data={"namespace_code": namespace_code})
