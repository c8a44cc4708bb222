from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_db, list_params, require_resource
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.apps.api.schemas import (
    PageDraftResponse,
    PageItemResponse,
    PagePayloadModel,
    page_draft_to_response,
    page_to_response,
)
from flecto_manager.domain.types import Action, ResourceType
from flecto_manager.persistence.repos import pages as pages_repo
from flecto_manager.services.drafts import pages as page_drafts


router = APIRouter(
    prefix="/namespaces/{namespace_code}/projects/{project_code}",
    tags=["pages"],
    responses=DEFAULT_ERROR_RESPONSES,
)

_read = require_resource(ResourceType.PAGE, Action.READ)
_write = require_resource(ResourceType.PAGE, Action.WRITE)


class PageDraftCreateRequest(BaseModel):
    old_page_id: int | None = None
    new_page: PagePayloadModel | None = None


class PageDraftUpdateRequest(BaseModel):
    new_page: PagePayloadModel


@router.get("/pages", response_model=SuccessEnvelope[PageEnvelope[PageItemResponse]])
async def list_pages(
    namespace_code: str,
    project_code: str,
    request: Request,
    type: str | None = None,
    change_type: str | None = None,
    params=Depends(list_params),
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    search, sorts, pagination = params
    result = await page_drafts.search(
        db,
        namespace_code,
        project_code,
        search=search,
        page_type=type,
        change_type=change_type,
        sorts=sorts,
        pagination=pagination,
    )
    items = [
        PageItemResponse(
            page=page_to_response(page),
            draft=page_draft_to_response(draft) if draft is not None else None,
        )
        for page, draft in result.items
    ]
    return success_response(request=request, data=page_envelope(result, items))


@router.get("/pages/{page_id}", response_model=SuccessEnvelope[PageItemResponse])
async def get_page(
    namespace_code: str,
    project_code: str,
    page_id: int,
    request: Request,
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page = await page_drafts.get_page(db, namespace_code, project_code, page_id)
    draft = await pages_repo.get_draft_for_page(db, page.id)
    payload = PageItemResponse(
        page=page_to_response(page),
        draft=page_draft_to_response(draft) if draft is not None else None,
    )
    return success_response(request=request, data=payload)


@router.post("/page-drafts", status_code=201, response_model=SuccessEnvelope[PageDraftResponse])
async def create_page_draft(
    namespace_code: str,
    project_code: str,
    request: Request,
    payload: PageDraftCreateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    draft = await page_drafts.create_draft(
        db,
        namespace_code,
        project_code,
        old_page_id=payload.old_page_id,
        new_payload=payload.new_page.to_payload() if payload.new_page else None,
    )
    return success_response(request=request, data=page_draft_to_response(draft))


@router.put("/page-drafts/{draft_id}", response_model=SuccessEnvelope[PageDraftResponse])
async def update_page_draft(
    namespace_code: str,
    project_code: str,
    draft_id: int,
    request: Request,
    payload: PageDraftUpdateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    draft = await page_drafts.update_draft(db, namespace_code, project_code, draft_id, payload.new_page.to_payload())
    return success_response(request=request, data=page_draft_to_response(draft))


@router.delete("/page-drafts/{draft_id}", response_model=SuccessEnvelope[dict[str, int]])
async def delete_page_draft(
    namespace_code: str,
    project_code: str,
    draft_id: int,
    request: Request,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await page_drafts.delete_draft(db, namespace_code, project_code, draft_id)
    return success_response(request=request, data={"id": draft_id})
