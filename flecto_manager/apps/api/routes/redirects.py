from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.apps.api.deps import Principal, get_db, list_params, require_resource
from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import PageEnvelope, SuccessEnvelope, page_envelope, success_response
from flecto_manager.apps.api.schemas import (
    RedirectDraftResponse,
    RedirectItemResponse,
    RedirectPayloadModel,
    redirect_draft_to_response,
    redirect_to_response,
)
from flecto_manager.core.config import get_settings
from flecto_manager.domain.types import Action, ResourceType
from flecto_manager.persistence.repos import redirects as redirects_repo
from flecto_manager.services import redirect_import
from flecto_manager.services.drafts import redirects as redirect_drafts


router = APIRouter(
    prefix="/namespaces/{namespace_code}/projects/{project_code}",
    tags=["redirects"],
    responses=DEFAULT_ERROR_RESPONSES,
)

_read = require_resource(ResourceType.REDIRECT, Action.READ)
_write = require_resource(ResourceType.REDIRECT, Action.WRITE)


class RedirectDraftCreateRequest(BaseModel):
    old_redirect_id: int | None = None
    new_redirect: RedirectPayloadModel | None = None


class RedirectDraftUpdateRequest(BaseModel):
    new_redirect: RedirectPayloadModel


class ImportRowErrorResponse(BaseModel):
    line: int
    reason: str
    message: str
    source: str
    target: str


class ImportResponse(BaseModel):
    success: bool
    total_lines: int
    imported: int
    skipped: int
    error_count: int
    errors: list[ImportRowErrorResponse]


@router.get("/redirects", response_model=SuccessEnvelope[PageEnvelope[RedirectItemResponse]])
async def list_redirects(
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
    result = await redirect_drafts.search(
        db,
        namespace_code,
        project_code,
        search=search,
        redirect_type=type,
        change_type=change_type,
        sorts=sorts,
        pagination=pagination,
    )
    items = [
        RedirectItemResponse(
            redirect=redirect_to_response(redirect),
            draft=redirect_draft_to_response(draft) if draft is not None else None,
        )
        for redirect, draft in result.items
    ]
    return success_response(request=request, data=page_envelope(result, items))


@router.get("/redirects/{redirect_id}", response_model=SuccessEnvelope[RedirectItemResponse])
async def get_redirect(
    namespace_code: str,
    project_code: str,
    redirect_id: int,
    request: Request,
    _principal: Principal = Depends(_read),
    db: AsyncSession = Depends(get_db),
) -> dict:
    redirect = await redirect_drafts.get_redirect(db, namespace_code, project_code, redirect_id)
    draft = await redirects_repo.get_draft_for_redirect(db, redirect.id)
    payload = RedirectItemResponse(
        redirect=redirect_to_response(redirect),
        draft=redirect_draft_to_response(draft) if draft is not None else None,
    )
    return success_response(request=request, data=payload)


@router.post("/redirect-drafts", status_code=201, response_model=SuccessEnvelope[RedirectDraftResponse])
async def create_redirect_draft(
    namespace_code: str,
    project_code: str,
    request: Request,
    payload: RedirectDraftCreateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    draft = await redirect_drafts.create_draft(
        db,
        namespace_code,
        project_code,
        old_redirect_id=payload.old_redirect_id,
        new_payload=payload.new_redirect.to_payload() if payload.new_redirect else None,
    )
    return success_response(request=request, data=redirect_draft_to_response(draft))


@router.put("/redirect-drafts/{draft_id}", response_model=SuccessEnvelope[RedirectDraftResponse])
async def update_redirect_draft(
    namespace_code: str,
    project_code: str,
    draft_id: int,
    request: Request,
    payload: RedirectDraftUpdateRequest,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    draft = await redirect_drafts.update_draft(
        db, namespace_code, project_code, draft_id, payload.new_redirect.to_payload()
    )
    return success_response(request=request, data=redirect_draft_to_response(draft))


@router.delete("/redirect-drafts/{draft_id}", response_model=SuccessEnvelope[dict[str, int]])
async def delete_redirect_draft(
    namespace_code: str,
    project_code: str,
    draft_id: int,
    request: Request,
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await redirect_drafts.delete_draft(db, namespace_code, project_code, draft_id)
    return success_response(request=request, data={"id": draft_id})


@router.post("/redirects/import", response_model=SuccessEnvelope[ImportResponse])
async def import_redirects(
    namespace_code: str,
    project_code: str,
    request: Request,
    file: UploadFile = File(...),
    overwrite: bool = Form(False),
    _principal: Principal = Depends(_write),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Never buffer more than one byte past the limit.
    limit = get_settings().import_max_file_size
    data = await file.read(limit + 1)
    redirect_import.validate_file(file.filename or "", file.content_type, max(len(data), file.size or 0))
    result = await redirect_import.import_file(db, namespace_code, project_code, data, overwrite=overwrite)
    payload = ImportResponse(
        success=result.success,
        total_lines=result.total_lines,
        imported=result.imported,
        skipped=result.skipped,
        error_count=result.error_count,
        errors=[
            ImportRowErrorResponse(
                line=error.line,
                reason=error.reason.value,
                message=error.message,
                source=error.source,
                target=error.target,
            )
            for error in result.errors
        ],
    )
    return success_response(request=request, data=payload)
