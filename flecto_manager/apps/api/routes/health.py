from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from flecto_manager.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from flecto_manager.apps.api.response import SuccessEnvelope, success_response
from flecto_manager.persistence.db import pool_stats

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    db_pool: dict[str, int | None]


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request) -> dict:
    payload = HealthResponse(status="ok", db_pool=pool_stats())
    return success_response(request=request, data=payload)
