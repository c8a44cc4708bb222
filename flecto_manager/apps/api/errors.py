from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flecto_manager.apps.api.response import error_response
from flecto_manager.core.errors import FlectoError, StorageError, ValidationFailedError
from flecto_manager.persistence.guards import ProjectScopeError


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "QUOTA_EXCEEDED",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}

# HTTP status per error kind.
_KIND_STATUS: dict[str, int] = {
    "not_found": 404,
    "already_exists": 409,
    "invalid_argument": 400,
    "validation_failed": 422,
    "unauthorized": 401,
    "expired": 401,
    "forbidden": 403,
    "conflict": 409,
    "quota": 413,
    "internal": 500,
}

_STORAGE_STATUS: dict[str, int] = {
    StorageError.LOCK_CONFLICT: 409,
    StorageError.CONSTRAINT: 409,
    StorageError.NOT_FOUND: 404,
    StorageError.UNKNOWN: 500,
}


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Extract code/message/details from FastAPI HTTPException detail payloads.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def status_for_error(exc: FlectoError) -> int:
    if isinstance(exc, StorageError):
        return _STORAGE_STATUS.get(exc.storage_kind, 500)
    return _KIND_STATUS.get(exc.kind, 500)


def describe_error(exc: FlectoError) -> tuple[int, str, str, dict[str, Any] | None]:
    status_code = status_for_error(exc)
    # Credential failures are not distinguished for clients.
    if exc.kind in {"unauthorized", "expired"}:
        return status_code, "AUTH_UNAUTHORIZED", exc.message, None
    if status_code == 500:
        return status_code, "INTERNAL_ERROR", "Internal server error", None
    details: dict[str, Any] | None = dict(exc.details) or None
    if isinstance(exc, ValidationFailedError):
        details = {
            "issues": [
                {"field": issue.field, "rule": issue.rule, "value": jsonable_encoder(issue.value)}
                for issue in exc.issues
            ]
        }
    if isinstance(exc, StorageError):
        details = {"storage_kind": exc.storage_kind}
    return status_code, exc.code, exc.message, details


async def flecto_error_handler(request: Request, exc: FlectoError) -> JSONResponse:
    status_code, code, message, details = describe_error(exc)
    if status_code >= 500:
        logger.error("request failed path=%s code=%s error=%s", request.url.path, exc.code, exc)
    payload = error_response(request=request, code=code, message=message, details=details)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(content=payload, status_code=422)


async def project_scope_exception_handler(request: Request, exc: ProjectScopeError) -> JSONResponse:
    payload = error_response(request=request, code="PROJECT_SCOPE_REQUIRED", message=exc.message)
    return JSONResponse(content=payload, status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak stack traces to clients.
    logger.exception("unhandled error path=%s", request.url.path)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
