from __future__ import annotations

from typing import Any

from flecto_manager.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {
            "application/json": {
                "example": _error_example(code=code, message=message, details=details),
            }
        },
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _response("Bad request", "NOTHING_TO_PUBLISH", "Nothing to publish"),
    401: _response("Unauthorized", "AUTH_UNAUTHORIZED", "Missing or invalid bearer token"),
    403: _response("Forbidden", "AUTH_FORBIDDEN", "Insufficient permissions for this operation"),
    404: _response("Not found", "PROJECT_NOT_FOUND", "Project not found"),
    409: _response("Conflict", "SOURCE_ALREADY_USED", "Source is already used in this project"),
    413: _response("Quota exceeded", "TOTAL_SIZE_LIMIT_REACHED", "Project page content would exceed the total size limit"),
    422: _response(
        "Validation error",
        "VALIDATION_FAILED",
        "source: basic_path",
        details={"issues": [{"field": "source", "rule": "basic_path", "value": "no-slash"}]},
    ),
    500: _response("Internal server error", "INTERNAL_ERROR", "Internal server error"),
}
