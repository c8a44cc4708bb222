from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flecto_manager.services.validation import ValidationIssue


class FlectoError(Exception):
    """Base error for flecto-manager."""

    kind = "internal"
    code = "INTERNAL_ERROR"
    default_message = "Internal error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


# Kinds


class NotFoundError(FlectoError):
    kind = "not_found"
    code = "NOT_FOUND"
    default_message = "Resource not found"


class AlreadyExistsError(FlectoError):
    kind = "already_exists"
    code = "ALREADY_EXISTS"
    default_message = "Resource already exists"


class InvalidArgumentError(FlectoError):
    kind = "invalid_argument"
    code = "INVALID_ARGUMENT"
    default_message = "Invalid argument"


class ValidationFailedError(FlectoError):
    """Payload failed field validation; carries every issue found."""

    kind = "validation_failed"
    code = "VALIDATION_FAILED"
    default_message = "Validation failed"

    def __init__(self, issues: list[ValidationIssue], message: str | None = None) -> None:
        self.issues = list(issues)
        summary = message or "; ".join(f"{issue.field}: {issue.rule}" for issue in self.issues)
        super().__init__(summary or self.default_message)


class UnauthorizedError(FlectoError):
    kind = "unauthorized"
    code = "AUTH_UNAUTHORIZED"
    default_message = "Unauthorized"


class ForbiddenError(FlectoError):
    kind = "forbidden"
    code = "AUTH_FORBIDDEN"
    default_message = "Forbidden"


class ConflictError(FlectoError):
    kind = "conflict"
    code = "CONFLICT"
    default_message = "Conflict"


class QuotaError(FlectoError):
    kind = "quota"
    code = "QUOTA_EXCEEDED"
    default_message = "Quota exceeded"


class ExpiredError(FlectoError):
    kind = "expired"
    code = "EXPIRED"
    default_message = "Expired"


class StorageError(FlectoError):
    """Database layer failure classified by storage kind."""

    kind = "storage"
    code = "STORAGE_ERROR"
    default_message = "Database error"

    LOCK_CONFLICT = "lock_conflict"
    NOT_FOUND = "not_found"
    CONSTRAINT = "constraint"
    UNKNOWN = "unknown"

    def __init__(self, storage_kind: str = UNKNOWN, message: str | None = None) -> None:
        self.storage_kind = storage_kind
        super().__init__(message)


class InternalError(FlectoError):
    pass


class ConfigurationError(InternalError):
    code = "CONFIGURATION_ERROR"
    default_message = "Invalid service configuration"


# Not found


class NamespaceNotFound(NotFoundError):
    code = "NAMESPACE_NOT_FOUND"
    default_message = "Namespace not found"


class ProjectNotFound(NotFoundError):
    code = "PROJECT_NOT_FOUND"
    default_message = "Project not found"


class RedirectNotFound(NotFoundError):
    code = "REDIRECT_NOT_FOUND"
    default_message = "Redirect not found"


class RedirectDraftNotFound(NotFoundError):
    code = "REDIRECT_DRAFT_NOT_FOUND"
    default_message = "Redirect draft not found"


class PageNotFound(NotFoundError):
    code = "PAGE_NOT_FOUND"
    default_message = "Page not found"


class PageDraftNotFound(NotFoundError):
    code = "PAGE_DRAFT_NOT_FOUND"
    default_message = "Page draft not found"


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class RoleNotFound(NotFoundError):
    code = "ROLE_NOT_FOUND"
    default_message = "Role not found"


class TokenNotFound(NotFoundError):
    code = "TOKEN_NOT_FOUND"
    default_message = "Token not found"


class AgentNotFound(NotFoundError):
    code = "AGENT_NOT_FOUND"
    default_message = "Agent not found"


class UserNotInRole(NotFoundError):
    code = "USER_NOT_IN_ROLE"
    default_message = "User is not in role"


# Already exists


class NamespaceAlreadyExists(AlreadyExistsError):
    code = "NAMESPACE_ALREADY_EXISTS"
    default_message = "Namespace already exists"


class ProjectAlreadyExists(AlreadyExistsError):
    code = "PROJECT_ALREADY_EXISTS"
    default_message = "Project already exists"


class UserAlreadyExists(AlreadyExistsError):
    code = "USER_ALREADY_EXISTS"
    default_message = "User already exists"


class RoleAlreadyExists(AlreadyExistsError):
    code = "ROLE_ALREADY_EXISTS"
    default_message = "Role already exists"


class TokenAlreadyExists(AlreadyExistsError):
    code = "TOKEN_ALREADY_EXISTS"
    default_message = "Token already exists"


class UserAlreadyInRole(AlreadyExistsError):
    code = "USER_ALREADY_IN_ROLE"
    default_message = "User is already in role"


class DraftAlreadyPending(AlreadyExistsError):
    code = "DRAFT_ALREADY_PENDING"
    default_message = "A draft is already pending for this row"


# Invalid argument


class InvalidDraftArguments(InvalidArgumentError):
    code = "INVALID_DRAFT_ARGUMENTS"
    default_message = "Either an existing row id or a new payload is required"


class DraftNotEditable(InvalidArgumentError):
    code = "DRAFT_NOT_EDITABLE"
    default_message = "Delete drafts cannot be edited"


class NothingToPublish(InvalidArgumentError):
    code = "NOTHING_TO_PUBLISH"
    default_message = "Nothing to publish"


class TokenNameTooLong(InvalidArgumentError):
    code = "TOKEN_NAME_TOO_LONG"
    default_message = "Token name is too long"


class InvalidImportFile(InvalidArgumentError):
    code = "INVALID_IMPORT_FILE"
    default_message = "Invalid import file"


class InvalidImportHeader(InvalidArgumentError):
    code = "INVALID_IMPORT_HEADER"
    default_message = "Invalid import header"


# Credentials


class InvalidCredentials(UnauthorizedError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class UserInactive(UnauthorizedError):
    code = "USER_INACTIVE"
    default_message = "User is inactive"


class InvalidToken(UnauthorizedError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenExpired(ExpiredError):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


# Conflicts


class PublishInProgress(ConflictError):
    code = "PUBLISH_IN_PROGRESS"
    default_message = "A publish is already in progress for this project"


class SourceAlreadyUsed(ConflictError):
    code = "SOURCE_ALREADY_USED"
    default_message = "Source is already used in this project"


class PathAlreadyUsed(ConflictError):
    code = "PATH_ALREADY_USED"
    default_message = "Path is already used in this project"


# Quota


class ContentSizeExceeded(QuotaError):
    code = "CONTENT_SIZE_EXCEEDED"
    default_message = "Page content exceeds the size limit"


class TotalSizeLimitReached(QuotaError):
    code = "TOTAL_SIZE_LIMIT_REACHED"
    default_message = "Project page content would exceed the total size limit"
