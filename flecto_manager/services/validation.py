"""Field validation for payloads and admin inputs.

Each input shape is declared as a pydantic model whose constraints carry the
rule names clients see. Validators never raise on bad input; they return a
list of ``ValidationIssue(field, rule, value)`` so callers can report every
problem at once. ``ensure_valid`` turns a non-empty report into a
``ValidationFailedError`` at service boundaries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Annotated, Any, Callable
from urllib.parse import urlsplit

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, WrapValidator, model_validator
from pydantic_core import PydanticCustomError

from flecto_manager.core.errors import ValidationFailedError
from flecto_manager.domain.models import CODE_LENGTH, TOKEN_NAME_MAX_LENGTH
from flecto_manager.domain.types import (
    AgentPayload,
    AgentStatus,
    AgentType,
    PageContentType,
    PagePayload,
    PageType,
    RedirectPayload,
    RedirectStatus,
    RedirectType,
    RoleType,
)


CODE_REGEX = r"^[A-Za-z0-9_-]+$"
CODE_PATTERN = re.compile(CODE_REGEX)
NAME_MAX_LENGTH = 255


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    rule: str
    value: Any = None


def _one_of(rule: str) -> WrapValidator:
    # Enum failures are reported under a per-field rule name.
    def check(value: Any, handler: Callable[[Any], Any]) -> Any:
        try:
            return handler(value)
        except ValidationError as exc:
            raise PydanticCustomError(rule, "value is not one of the allowed values") from exc

    return WrapValidator(check)


def is_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def is_username(value: str) -> bool:
    return CODE_PATTERN.fullmatch(value) is not None or is_email(value)


def _username(value: str) -> str:
    if not is_username(value):
        raise PydanticCustomError("username", "username must be a code or an email address")
    return value


Required = Annotated[str, Field(min_length=1)]
Name = Annotated[str, Field(min_length=1, max_length=NAME_MAX_LENGTH)]
Code = Annotated[str, Field(min_length=1, max_length=CODE_LENGTH, pattern=CODE_REGEX)]
Username = Annotated[str, Field(min_length=1, max_length=NAME_MAX_LENGTH), AfterValidator(_username)]


def _shape_error(rule: str, field: str, value: Any) -> PydanticCustomError:
    return PydanticCustomError(rule, "{field} does not match the {rule} shape", {"field": field, "rule": rule, "value": value})


class _Rules(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _rule_for(error: dict[str, Any]) -> str:
    ctx = error.get("ctx") or {}
    if error["type"] == "missing" or (error["loc"] and _is_missing(error.get("input"))):
        return "required"
    if error["type"] == "string_too_long":
        return f"max={ctx['max_length']}"
    if error["type"] == "string_pattern_mismatch":
        return "code"
    return error["type"]


def issues_from_error(exc: ValidationError) -> list[ValidationIssue]:
    # First failing rule per field; model-level checks name their field in ctx.
    issues: list[ValidationIssue] = []
    seen: set[str] = set()
    for error in exc.errors():
        ctx = error.get("ctx") or {}
        if error["loc"]:
            # A missing field's input is the whole object, not the field value.
            field = str(error["loc"][0])
            value = None if error["type"] == "missing" else error.get("input")
        else:
            field, value = str(ctx.get("field", "")), ctx.get("value")
        if field in seen:
            continue
        seen.add(field)
        issues.append(ValidationIssue(field=field, rule=_rule_for(error), value=value))
    return issues


def _check(rules: type[_Rules], data: Any) -> list[ValidationIssue]:
    try:
        rules.model_validate(data, from_attributes=True)
    except ValidationError as exc:
        return issues_from_error(exc)
    return []


def ensure_valid(issues: list[ValidationIssue]) -> None:
    if issues:
        raise ValidationFailedError(issues)


def _host_and_path(value: str) -> tuple[str, str] | None:
    try:
        parts = urlsplit("//" + value)
        host = parts.hostname or ""
    except ValueError:
        return None
    return host, parts.path


def _valid_basic_host(value: str) -> bool:
    parsed = _host_and_path(value)
    return parsed is not None and bool(parsed[0]) and bool(parsed[1])


def _compiles(value: str) -> bool:
    try:
        re.compile(value)
    except re.error:
        return False
    return True


class RedirectRules(_Rules):
    status: Annotated[RedirectStatus, _one_of("redirect_status")]
    target: Required
    type: Annotated[RedirectType, _one_of("redirect_type")]
    source: Required

    @model_validator(mode="after")
    def _source_shape(self) -> "RedirectRules":
        source = self.source
        if self.type is RedirectType.BASIC and not source.startswith("/"):
            raise _shape_error("basic_path", "source", source)
        if self.type is RedirectType.BASIC_HOST and not _valid_basic_host(source):
            raise _shape_error("basic_host", "source", source)
        if self.type in (RedirectType.REGEX, RedirectType.REGEX_HOST) and not _compiles(source):
            raise _shape_error("regex", "source", source)
        return self


class PageRules(_Rules):
    # Empty content is allowed.
    content_type: Annotated[PageContentType, _one_of("page_content_type")]
    type: Annotated[PageType, _one_of("page_type")]
    path: Required

    @model_validator(mode="after")
    def _path_shape(self) -> "PageRules":
        if self.type is PageType.BASIC and not self.path.startswith("/"):
            raise _shape_error("basic_path", "path", self.path)
        if self.type is PageType.BASIC_HOST and not _valid_basic_host(self.path):
            raise _shape_error("basic_host", "path", self.path)
        return self


class AgentRules(_Rules):
    name: Annotated[str, Field(min_length=1, max_length=NAME_MAX_LENGTH, pattern=CODE_REGEX)]
    type: Annotated[AgentType, _one_of("agent_type")]
    status: Annotated[AgentStatus, _one_of("agent_status")]


class NamespaceRules(_Rules):
    namespace_code: Code
    name: Name


class ProjectRules(NamespaceRules):
    project_code: Code


class RoleRules(_Rules):
    code: Annotated[str, Field(min_length=1, max_length=TOKEN_NAME_MAX_LENGTH + 10)]
    type: Annotated[RoleType, _one_of("role_type")]

    @model_validator(mode="after")
    def _code_shape(self) -> "RoleRules":
        # Implicit user roles carry the username, which may be an email address.
        if self.type is RoleType.USER:
            if not is_username(self.code):
                raise _shape_error("username", "code", self.code)
        elif CODE_PATTERN.fullmatch(self.code) is None:
            raise _shape_error("code", "code", self.code)
        return self


class UserRules(_Rules):
    username: Username
    firstname: Name
    lastname: Name


class TokenNameRules(_Rules):
    name: Annotated[str, Field(min_length=1, max_length=TOKEN_NAME_MAX_LENGTH)]


def validate_redirect(payload: RedirectPayload) -> list[ValidationIssue]:
    return _check(RedirectRules, payload)


def validate_page(payload: PagePayload) -> list[ValidationIssue]:
    return _check(PageRules, payload)


def validate_agent(payload: AgentPayload) -> list[ValidationIssue]:
    return _check(AgentRules, payload)


def validate_namespace(*, namespace_code: str, name: str) -> list[ValidationIssue]:
    return _check(NamespaceRules, {"namespace_code": namespace_code, "name": name})


def validate_project(*, namespace_code: str, project_code: str, name: str) -> list[ValidationIssue]:
    return _check(ProjectRules, {"namespace_code": namespace_code, "project_code": project_code, "name": name})


def validate_role(*, code: str, role_type: str) -> list[ValidationIssue]:
    return _check(RoleRules, {"code": code, "type": role_type})


def validate_user(*, username: str, firstname: str, lastname: str) -> list[ValidationIssue]:
    return _check(UserRules, {"username": username, "firstname": firstname, "lastname": lastname})


def validate_token_name(name: str) -> list[ValidationIssue]:
    return _check(TokenNameRules, {"name": name})
