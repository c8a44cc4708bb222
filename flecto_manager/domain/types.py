from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable


WILDCARD = "*"


class RedirectType(str, Enum):
    BASIC = "basic"
    BASIC_HOST = "basic_host"
    REGEX = "regex"
    REGEX_HOST = "regex_host"


class RedirectStatus(IntEnum):
    MOVED_PERMANENT = 301
    FOUND = 302
    TEMPORARY_REDIRECT = 307
    PERMANENT_REDIRECT = 308


def redirect_http_code(status: int | str | None) -> int:
    # Unknown statuses degrade to a temporary 302 redirect.
    if isinstance(status, str):
        member = RedirectStatus.__members__.get(status.strip().upper())
        if member is not None:
            return int(member)
        if not status.strip().isdigit():
            return int(RedirectStatus.FOUND)
        status = int(status.strip())
    try:
        return int(RedirectStatus(status))
    except ValueError:
        return int(RedirectStatus.FOUND)


class PageType(str, Enum):
    BASIC = "basic"
    BASIC_HOST = "basic_host"


class PageContentType(str, Enum):
    TEXT_PLAIN = "TEXT_PLAIN"
    XML = "XML"

    @property
    def mime_type(self) -> str:
        return _CONTENT_TYPE_MIME[self]


_CONTENT_TYPE_MIME = {
    PageContentType.TEXT_PLAIN: "text/plain",
    PageContentType.XML: "application/xml",
}


def page_mime_type(content_type: str | None) -> str:
    # Unknown content types are served as plain text.
    try:
        return PageContentType(content_type).mime_type
    except ValueError:
        return "text/plain"


class DraftChangeType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RoleType(str, Enum):
    USER = "user"
    ROLE = "role"
    TOKEN = "token"


class ResourceType(str, Enum):
    REDIRECT = "redirect"
    PAGE = "page"
    AGENT = "agent"
    ALL = WILDCARD
    # Request-side sentinel: "any resource at all in this scope".
    ANY = "any"


class AdminSection(str, Enum):
    USERS = "users"
    ROLES = "roles"
    PROJECTS = "projects"
    NAMESPACES = "namespaces"
    TOKENS = "tokens"
    ALL = WILDCARD


class Action(str, Enum):
    READ = "read"
    WRITE = "write"
    ALL = WILDCARD


class AgentType(str, Enum):
    DEFAULT = "default"
    TRAEFIK = "traefik"


class AgentStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class AuthType(str, Enum):
    BASIC = "basic"
    TOKEN = "token"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


def _value(item: object) -> str:
    return item.value if isinstance(item, Enum) else str(item)


@dataclass(frozen=True)
class RedirectPayload:
    # Shared by published redirects and the new_* columns of redirect drafts.
    type: str
    source: str
    target: str
    status: int


@dataclass(frozen=True)
class PagePayload:
    # Shared by published pages and the new_* columns of page drafts.
    type: str
    path: str
    content: str
    content_type: str

    @property
    def content_size(self) -> int:
        return len(self.content.encode("utf-8"))


@dataclass(frozen=True)
class AgentPayload:
    name: str
    type: str
    status: str
    version: str = ""
    error: str = ""
    load_duration_ms: int = 0


@dataclass(frozen=True)
class ResourceRule:
    namespace: str
    project: str
    resource: str
    action: str

    @classmethod
    def of(cls, namespace: object, project: object, resource: object, action: object) -> "ResourceRule":
        return cls(_value(namespace), _value(project), _value(resource), _value(action))

    @property
    def key(self) -> str:
        return f"{self.namespace}|{self.project}|{self.resource}|{self.action}"


@dataclass(frozen=True)
class AdminRule:
    section: str
    action: str

    @classmethod
    def of(cls, section: object, action: object) -> "AdminRule":
        return cls(_value(section), _value(action))

    @property
    def key(self) -> str:
        return f"{self.section}|{self.action}"


@dataclass
class SubjectPermissions:
    """Effective permissions of an authenticated subject.

    Built as the union of the implicit user (or token) role and every named
    role the subject belongs to. Rules are kept in first-seen order and are
    deduplicated by their pipe-joined key.
    """

    resources: list[ResourceRule] = field(default_factory=list)
    admin: list[AdminRule] = field(default_factory=list)

    @classmethod
    def merge(cls, parts: Iterable["SubjectPermissions"]) -> "SubjectPermissions":
        merged = cls()
        seen_resources: set[str] = set()
        seen_admin: set[str] = set()
        for part in parts:
            for rule in part.resources:
                if rule.key not in seen_resources:
                    seen_resources.add(rule.key)
                    merged.resources.append(rule)
            for rule in part.admin:
                if rule.key not in seen_admin:
                    seen_admin.add(rule.key)
                    merged.admin.append(rule)
        return merged

    def deduplicated(self) -> "SubjectPermissions":
        return SubjectPermissions.merge([self])
