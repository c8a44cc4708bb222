from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from flecto_manager.domain.types import PagePayload, RedirectPayload


CODE_LENGTH = 50
TOKEN_NAME_MAX_LENGTH = 300

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigId = BigInteger().with_variant(Integer, "sqlite")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite drops offsets on storage, so values are normalized to UTC before
    binding and tagged as UTC when read back.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def _project_fk(table: str) -> ForeignKeyConstraint:
    return ForeignKeyConstraint(
        ["namespace_code", "project_code"],
        ["projects.namespace_code", "projects.project_code"],
        ondelete="CASCADE",
        name=f"fk_{table}_project",
    )


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class Namespace(TimestampMixin, Base):
    __tablename__ = "namespaces"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    namespace_code: Mapped[str] = mapped_column(String(CODE_LENGTH), unique=True)
    name: Mapped[str] = mapped_column(String(255))


class Project(TimestampMixin, Base):
    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("namespace_code", "project_code", name="uq_projects_namespace_project"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    namespace_code: Mapped[str] = mapped_column(
        String(CODE_LENGTH), ForeignKey("namespaces.namespace_code", ondelete="CASCADE"), index=True
    )
    project_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    name: Mapped[str] = mapped_column(String(255))
    # Bumped by every successful publish; agents poll it to detect changes.
    version: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class Redirect(TimestampMixin, Base):
    __tablename__ = "redirects"
    __table_args__ = (
        _project_fk("redirects"),
        Index("ix_redirects_namespace_project", "namespace_code", "project_code"),
        Index("ix_redirects_namespace_project_source", "namespace_code", "project_code", "source"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    namespace_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    project_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Payload columns stay NULL while the row is a stub owned by a CREATE draft.
    type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    source: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    target: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    status: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def payload(self) -> RedirectPayload | None:
        if self.type is None:
            return None
        return RedirectPayload(type=self.type, source=self.source, target=self.target, status=self.status)

    def apply_payload(self, payload: RedirectPayload | None) -> None:
        self.type = payload.type if payload else None
        self.source = payload.source if payload else None
        self.target = payload.target if payload else None
        self.status = int(payload.status) if payload else None


class RedirectDraft(TimestampMixin, Base):
    __tablename__ = "redirect_drafts"
    __table_args__ = (
        _project_fk("redirect_drafts"),
        Index("ix_redirect_drafts_namespace_project", "namespace_code", "project_code"),
        Index("ix_redirect_drafts_namespace_project_new_source", "namespace_code", "project_code", "new_source"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    namespace_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    project_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    change_type: Mapped[str] = mapped_column(String(10))
    # One pending draft per redirect row.
    old_redirect_id: Mapped[int] = mapped_column(
        BigId, ForeignKey("redirects.id", ondelete="CASCADE"), unique=True
    )
    new_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_source: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    new_target: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    new_status: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def new_payload(self) -> RedirectPayload | None:
        if self.new_type is None:
            return None
        return RedirectPayload(
            type=self.new_type, source=self.new_source, target=self.new_target, status=self.new_status
        )

    @new_payload.setter
    def new_payload(self, payload: RedirectPayload | None) -> None:
        self.new_type = payload.type if payload else None
        self.new_source = payload.source if payload else None
        self.new_target = payload.target if payload else None
        self.new_status = int(payload.status) if payload else None


class Page(TimestampMixin, Base):
    __tablename__ = "pages"
    __table_args__ = (
        _project_fk("pages"),
        Index("ix_pages_namespace_project", "namespace_code", "project_code"),
        Index("ix_pages_namespace_project_path", "namespace_code", "project_code", "path"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    namespace_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    project_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    content_size: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    path: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    @property
    def payload(self) -> PagePayload | None:
        if self.type is None:
            return None
        return PagePayload(
            type=self.type, path=self.path, content=self.content or "", content_type=self.content_type
        )

    def apply_payload(self, payload: PagePayload | None) -> None:
        self.type = payload.type if payload else None
        self.path = payload.path if payload else None
        self.content = payload.content if payload else None
        self.content_type = payload.content_type if payload else None
        self.content_size = payload.content_size if payload else 0


class PageDraft(TimestampMixin, Base):
    __tablename__ = "page_drafts"
    __table_args__ = (
        _project_fk("page_drafts"),
        Index("ix_page_drafts_namespace_project", "namespace_code", "project_code"),
        Index("ix_page_drafts_namespace_project_new_path", "namespace_code", "project_code", "new_path"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    namespace_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    project_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    change_type: Mapped[str] = mapped_column(String(10))
    old_page_id: Mapped[int] = mapped_column(BigId, ForeignKey("pages.id", ondelete="CASCADE"), unique=True)
    # Size of new_content in bytes; zero for DELETE drafts.
    content_size: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    new_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_path: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    new_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_content_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    @property
    def new_payload(self) -> PagePayload | None:
        if self.new_type is None:
            return None
        return PagePayload(
            type=self.new_type,
            path=self.new_path,
            content=self.new_content or "",
            content_type=self.new_content_type,
        )

    @new_payload.setter
    def new_payload(self, payload: PagePayload | None) -> None:
        self.new_type = payload.type if payload else None
        self.new_path = payload.path if payload else None
        self.new_content = payload.content if payload else None
        self.new_content_type = payload.content_type if payload else None
        self.content_size = payload.content_size if payload else 0


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), unique=True)
    # NULL for accounts that cannot log in with a password.
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    firstname: Mapped[str] = mapped_column(String(255))
    lastname: Mapped[str] = mapped_column(String(255))
    # SHA-256 of the last issued refresh token; empty after logout.
    refresh_token_hash: Mapped[str] = mapped_column(String(64), default="", server_default="")


class Role(TimestampMixin, Base):
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("code", "type", name="uq_roles_code_type"),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(TOKEN_NAME_MAX_LENGTH + 10))
    type: Mapped[str] = mapped_column(String(10))


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id: Mapped[int] = mapped_column(BigId, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id: Mapped[int] = mapped_column(BigId, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, server_default=func.now())


class ResourcePermission(Base):
    __tablename__ = "resource_permissions"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(BigId, ForeignKey("roles.id", ondelete="CASCADE"), index=True)
    namespace: Mapped[str] = mapped_column(String(CODE_LENGTH))
    project: Mapped[str] = mapped_column(String(CODE_LENGTH))
    resource: Mapped[str] = mapped_column(String(20))
    action: Mapped[str] = mapped_column(String(10))


class AdminPermission(Base):
    __tablename__ = "admin_permissions"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(BigId, ForeignKey("roles.id", ondelete="CASCADE"), index=True)
    section: Mapped[str] = mapped_column(String(20))
    action: Mapped[str] = mapped_column(String(10))


class Token(TimestampMixin, Base):
    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(TOKEN_NAME_MAX_LENGTH), unique=True)
    # Only the SHA-256 of the plain token is stored.
    token_hash: Mapped[str] = mapped_column(String(64), unique=True)
    preview: Mapped[str] = mapped_column(String(32))
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) > self.expires_at


class Agent(TimestampMixin, Base):
    __tablename__ = "agents"
    __table_args__ = (
        _project_fk("agents"),
        UniqueConstraint("namespace_code", "project_code", "name", name="uq_agents_namespace_project_name"),
        Index("ix_agents_namespace_project", "namespace_code", "project_code"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    namespace_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    project_code: Mapped[str] = mapped_column(String(CODE_LENGTH))
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20))
    version: Mapped[str] = mapped_column(String(50), default="", server_default="")
    error: Mapped[str] = mapped_column(Text, default="", server_default="")
    load_duration_ms: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    last_hit_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, server_default=func.now())
