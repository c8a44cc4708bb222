from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from flecto_manager.domain.models import Page, PageDraft, Redirect, RedirectDraft
from flecto_manager.domain.types import AdminRule, PagePayload, RedirectPayload, ResourceRule, SubjectPermissions


class RedirectPayloadModel(BaseModel):
    type: str
    source: str
    target: str
    status: int

    def to_payload(self) -> RedirectPayload:
        return RedirectPayload(type=self.type, source=self.source, target=self.target, status=self.status)


class PagePayloadModel(BaseModel):
    type: str
    path: str
    content: str
    content_type: str = Field(alias="contentType")

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> PagePayload:
        return PagePayload(type=self.type, path=self.path, content=self.content, content_type=self.content_type)


class ResourceRuleModel(BaseModel):
    namespace: str
    project: str
    resource: str
    action: str


class AdminRuleModel(BaseModel):
    section: str
    action: str


class PermissionsModel(BaseModel):
    resources: list[ResourceRuleModel] = Field(default_factory=list)
    admin: list[AdminRuleModel] = Field(default_factory=list)

    def to_permissions(self) -> SubjectPermissions:
        return SubjectPermissions(
            resources=[ResourceRule(r.namespace, r.project, r.resource, r.action) for r in self.resources],
            admin=[AdminRule(a.section, a.action) for a in self.admin],
        )

    @classmethod
    def from_permissions(cls, permissions: SubjectPermissions) -> "PermissionsModel":
        return cls(
            resources=[ResourceRuleModel(**vars(rule)) for rule in permissions.resources],
            admin=[AdminRuleModel(**vars(rule)) for rule in permissions.admin],
        )


class RedirectResponse(BaseModel):
    id: int
    is_published: bool
    published_at: datetime | None
    type: str | None
    source: str | None
    target: str | None
    status: int | None
    updated_at: datetime


class RedirectDraftResponse(BaseModel):
    id: int
    change_type: str
    old_redirect_id: int
    new_type: str | None
    new_source: str | None
    new_target: str | None
    new_status: int | None
    updated_at: datetime


class RedirectItemResponse(BaseModel):
    redirect: RedirectResponse
    draft: RedirectDraftResponse | None


class PageResponse(BaseModel):
    id: int
    is_published: bool
    published_at: datetime | None
    type: str | None
    path: str | None
    content: str | None
    content_type: str | None
    content_size: int
    updated_at: datetime


class PageDraftResponse(BaseModel):
    id: int
    change_type: str
    old_page_id: int
    new_type: str | None
    new_path: str | None
    new_content: str | None
    new_content_type: str | None
    content_size: int
    updated_at: datetime


class PageItemResponse(BaseModel):
    page: PageResponse
    draft: PageDraftResponse | None


def redirect_to_response(row: Redirect) -> RedirectResponse:
    return RedirectResponse(
        id=row.id,
        is_published=row.is_published,
        published_at=row.published_at,
        type=row.type,
        source=row.source,
        target=row.target,
        status=row.status,
        updated_at=row.updated_at,
    )


def redirect_draft_to_response(draft: RedirectDraft) -> RedirectDraftResponse:
    return RedirectDraftResponse(
        id=draft.id,
        change_type=draft.change_type,
        old_redirect_id=draft.old_redirect_id,
        new_type=draft.new_type,
        new_source=draft.new_source,
        new_target=draft.new_target,
        new_status=draft.new_status,
        updated_at=draft.updated_at,
    )


def page_to_response(row: Page) -> PageResponse:
    return PageResponse(
        id=row.id,
        is_published=row.is_published,
        published_at=row.published_at,
        type=row.type,
        path=row.path,
        content=row.content,
        content_type=row.content_type,
        content_size=row.content_size,
        updated_at=row.updated_at,
    )


def page_draft_to_response(draft: PageDraft) -> PageDraftResponse:
    return PageDraftResponse(
        id=draft.id,
        change_type=draft.change_type,
        old_page_id=draft.old_page_id,
        new_type=draft.new_type,
        new_path=draft.new_path,
        new_content=draft.new_content,
        new_content_type=draft.new_content_type,
        content_size=draft.content_size,
        updated_at=draft.updated_at,
    )
