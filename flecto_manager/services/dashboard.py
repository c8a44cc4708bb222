from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from flecto_manager.core.config import get_settings
from flecto_manager.domain.models import utc_now
from flecto_manager.domain.types import AgentStatus, DraftChangeType, PageType, RedirectType
from flecto_manager.persistence.repos import agents as agents_repo
from flecto_manager.persistence.repos import pages as pages_repo
from flecto_manager.persistence.repos import redirects as redirects_repo
from flecto_manager.services.projects import get_project


@dataclass
class CountBreakdown:
    total: int = 0
    by_key: dict[str, int] = field(default_factory=dict)


@dataclass
class ProjectDashboard:
    version: int
    published_at: datetime | None
    redirects: CountBreakdown
    redirect_drafts: CountBreakdown
    pages: CountBreakdown
    page_drafts: CountBreakdown
    agents_online: int
    agents_error: int


def _breakdown(counts: dict[str, int], keys: list[str]) -> CountBreakdown:
    # Every known key is reported, zero when absent; the total covers known keys only.
    by_key = {key: int(counts.get(key, 0)) for key in keys}
    return CountBreakdown(total=sum(by_key.values()), by_key=by_key)


async def get_project_dashboard(session: AsyncSession, namespace_code: str, project_code: str) -> ProjectDashboard:
    project = await get_project(session, namespace_code, project_code)
    change_types = [item.value for item in DraftChangeType]

    redirects = _breakdown(
        await redirects_repo.count_by_type(session, namespace_code, project_code),
        [item.value for item in RedirectType],
    )
    redirect_drafts = _breakdown(
        await redirects_repo.count_drafts_by_change_type(session, namespace_code, project_code), change_types
    )
    pages = _breakdown(
        await pages_repo.count_by_type(session, namespace_code, project_code),
        [item.value for item in PageType],
    )
    page_drafts = _breakdown(
        await pages_repo.count_drafts_by_change_type(session, namespace_code, project_code), change_types
    )

    since = utc_now() - timedelta(seconds=get_settings().agent_offline_threshold_s)
    online = await agents_repo.count_seen_since(session, namespace_code, project_code, since)
    errored = await agents_repo.count_seen_since(
        session, namespace_code, project_code, since, status=AgentStatus.ERROR.value
    )
    return ProjectDashboard(
        version=project.version,
        published_at=project.published_at,
        redirects=redirects,
        redirect_drafts=redirect_drafts,
        pages=pages,
        page_drafts=page_drafts,
        agents_online=online,
        agents_error=errored,
    )
