"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

CODE = sa.String(50)
BIG_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _id() -> sa.Column:
    return sa.Column("id", BIG_ID, primary_key=True, autoincrement=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _project_scope(table: str) -> list:
    return [
        sa.Column("namespace_code", CODE, nullable=False),
        sa.Column("project_code", CODE, nullable=False),
        sa.ForeignKeyConstraint(
            ["namespace_code", "project_code"],
            ["projects.namespace_code", "projects.project_code"],
            ondelete="CASCADE",
            name=f"fk_{table}_project",
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "namespaces",
        _id(),
        sa.Column("namespace_code", CODE, nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "projects",
        _id(),
        sa.Column(
            "namespace_code",
            CODE,
            sa.ForeignKey("namespaces.namespace_code", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("project_code", CODE, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("namespace_code", "project_code", name="uq_projects_namespace_project"),
    )
    op.create_index("ix_projects_namespace_code", "projects", ["namespace_code"])

    op.create_table(
        "redirects",
        _id(),
        *_project_scope("redirects"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("type", sa.String(20), nullable=True),
        sa.Column("source", sa.String(2048), nullable=True),
        sa.Column("target", sa.String(2048), nullable=True),
        sa.Column("status", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_redirects_namespace_project", "redirects", ["namespace_code", "project_code"])
    op.create_index(
        "ix_redirects_namespace_project_source", "redirects", ["namespace_code", "project_code", "source"]
    )

    op.create_table(
        "redirect_drafts",
        _id(),
        *_project_scope("redirect_drafts"),
        sa.Column("change_type", sa.String(10), nullable=False),
        sa.Column(
            "old_redirect_id",
            BIG_ID,
            sa.ForeignKey("redirects.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("new_type", sa.String(20), nullable=True),
        sa.Column("new_source", sa.String(2048), nullable=True),
        sa.Column("new_target", sa.String(2048), nullable=True),
        sa.Column("new_status", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_redirect_drafts_namespace_project", "redirect_drafts", ["namespace_code", "project_code"])
    op.create_index(
        "ix_redirect_drafts_namespace_project_new_source",
        "redirect_drafts",
        ["namespace_code", "project_code", "new_source"],
    )

    op.create_table(
        "pages",
        _id(),
        *_project_scope("pages"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("content_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("type", sa.String(20), nullable=True),
        sa.Column("path", sa.String(2048), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("content_type", sa.String(20), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_pages_namespace_project", "pages", ["namespace_code", "project_code"])
    op.create_index("ix_pages_namespace_project_path", "pages", ["namespace_code", "project_code", "path"])

    op.create_table(
        "page_drafts",
        _id(),
        *_project_scope("page_drafts"),
        sa.Column("change_type", sa.String(10), nullable=False),
        sa.Column(
            "old_page_id",
            BIG_ID,
            sa.ForeignKey("pages.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("content_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("new_type", sa.String(20), nullable=True),
        sa.Column("new_path", sa.String(2048), nullable=True),
        sa.Column("new_content", sa.Text(), nullable=True),
        sa.Column("new_content_type", sa.String(20), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_page_drafts_namespace_project", "page_drafts", ["namespace_code", "project_code"])
    op.create_index(
        "ix_page_drafts_namespace_project_new_path",
        "page_drafts",
        ["namespace_code", "project_code", "new_path"],
    )

    op.create_table(
        "users",
        _id(),
        sa.Column("username", sa.String(255), nullable=False, unique=True),
        sa.Column("password", sa.String(255), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("firstname", sa.String(255), nullable=False),
        sa.Column("lastname", sa.String(255), nullable=False),
        sa.Column("refresh_token_hash", sa.String(64), nullable=False, server_default=""),
        *_timestamps(),
    )

    op.create_table(
        "roles",
        _id(),
        sa.Column("code", sa.String(310), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("code", "type", name="uq_roles_code_type"),
    )

    op.create_table(
        "user_roles",
        sa.Column("user_id", BIG_ID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", BIG_ID, sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "resource_permissions",
        _id(),
        sa.Column("role_id", BIG_ID, sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("namespace", CODE, nullable=False),
        sa.Column("project", CODE, nullable=False),
        sa.Column("resource", sa.String(20), nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
    )
    op.create_index("ix_resource_permissions_role_id", "resource_permissions", ["role_id"])

    op.create_table(
        "admin_permissions",
        _id(),
        sa.Column("role_id", BIG_ID, sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("section", sa.String(20), nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
    )
    op.create_index("ix_admin_permissions_role_id", "admin_permissions", ["role_id"])

    op.create_table(
        "tokens",
        _id(),
        sa.Column("name", sa.String(300), nullable=False, unique=True),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("preview", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "agents",
        _id(),
        *_project_scope("agents"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("version", sa.String(50), nullable=False, server_default=""),
        sa.Column("error", sa.Text(), nullable=False, server_default=""),
        sa.Column("load_duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_hit_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
        sa.UniqueConstraint("namespace_code", "project_code", "name", name="uq_agents_namespace_project_name"),
    )
    op.create_index("ix_agents_namespace_project", "agents", ["namespace_code", "project_code"])


def downgrade() -> None:
    op.drop_index("ix_agents_namespace_project", table_name="agents")
    op.drop_table("agents")
    op.drop_table("tokens")
    op.drop_index("ix_admin_permissions_role_id", table_name="admin_permissions")
    op.drop_table("admin_permissions")
    op.drop_index("ix_resource_permissions_role_id", table_name="resource_permissions")
    op.drop_table("resource_permissions")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("users")
    op.drop_index("ix_page_drafts_namespace_project_new_path", table_name="page_drafts")
    op.drop_index("ix_page_drafts_namespace_project", table_name="page_drafts")
    op.drop_table("page_drafts")
    op.drop_index("ix_pages_namespace_project_path", table_name="pages")
    op.drop_index("ix_pages_namespace_project", table_name="pages")
    op.drop_table("pages")
    op.drop_index("ix_redirect_drafts_namespace_project_new_source", table_name="redirect_drafts")
    op.drop_index("ix_redirect_drafts_namespace_project", table_name="redirect_drafts")
    op.drop_table("redirect_drafts")
    op.drop_index("ix_redirects_namespace_project_source", table_name="redirects")
    op.drop_index("ix_redirects_namespace_project", table_name="redirects")
    op.drop_table("redirects")
    op.drop_index("ix_projects_namespace_code", table_name="projects")
    op.drop_table("projects")
    op.drop_table("namespaces")
