"""tickets, messages, roster and knowledge base

Revision ID: 0001_support_desk
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_support_desk"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "employees",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=64), nullable=False, server_default=sa.text("'other'")),
        sa.Column("permissions", sa.String(length=20), nullable=False, server_default=sa.text("'employee'")),
        *_timestamps(),
        sa.CheckConstraint(
            "permissions in ('super_admin','admin','manager','agent','employee')",
            name="ck_employees_permissions",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=36), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default=sa.text("'fresh'")),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("category", sa.String(length=32), nullable=False, server_default=sa.text("'general'")),
        sa.Column("created_by", sa.String(length=36), nullable=False),
        sa.Column("assigned_to", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("status in ('fresh','in_progress','closed')", name="ck_tickets_status"),
        sa.CheckConstraint("priority in ('low','medium','high','critical')", name="ck_tickets_priority"),
        sa.CheckConstraint(
            "category in ('general','billing','technical','feedback','account','feature_request','other')",
            name="ck_tickets_category",
        ),
        sa.ForeignKeyConstraint(["assigned_to"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tickets_created_by", "tickets", ["created_by"], unique=False)
    op.create_index("ix_tickets_assigned_to", "tickets", ["assigned_to"], unique=False)
    op.create_index("ix_tickets_assigned_resolved", "tickets", ["assigned_to", "resolved"], unique=False)
    op.create_index("ix_tickets_created_by_updated", "tickets", ["created_by", "updated_at"], unique=False)

    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("ticket_id", sa.String(length=36), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=False),
        sa.Column("sender_type", sa.String(length=16), nullable=False),
        sa.Column("is_system_message", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("sender_type in ('employee','customer')", name="ck_messages_sender_type"),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_ticket_created", "messages", ["ticket_id", "created_at"], unique=False)

    op.create_table(
        "articles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("status", sa.String(length=24), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("category", sa.String(length=24), nullable=False, server_default=sa.text("'general'")),
        sa.Column("is_faq", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("slug", sa.String(length=320), nullable=False),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.String(length=36), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status in ('draft','pending_approval','approved','rejected','archived')",
            name="ck_articles_status",
        ),
        sa.CheckConstraint(
            "category in ('general','product','service','troubleshooting','faq','policy','other')",
            name="ck_articles_category",
        ),
        sa.ForeignKeyConstraint(["created_by"], ["employees.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("ix_articles_created_by", "articles", ["created_by"], unique=False)
    op.create_index("ix_articles_status_updated", "articles", ["status", "updated_at"], unique=False)

    op.create_table(
        "article_tags",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("article_id", sa.String(length=36), nullable=False),
        sa.Column("tag", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("article_id", "tag", name="uq_article_tag"),
    )
    op.create_index("ix_article_tags_article_id", "article_tags", ["article_id"], unique=False)

    op.create_table(
        "article_versions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("article_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("change_summary", sa.String(length=500), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("article_id", "version_number", name="uq_article_version_number"),
    )
    op.create_index("ix_article_versions_article_id", "article_versions", ["article_id"], unique=False)

    op.create_table(
        "approval_requests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("article_id", sa.String(length=36), nullable=False),
        sa.Column("version_id", sa.String(length=36), nullable=False),
        sa.Column("submitted_by", sa.String(length=36), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("reviewed_by", sa.String(length=36), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.CheckConstraint("status in ('pending','approved','rejected')", name="ck_approval_requests_status"),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["article_versions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_approval_requests_article_id", "approval_requests", ["article_id"], unique=False)
    op.create_index(
        "uq_approval_requests_one_pending",
        "approval_requests",
        ["article_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "article_notes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("article_id", sa.String(length=36), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_article_notes_article_id", "article_notes", ["article_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_article_notes_article_id", table_name="article_notes")
    op.drop_table("article_notes")
    op.drop_index("uq_approval_requests_one_pending", table_name="approval_requests")
    op.drop_index("ix_approval_requests_article_id", table_name="approval_requests")
    op.drop_table("approval_requests")
    op.drop_index("ix_article_versions_article_id", table_name="article_versions")
    op.drop_table("article_versions")
    op.drop_index("ix_article_tags_article_id", table_name="article_tags")
    op.drop_table("article_tags")
    op.drop_index("ix_articles_status_updated", table_name="articles")
    op.drop_index("ix_articles_created_by", table_name="articles")
    op.drop_table("articles")
    op.drop_index("ix_messages_ticket_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_tickets_created_by_updated", table_name="tickets")
    op.drop_index("ix_tickets_assigned_resolved", table_name="tickets")
    op.drop_index("ix_tickets_assigned_to", table_name="tickets")
    op.drop_index("ix_tickets_created_by", table_name="tickets")
    op.drop_table("tickets")
    op.drop_table("customers")
    op.drop_table("employees")
