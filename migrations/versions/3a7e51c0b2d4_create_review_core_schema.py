"""create review core schema

Revision ID: 3a7e51c0b2d4
Revises: 
Create Date: 2026-10-16 09:00:00

Purpose:
- introduce profiles, ideas, comments, notifications and openai_logs
- add status/role/type check constraints and the lookup indexes used by the api

Touched tables / objects:
- profiles, ideas, comments, notifications, openai_logs
- required extensions: pgcrypto (gen_random_uuid)

Operational notes:
- profiles.id is the identity provider's user id; rows are created by the api on first login
- deleting an idea cascades to its comments and notifications
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "3a7e51c0b2d4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("create extension if not exists pgcrypto;")

    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default=sa.text("'owner'")),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("role in ('owner', 'admin')", name="ck_profiles_role"),
    )

    op.create_table(
        "ideas",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status in ('draft', 'submitted', 'approved', 'rejected')",
            name="ck_ideas_status",
        ),
    )
    op.create_index("idx_ideas_owner_id", "ideas", ["owner_id"])
    op.create_index("idx_ideas_status", "ideas", ["status"])

    op.create_table(
        "comments",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("idea_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_comments_idea_id", "comments", ["idea_id"])
    op.create_index("idx_comments_author_id", "comments", ["author_id"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("idea_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("meta", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "type in ('status_change', 'user_comment', 'admin_comment', 'new_comment')",
            name="ck_notifications_type",
        ),
    )
    op.create_index("idx_notifications_user_id", "notifications", ["user_id"])
    op.create_index("idx_notifications_read", "notifications", ["read"])

    op.create_table(
        "openai_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("response", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_openai_logs_user_id", "openai_logs", ["user_id"])
    op.create_index("idx_openai_logs_created_at", "openai_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_openai_logs_created_at", table_name="openai_logs")
    op.drop_index("idx_openai_logs_user_id", table_name="openai_logs")
    op.drop_index("idx_notifications_read", table_name="notifications")
    op.drop_index("idx_notifications_user_id", table_name="notifications")
    op.drop_index("idx_comments_author_id", table_name="comments")
    op.drop_index("idx_comments_idea_id", table_name="comments")
    op.drop_index("idx_ideas_status", table_name="ideas")
    op.drop_index("idx_ideas_owner_id", table_name="ideas")

    # drop tables in reverse dependency order
    op.drop_table("openai_logs")
    op.drop_table("notifications")
    op.drop_table("comments")
    op.drop_table("ideas")
    op.drop_table("profiles")
