"""Initial schema: entity graph, time ledger, activity trail and notifications.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

NOW = sa.text("CURRENT_TIMESTAMP")


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW))
    return cols


def _fk(name: str, target: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Uuid(), sa.ForeignKey(target), nullable=nullable)


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. People
    # -----------------------------------------------------------------------

    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        sa.Column("avatar_url", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "teams",
        _id(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        _fk("lead_id", "users.id", nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_teams_lead_id", "teams", ["lead_id"])

    op.create_table(
        "team_memberships",
        _id(),
        _fk("team_id", "teams.id"),
        _fk("user_id", "users.id"),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        *_timestamps(),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_membership"),
    )
    op.create_index("ix_team_memberships_team_id", "team_memberships", ["team_id"])
    op.create_index("ix_team_memberships_user_id", "team_memberships", ["user_id"])

    # -----------------------------------------------------------------------
    # 2. Projects
    # -----------------------------------------------------------------------

    op.create_table(
        "projects",
        _id(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="planning"),
        sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("budget", sa.Numeric(15, 2), nullable=True),
        _fk("owner_id", "users.id"),
        *_timestamps(),
        sa.CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="ck_project_dates",
        ),
        sa.CheckConstraint("budget IS NULL OR budget >= 0", name="ck_project_budget"),
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "project_memberships",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("user_id", "users.id"),
        sa.Column("role", sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_membership"),
    )
    op.create_index("ix_project_memberships_project_id", "project_memberships", ["project_id"])
    op.create_index("ix_project_memberships_user_id", "project_memberships", ["user_id"])

    op.create_table(
        "milestones",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_milestones_project_id", "milestones", ["project_id"])

    # -----------------------------------------------------------------------
    # 3. Tasks and what hangs off them
    # -----------------------------------------------------------------------

    op.create_table(
        "tasks",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("milestone_id", "milestones.id", nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="todo"),
        sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
        _fk("assignee_id", "users.id", nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=True),
        sa.Column("blocked_from", sa.String(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("estimated_hours IS NULL OR estimated_hours >= 0", name="ck_task_estimated"),
        sa.CheckConstraint("actual_hours IS NULL OR actual_hours >= 0", name="ck_task_actual"),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_milestone_id", "tasks", ["milestone_id"])
    op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])

    op.create_table(
        "comments",
        _id(),
        _fk("task_id", "tasks.id"),
        _fk("author_id", "users.id"),
        sa.Column("content", sa.String(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("length(content) > 0", name="ck_comment_content"),
    )
    op.create_index("ix_comments_task_id", "comments", ["task_id"])
    op.create_index("ix_comments_author_id", "comments", ["author_id"])

    op.create_table(
        "tags",
        _id(),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("color", sa.String(), nullable=False, server_default="#6B7280"),
        sa.Column("description", sa.String(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "task_tags",
        _id(),
        _fk("task_id", "tasks.id"),
        _fk("tag_id", "tags.id"),
        *_timestamps(updated=False),
        sa.UniqueConstraint("task_id", "tag_id", name="uq_task_tag"),
    )
    op.create_index("ix_task_tags_task_id", "task_tags", ["task_id"])
    op.create_index("ix_task_tags_tag_id", "task_tags", ["tag_id"])

    op.create_table(
        "attachments",
        _id(),
        _fk("task_id", "tasks.id"),
        _fk("uploaded_by", "users.id"),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("original_filename", sa.String(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("storage_locator", sa.String(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_attachments_task_id", "attachments", ["task_id"])
    op.create_index("ix_attachments_uploaded_by", "attachments", ["uploaded_by"])

    op.create_table(
        "time_entries",
        _id(),
        _fk("task_id", "tasks.id"),
        _fk("user_id", "users.id"),
        sa.Column("hours", sa.Numeric(5, 2), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("hours >= 0.25 AND hours <= 24", name="ck_time_entry_hours"),
    )
    op.create_index("ix_time_entries_task_id", "time_entries", ["task_id"])
    op.create_index("ix_time_entries_user_id", "time_entries", ["user_id"])
    op.create_index("ix_time_entries_user_date", "time_entries", ["user_id", "work_date"])

    # -----------------------------------------------------------------------
    # 4. Activity trail and notifications
    # -----------------------------------------------------------------------

    op.create_table(
        "activity_events",
        sa.Column("sequence", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("id", sa.Uuid(), nullable=False),
        _fk("actor_id", "users.id", nullable=True),
        _fk("project_id", "projects.id", nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("detail", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
    )
    op.create_index("ix_activity_events_id", "activity_events", ["id"], unique=True)
    op.create_index("ix_activity_events_actor_id", "activity_events", ["actor_id"])
    op.create_index("ix_activity_events_entity_id", "activity_events", ["entity_id"])
    op.create_index("ix_activity_events_feed", "activity_events", ["created_at", "sequence"])
    op.create_index(
        "ix_activity_events_project_feed", "activity_events", ["project_id", "created_at", "sequence"]
    )

    op.create_table(
        "notifications",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("link", sa.String(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_user_unread", "notifications", ["user_id", "is_read"])

    # -----------------------------------------------------------------------
    # 5. Activity immutability trigger (PostgreSQL)
    # -----------------------------------------------------------------------
    # Permitted: nulling actor_id when a user is deleted, and deletes issued
    # by the relationship enforcer with percival.cascade set for the
    # transaction. Everything else is refused.

    if op.get_bind().dialect.name == "postgresql":
        op.execute("""
            CREATE OR REPLACE FUNCTION prevent_activity_mutation()
            RETURNS TRIGGER AS $$
            BEGIN
                IF TG_OP = 'UPDATE'
                   AND NEW.actor_id IS NULL
                   AND (NEW.sequence, NEW.id, NEW.project_id, NEW.action, NEW.entity_type,
                        NEW.entity_id, NEW.detail::text, NEW.created_at)
                       IS NOT DISTINCT FROM
                       (OLD.sequence, OLD.id, OLD.project_id, OLD.action, OLD.entity_type,
                        OLD.entity_id, OLD.detail::text, OLD.created_at) THEN
                    RETURN NEW;
                END IF;
                IF TG_OP = 'DELETE' AND current_setting('percival.cascade', true) = 'on' THEN
                    RETURN OLD;
                END IF;
                RAISE EXCEPTION 'activity events are append-only';
            END;
            $$ LANGUAGE plpgsql
        """)
        op.execute("""
            CREATE TRIGGER activity_events_immutable
            BEFORE UPDATE OR DELETE ON activity_events
            FOR EACH ROW EXECUTE FUNCTION prevent_activity_mutation()
        """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS activity_events_immutable ON activity_events")
        op.execute("DROP FUNCTION IF EXISTS prevent_activity_mutation()")

    # Reverse dependency order
    for table in (
        "notifications",
        "activity_events",
        "time_entries",
        "attachments",
        "task_tags",
        "tags",
        "comments",
        "tasks",
        "milestones",
        "project_memberships",
        "projects",
        "team_memberships",
        "teams",
        "users",
    ):
        op.drop_table(table)
