"""initial schema

Revision ID: 202602011000
Revises:
Create Date: 2026-02-01 10:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202602011000"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("principal", sa.String(length=200), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=120)),
        *_timestamps(),
    )

    op.create_table(
        "user_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, unique=True),
        sa.Column(
            "finance_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column(
            "color", sa.String(length=9), nullable=False, server_default="#3b82f6"
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_tag_user_name"),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("location", sa.String(length=200)),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "recurrence_kind",
            sa.Enum(
                "daily",
                "weekdays",
                "weekly",
                "monthly",
                "yearly",
                name="recurrencekind",
            ),
        ),
        sa.Column("recurrence_end", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="ck_event_end_after_start"),
    )
    op.create_index("ix_events_user_start", "events", ["user_id", "start_time"])

    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "text", "list", "code", "drawing", "image", "voice", name="notetype"
            ),
            nullable=False,
            server_default="text",
        ),
        *_timestamps(),
    )

    op.create_table(
        "todos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", sa.Enum("high", "medium", "low", name="todopriority")),
        sa.Column(
            "status",
            sa.Enum("todo", "in_progress", "done", name="todostatus"),
            nullable=False,
            server_default="todo",
        ),
        sa.Column("due_date", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_todos_user_completed", "todos", ["user_id", "completed"])

    op.create_table(
        "subtasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "todo_id",
            sa.Integer(),
            sa.ForeignKey("todos.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    for table, column, target in (
        ("event_tags", "event_id", "events.id"),
        ("note_tags", "note_id", "notes.id"),
        ("todo_tags", "todo_id", "todos.id"),
    ):
        op.create_table(
            table,
            sa.Column(column, sa.Integer(), sa.ForeignKey(target), primary_key=True),
            sa.Column(
                "tag_id", sa.Integer(), sa.ForeignKey("tags.id"), primary_key=True
            ),
        )


def downgrade():
    op.drop_table("todo_tags")
    op.drop_table("note_tags")
    op.drop_table("event_tags")
    op.drop_table("subtasks")
    op.drop_index("ix_todos_user_completed", table_name="todos")
    op.drop_table("todos")
    op.drop_table("notes")
    op.drop_index("ix_events_user_start", table_name="events")
    op.drop_table("events")
    op.drop_table("tags")
    op.drop_table("user_settings")
    op.drop_table("users")
