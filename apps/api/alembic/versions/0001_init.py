"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
  return sa.Column("id", sa.String(36), primary_key=True)


def _ts(name: str, nullable: bool = False) -> sa.Column:
  return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
  op.create_table(
    "users",
    _id(),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("avatar_url", sa.String(), nullable=True),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "api_tokens",
    _id(),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("token_hash", sa.String(), nullable=False),
    sa.Column("token_hint", sa.String(), nullable=False),
    _ts("created_at"),
    _ts("last_used_at", nullable=True),
    _ts("revoked_at", nullable=True),
  )
  op.create_index("ix_api_tokens_user_id", "api_tokens", ["user_id"], unique=False)
  op.create_index("ix_api_tokens_token_hash", "api_tokens", ["token_hash"], unique=True)

  op.create_table(
    "boards",
    _id(),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("invite_code", sa.String(), nullable=False),
    sa.Column("settings", sa.JSON(), nullable=False),
    sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
    _ts("archived_at", nullable=True),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_boards_owner_id", "boards", ["owner_id"], unique=False)
  op.create_index("ix_boards_invite_code", "boards", ["invite_code"], unique=True)
  op.create_index("ix_boards_is_archived", "boards", ["is_archived"], unique=False)
  op.create_index("ix_boards_created_at", "boards", ["created_at"], unique=False)

  op.create_table(
    "board_members",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    _ts("joined_at"),
    sa.UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),
  )
  op.create_index("ix_board_members_board_id", "board_members", ["board_id"], unique=False)
  op.create_index("ix_board_members_user_id", "board_members", ["user_id"], unique=False)

  op.create_table(
    "board_columns",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("color", sa.String(), nullable=True),
    sa.Column("wip_limit", sa.Integer(), nullable=True),
  )
  op.create_index("ix_board_columns_board_id", "board_columns", ["board_id"], unique=False)

  op.create_table(
    "board_task_types",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=False),
    sa.Column("icon", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    _ts("created_at"),
    sa.UniqueConstraint("board_id", "name", name="ux_board_task_types_board_name"),
  )
  op.create_index("ix_board_task_types_board_id", "board_task_types", ["board_id"], unique=False)

  op.create_table(
    "board_labels",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=True),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("position", sa.Integer(), nullable=False),
  )
  op.create_index("ix_board_labels_board_id", "board_labels", ["board_id"], unique=False)

  op.create_table(
    "tasks",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("column_type", sa.String(), nullable=False),
    sa.Column("order_index", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("difficulty", sa.String(), nullable=False),
    sa.Column("priority", sa.String(), nullable=False),
    sa.Column("company", sa.String(), nullable=False),
    sa.Column("tags", sa.JSON(), nullable=False),
    sa.Column("labels", sa.JSON(), nullable=False),
    sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    _ts("due_date", nullable=True),
    _ts("start_date", nullable=True),
    sa.Column("estimated_minutes", sa.Integer(), nullable=False),
    sa.Column("time_spent_minutes", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    _ts("completed_at", nullable=True),
    sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
    _ts("archived_at", nullable=True),
    sa.Column("version", sa.Integer(), nullable=False),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_tasks_board_id", "tasks", ["board_id"], unique=False)
  op.create_index("ix_tasks_board_column", "tasks", ["board_id", "column_type"], unique=False)
  op.create_index("ix_tasks_board_archived", "tasks", ["board_id", "is_archived"], unique=False)
  op.create_index("ix_tasks_created_by", "tasks", ["created_by"], unique=False)
  op.create_index("ix_tasks_due_date", "tasks", ["due_date"], unique=False)
  op.create_index("ix_tasks_created_at", "tasks", ["created_at"], unique=False)

  op.create_table(
    "task_assignees",
    _id(),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    _ts("assigned_at"),
    sa.UniqueConstraint("task_id", "user_id", name="ux_task_assignee_task_user"),
  )
  op.create_index("ix_task_assignees_task_id", "task_assignees", ["task_id"], unique=False)
  op.create_index("ix_task_assignees_user_id", "task_assignees", ["user_id"], unique=False)

  op.create_table(
    "comments",
    _id(),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("text", sa.Text(), nullable=False),
    _ts("created_at"),
    _ts("updated_at", nullable=True),
  )
  op.create_index("ix_comments_task_id", "comments", ["task_id"], unique=False)

  op.create_table(
    "checklist_items",
    _id(),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("text", sa.Text(), nullable=False),
    sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
    _ts("completed_at", nullable=True),
    sa.Column("position", sa.Integer(), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_checklist_items_task_id", "checklist_items", ["task_id"], unique=False)

  op.create_table(
    "time_logs",
    _id(),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("minutes", sa.Integer(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    _ts("logged_at"),
  )
  op.create_index("ix_time_logs_task_id", "time_logs", ["task_id"], unique=False)

  op.create_table(
    "attachments",
    _id(),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("url", sa.String(), nullable=False),
    sa.Column("mime", sa.String(), nullable=False),
    sa.Column("size_bytes", sa.Integer(), nullable=False),
    sa.Column("storage_key", sa.String(), nullable=False),
    sa.Column("uploaded_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    _ts("uploaded_at"),
  )
  op.create_index("ix_attachments_task_id", "attachments", ["task_id"], unique=False)

  op.create_table(
    "audit_events",
    _id(),
    sa.Column("board_id", sa.String(36), nullable=True),
    sa.Column("task_id", sa.String(36), nullable=True),
    sa.Column("actor_id", sa.String(36), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_audit_events_board_id", "audit_events", ["board_id"], unique=False)


def downgrade() -> None:
  for table in (
    "audit_events",
    "attachments",
    "time_logs",
    "checklist_items",
    "comments",
    "task_assignees",
    "tasks",
    "board_labels",
    "board_task_types",
    "board_columns",
    "board_members",
    "boards",
    "api_tokens",
    "users",
  ):
    op.drop_table(table)
