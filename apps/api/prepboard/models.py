from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
  """Timezone-aware timestamp that also round-trips through SQLite as UTC."""

  impl = DateTime
  cache_ok = True

  def __init__(self) -> None:
    super().__init__(timezone=True)

  def process_bind_param(self, value, dialect):
    if value is None:
      return None
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

  def process_result_value(self, value, dialect):
    if value is not None and value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


class ApiToken(Base):
  __tablename__ = "api_tokens"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  token_hint: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
  last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  invite_code: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
  archived_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False, index=True)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


class BoardMember(Base):
  __tablename__ = "board_members"
  __table_args__ = (UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False)
  joined_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class BoardColumn(Base):
  __tablename__ = "board_columns"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  color: Mapped[str | None] = mapped_column(String, nullable=True)
  wip_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)


class BoardTaskType(Base):
  __tablename__ = "board_task_types"
  __table_args__ = (UniqueConstraint("board_id", "name", name="ux_board_task_types_board_name"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  color: Mapped[str] = mapped_column(String, nullable=False, default="#6B7280")
  icon: Mapped[str] = mapped_column(String, nullable=False, default="📝")
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class BoardLabel(Base):
  __tablename__ = "board_labels"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  color: Mapped[str | None] = mapped_column(String, nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Task(Base):
  __tablename__ = "tasks"
  __table_args__ = (
    Index("ix_tasks_board_column", "board_id", "column_type"),
    Index("ix_tasks_board_archived", "board_id", "is_archived"),
  )

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  column_type: Mapped[str] = mapped_column(String, nullable=False, default="todo")
  order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  type: Mapped[str] = mapped_column(String, nullable=False, default="General")
  difficulty: Mapped[str] = mapped_column(String, nullable=False, default="Medium")
  priority: Mapped[str] = mapped_column(String, nullable=False, default="Medium")
  company: Mapped[str] = mapped_column(String, nullable=False, default="")
  tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  labels: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
  created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  due_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True, index=True)
  start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  estimated_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  time_spent_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  status: Mapped[str] = mapped_column(String, nullable=False, default="Not Started")
  completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  archived_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False, index=True)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


class TaskAssignee(Base):
  __tablename__ = "task_assignees"
  __table_args__ = (UniqueConstraint("task_id", "user_id", name="ux_task_assignee_task_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class Comment(Base):
  __tablename__ = "comments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  text: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
  updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class ChecklistItem(Base):
  __tablename__ = "checklist_items"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  text: Mapped[str] = mapped_column(Text, nullable=False)
  completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class TimeLog(Base):
  __tablename__ = "time_logs"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  minutes: Mapped[int] = mapped_column(Integer, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  logged_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class Attachment(Base):
  __tablename__ = "attachments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  url: Mapped[str] = mapped_column(String, nullable=False)
  mime: Mapped[str] = mapped_column(String, nullable=False)
  size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
  storage_key: Mapped[str] = mapped_column(String, nullable=False)
  uploaded_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  uploaded_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  task_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  actor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
