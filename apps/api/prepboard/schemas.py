from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import field_validator

ColumnType = Literal["todo", "inprogress", "review", "done", "backlog", "blocked"]
Difficulty = Literal["Easy", "Medium", "Hard", "Very Hard"]
Priority = Literal["Low", "Medium", "High", "Critical"]
TaskStatus = Literal["Not Started", "In Progress", "In Review", "Blocked", "Completed", "On Hold", "Cancelled"]
Role = Literal["admin", "member", "viewer"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    value = datetime.fromisoformat(s.replace("Z", "+00:00"))
  if isinstance(value, datetime):
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
  return value


def _strip_required(value: object) -> object:
  if isinstance(value, str):
    return value.strip()
  return value


class UserRefOut(BaseModel):
  id: str
  email: str
  name: str
  avatarUrl: str | None = None


class MemberOut(BaseModel):
  userId: str
  email: str
  name: str
  avatarUrl: str | None = None
  role: Role
  joinedAt: datetime


class ColumnIn(BaseModel):
  title: str = Field(min_length=1, max_length=50)
  type: ColumnType
  order: int | None = Field(default=None, ge=0)
  color: str | None = None
  wipLimit: int | None = Field(default=None, ge=0)

  @field_validator("title", mode="before")
  @classmethod
  def _strip_title(cls, v: object) -> object:
    return _strip_required(v)


class ColumnOut(BaseModel):
  id: str
  title: str
  type: ColumnType
  order: int
  color: str | None = None
  wipLimit: int | None = None


class TaskTypeIn(BaseModel):
  name: str = Field(min_length=1, max_length=50)
  color: str = "#6B7280"
  icon: str = "📝"
  description: str = Field(default="", max_length=200)
  order: int | None = Field(default=None, ge=0)
  isActive: bool = True

  @field_validator("name", mode="before")
  @classmethod
  def _strip_name(cls, v: object) -> object:
    return _strip_required(v)


class TaskTypeUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=50)
  color: str | None = None
  icon: str | None = None
  description: str | None = Field(default=None, max_length=200)
  order: int | None = Field(default=None, ge=0)
  isActive: bool | None = None

  @field_validator("name", mode="before")
  @classmethod
  def _strip_name(cls, v: object) -> object:
    return _strip_required(v)


class TaskTypeOut(BaseModel):
  id: str
  boardId: str
  name: str
  color: str
  icon: str
  description: str
  order: int
  isActive: bool


class LabelIn(BaseModel):
  name: str = Field(min_length=1, max_length=50)
  color: str | None = None
  isActive: bool = True

  @field_validator("name", mode="before")
  @classmethod
  def _strip_name(cls, v: object) -> object:
    return _strip_required(v)


class LabelOut(BaseModel):
  id: str
  name: str
  color: str | None = None
  isActive: bool


class BoardCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=100)
  description: str = Field(default="", max_length=500)
  columns: list[ColumnIn] | None = None
  taskTypes: list[TaskTypeIn] | None = None
  labels: list[LabelIn] | None = None
  settings: dict[str, Any] | None = None

  @field_validator("title", mode="before")
  @classmethod
  def _strip_title(cls, v: object) -> object:
    return _strip_required(v)


class BoardUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=100)
  description: str | None = Field(default=None, max_length=500)
  settings: dict[str, Any] | None = None
  columns: list[ColumnIn] | None = Field(default=None, min_length=1)
  labels: list[LabelIn] | None = None

  @field_validator("title", mode="before")
  @classmethod
  def _strip_title(cls, v: object) -> object:
    return _strip_required(v)


class BoardOut(BaseModel):
  id: str
  title: str
  description: str
  ownerId: str
  inviteCode: str
  myRole: Role | None = None
  columns: list[ColumnOut]
  taskTypes: list[TaskTypeOut]
  labels: list[LabelOut]
  members: list[MemberOut]
  settings: dict[str, Any]
  isArchived: bool
  archivedAt: datetime | None = None
  createdAt: datetime
  updatedAt: datetime


class InviteOut(BaseModel):
  inviteCode: str


class RoleUpdateIn(BaseModel):
  role: Role


class TaskLabelIn(BaseModel):
  name: str = Field(min_length=1, max_length=50)
  color: str | None = None


class TaskCreateIn(BaseModel):
  boardId: str
  title: str = Field(min_length=1, max_length=200)
  description: str = Field(default="", max_length=5000)
  type: str = "General"
  difficulty: Difficulty = "Medium"
  priority: Priority = "Medium"
  company: str = Field(default="", max_length=100)
  tags: list[str] = Field(default_factory=list)
  labels: list[TaskLabelIn] = Field(default_factory=list)
  column: ColumnType = "todo"
  assignees: list[str] = Field(default_factory=list)
  dueDate: datetime | None = None
  startDate: datetime | None = None
  estimatedTime: int = Field(default=0, ge=0)
  status: TaskStatus = "Not Started"

  @field_validator("title", mode="before")
  @classmethod
  def _strip_title(cls, v: object) -> object:
    return _strip_required(v)

  @field_validator("dueDate", "startDate", mode="before")
  @classmethod
  def _dates_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=200)
  description: str | None = Field(default=None, max_length=5000)
  type: str | None = None
  difficulty: Difficulty | None = None
  priority: Priority | None = None
  company: str | None = Field(default=None, max_length=100)
  tags: list[str] | None = None
  labels: list[TaskLabelIn] | None = None
  column: ColumnType | None = None
  assignees: list[str] | None = None
  dueDate: datetime | None = None
  startDate: datetime | None = None
  estimatedTime: int | None = Field(default=None, ge=0)
  status: TaskStatus | None = None
  version: int | None = None

  @field_validator("title", mode="before")
  @classmethod
  def _strip_title(cls, v: object) -> object:
    return _strip_required(v)

  @field_validator("dueDate", "startDate", mode="before")
  @classmethod
  def _dates_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskMoveIn(BaseModel):
  column: ColumnType
  position: int | None = Field(default=None, ge=0)
  version: int | None = None


class ReorderItemIn(BaseModel):
  taskId: str
  column: ColumnType
  position: int = Field(ge=0)
  version: int | None = None


class ReorderIn(BaseModel):
  boardId: str
  tasks: list[ReorderItemIn] = Field(min_length=1)


class CommentIn(BaseModel):
  text: str = Field(min_length=1, max_length=2000)

  @field_validator("text", mode="before")
  @classmethod
  def _strip_text(cls, v: object) -> object:
    return _strip_required(v)


class CommentOut(BaseModel):
  id: str
  taskId: str
  authorId: str
  authorName: str | None = None
  text: str
  createdAt: datetime
  updatedAt: datetime | None = None


class ChecklistCreateIn(BaseModel):
  text: str = Field(min_length=1, max_length=500)

  @field_validator("text", mode="before")
  @classmethod
  def _strip_text(cls, v: object) -> object:
    return _strip_required(v)


class ChecklistUpdateIn(BaseModel):
  text: str | None = Field(default=None, min_length=1, max_length=500)
  completed: bool | None = None


class ChecklistOut(BaseModel):
  id: str
  taskId: str
  text: str
  completed: bool
  completedAt: datetime | None = None
  order: int


class TimeLogIn(BaseModel):
  minutes: int = Field(gt=0)
  description: str = Field(default="", max_length=500)


class TimeLogOut(BaseModel):
  id: str
  userId: str
  minutes: int
  description: str
  loggedAt: datetime


class AttachmentOut(BaseModel):
  id: str
  taskId: str
  name: str
  url: str
  type: str
  size: int
  uploadedBy: str
  uploadedAt: datetime


class AssigneeOut(BaseModel):
  userId: str
  name: str | None = None
  email: str | None = None
  assignedAt: datetime


class TaskOut(BaseModel):
  id: str
  boardId: str
  title: str
  description: str
  type: str
  difficulty: Difficulty
  priority: Priority
  company: str
  tags: list[str]
  labels: list[dict[str, Any]]
  column: ColumnType
  order: int
  createdBy: str
  assignees: list[AssigneeOut] = Field(default_factory=list)
  dueDate: datetime | None = None
  startDate: datetime | None = None
  estimatedTime: int
  timeSpent: int
  timeLogs: list[TimeLogOut] = Field(default_factory=list)
  attachments: list[AttachmentOut] = Field(default_factory=list)
  comments: list[CommentOut] = Field(default_factory=list)
  checklist: list[ChecklistOut] = Field(default_factory=list)
  status: TaskStatus
  completedAt: datetime | None = None
  isArchived: bool
  archivedAt: datetime | None = None
  version: int
  createdAt: datetime
  updatedAt: datetime
  progress: int = 0
  isOverdue: bool = False


class TaskStatsOut(BaseModel):
  total: int
  byType: dict[str, int]
  byDifficulty: dict[str, int]
  byPriority: dict[str, int]
  byStatus: dict[str, int]
  byColumn: dict[str, int]
  overdue: int
  completed: int
  inProgress: int
  blocked: int
  totalTimeSpent: int
  totalEstimatedTime: int
