from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.access import BoardRole
from prepboard.audit import write_audit
from prepboard.boards.defaults import GENERAL_TASK_TYPE
from prepboard.errors import Forbidden, InvalidInput, NotFound
from prepboard.models import (
  Attachment,
  BoardMember,
  BoardTaskType,
  ChecklistItem,
  Comment,
  Task,
  TaskAssignee,
  TimeLog,
  User,
)
from prepboard.ordering.engine import check_version, compact_column, next_order, place_task
from prepboard.schemas import (
  AssigneeOut,
  AttachmentOut,
  ChecklistCreateIn,
  ChecklistOut,
  ChecklistUpdateIn,
  CommentOut,
  TaskCreateIn,
  TaskOut,
  TaskStatsOut,
  TaskUpdateIn,
  TimeLogIn,
  TimeLogOut,
)
from prepboard.storage.blobs import LocalBlobStore
from prepboard.tasks.status import apply_status

logger = logging.getLogger(__name__)


def _now() -> datetime:
  return datetime.now(timezone.utc)


@dataclass
class TaskFilters:
  type: str | None = None
  difficulty: str | None = None
  priority: str | None = None
  status: str | None = None
  assignee: str | None = None
  column: str | None = None
  search: str | None = None


async def get_task(db: AsyncSession, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFound("Task not found")
  return t


async def _validate_type(db: AsyncSession, board_id: str, task_type: str) -> None:
  if task_type == GENERAL_TASK_TYPE:
    return
  res = await db.execute(
    select(BoardTaskType.id).where(
      BoardTaskType.board_id == board_id,
      BoardTaskType.name == task_type,
      BoardTaskType.is_active.is_(True),
    )
  )
  if res.first() is None:
    raise InvalidInput(f"Invalid task type '{task_type}' for this board")


async def _validate_assignees(db: AsyncSession, board_id: str, user_ids: list[str]) -> list[str]:
  wanted = list(dict.fromkeys(user_ids))
  if not wanted:
    return []
  res = await db.execute(select(BoardMember.user_id).where(BoardMember.board_id == board_id, BoardMember.user_id.in_(wanted)))
  members = set(res.scalars().all())
  strangers = [u for u in wanted if u not in members]
  if strangers:
    raise InvalidInput("Assignees must be board members")
  return wanted


async def _set_assignees(db: AsyncSession, t: Task, user_ids: list[str]) -> None:
  res = await db.execute(select(TaskAssignee).where(TaskAssignee.task_id == t.id))
  current = {a.user_id: a for a in res.scalars().all()}
  for uid, a in current.items():
    if uid not in user_ids:
      await db.delete(a)
  for uid in user_ids:
    if uid not in current:
      db.add(TaskAssignee(task_id=t.id, user_id=uid))


async def task_views(db: AsyncSession, tasks: list[Task]) -> list[TaskOut]:
  """Serialize tasks with their child collections, one query per collection."""
  if not tasks:
    return []
  ids = [t.id for t in tasks]
  assignees: dict[str, list[AssigneeOut]] = {}
  ares = await db.execute(
    select(TaskAssignee, User)
    .join(User, User.id == TaskAssignee.user_id)
    .where(TaskAssignee.task_id.in_(ids))
    .order_by(TaskAssignee.assigned_at.asc())
  )
  for a, u in ares.all():
    assignees.setdefault(a.task_id, []).append(AssigneeOut(userId=u.id, name=u.name, email=u.email, assignedAt=a.assigned_at))

  comments: dict[str, list[CommentOut]] = {}
  cres = await db.execute(
    select(Comment, User.name)
    .join(User, User.id == Comment.author_id, isouter=True)
    .where(Comment.task_id.in_(ids))
    .order_by(Comment.created_at.asc())
  )
  for c, author_name in cres.all():
    comments.setdefault(c.task_id, []).append(comment_out(c, author_name))

  checklist: dict[str, list[ChecklistOut]] = {}
  kres = await db.execute(
    select(ChecklistItem).where(ChecklistItem.task_id.in_(ids)).order_by(ChecklistItem.position.asc(), ChecklistItem.created_at.asc())
  )
  for i in kres.scalars().all():
    checklist.setdefault(i.task_id, []).append(checklist_out(i))

  logs: dict[str, list[TimeLogOut]] = {}
  lres = await db.execute(select(TimeLog).where(TimeLog.task_id.in_(ids)).order_by(TimeLog.logged_at.asc()))
  for entry in lres.scalars().all():
    logs.setdefault(entry.task_id, []).append(
      TimeLogOut(id=entry.id, userId=entry.user_id, minutes=entry.minutes, description=entry.description, loggedAt=entry.logged_at)
    )

  files: dict[str, list[AttachmentOut]] = {}
  fres = await db.execute(select(Attachment).where(Attachment.task_id.in_(ids)).order_by(Attachment.uploaded_at.asc()))
  for a in fres.scalars().all():
    files.setdefault(a.task_id, []).append(attachment_out(a))

  now = _now()
  out: list[TaskOut] = []
  for t in tasks:
    items = checklist.get(t.id, [])
    done = sum(1 for i in items if i.completed)
    out.append(
      TaskOut(
        id=t.id,
        boardId=t.board_id,
        title=t.title,
        description=t.description,
        type=t.type,
        difficulty=t.difficulty,
        priority=t.priority,
        company=t.company,
        tags=list(t.tags or []),
        labels=list(t.labels or []),
        column=t.column_type,
        order=t.order_index,
        createdBy=t.created_by,
        assignees=assignees.get(t.id, []),
        dueDate=t.due_date,
        startDate=t.start_date,
        estimatedTime=t.estimated_minutes,
        timeSpent=t.time_spent_minutes,
        timeLogs=logs.get(t.id, []),
        attachments=files.get(t.id, []),
        comments=comments.get(t.id, []),
        checklist=items,
        status=t.status,
        completedAt=t.completed_at,
        isArchived=t.is_archived,
        archivedAt=t.archived_at,
        version=t.version,
        createdAt=t.created_at,
        updatedAt=t.updated_at,
        progress=round(done * 100 / len(items)) if items else 0,
        isOverdue=is_overdue(t, now=now),
      )
    )
  return out


async def task_view(db: AsyncSession, t: Task) -> TaskOut:
  return (await task_views(db, [t]))[0]


def is_overdue(t: Task, *, now: datetime | None = None) -> bool:
  if t.due_date is None or t.status == "Completed":
    return False
  return t.due_date < (now or _now())


def comment_out(c: Comment, author_name: str | None = None) -> CommentOut:
  return CommentOut(
    id=c.id,
    taskId=c.task_id,
    authorId=c.author_id,
    authorName=author_name,
    text=c.text,
    createdAt=c.created_at,
    updatedAt=c.updated_at,
  )


def checklist_out(i: ChecklistItem) -> ChecklistOut:
  return ChecklistOut(id=i.id, taskId=i.task_id, text=i.text, completed=i.completed, completedAt=i.completed_at, order=i.position)


def attachment_out(a: Attachment) -> AttachmentOut:
  return AttachmentOut(
    id=a.id,
    taskId=a.task_id,
    name=a.name,
    url=a.url,
    type=a.mime,
    size=a.size_bytes,
    uploadedBy=a.uploaded_by,
    uploadedAt=a.uploaded_at,
  )


async def create_task(db: AsyncSession, *, user: User, payload: TaskCreateIn) -> Task:
  await _validate_type(db, payload.boardId, payload.type)
  assignee_ids = await _validate_assignees(db, payload.boardId, payload.assignees)
  t = Task(
    board_id=payload.boardId,
    column_type=payload.column,
    order_index=await next_order(db, payload.boardId, payload.column),
    title=payload.title,
    description=payload.description or "",
    type=payload.type,
    difficulty=payload.difficulty,
    priority=payload.priority,
    company=payload.company or "",
    tags=[s.strip() for s in payload.tags if s.strip()],
    labels=[lab.model_dump() for lab in payload.labels],
    created_by=user.id,
    due_date=payload.dueDate,
    start_date=payload.startDate,
    estimated_minutes=payload.estimatedTime,
    time_spent_minutes=0,
    status=payload.status,
    version=0,
  )
  apply_status(t)
  db.add(t)
  await db.flush()
  for uid in assignee_ids:
    db.add(TaskAssignee(task_id=t.id, user_id=uid))
  await write_audit(
    db,
    event_type="task.created",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"title": t.title, "column": t.column_type, "order": t.order_index},
  )
  await db.commit()
  return t


async def update_task(db: AsyncSession, t: Task, *, user: User, payload: TaskUpdateIn) -> Task:
  check_version(t, payload.version)
  fields_set = payload.model_fields_set
  if "type" in fields_set and payload.type is not None:
    await _validate_type(db, t.board_id, payload.type)
  assignee_ids = None
  if "assignees" in fields_set and payload.assignees is not None:
    assignee_ids = await _validate_assignees(db, t.board_id, payload.assignees)

  changed: dict = {}
  mapping = [
    ("title", "title"),
    ("description", "description"),
    ("type", "type"),
    ("difficulty", "difficulty"),
    ("priority", "priority"),
    ("company", "company"),
    ("tags", "tags"),
    ("due_date", "dueDate"),
    ("start_date", "startDate"),
    ("estimated_minutes", "estimatedTime"),
    ("status", "status"),
  ]
  for model_attr, field_name in mapping:
    if field_name not in fields_set:
      continue
    val = getattr(payload, field_name)
    if val is None and field_name not in ("dueDate", "startDate"):
      continue
    setattr(t, model_attr, val)
    changed[field_name] = val[:500] if field_name == "description" else val
  if "labels" in fields_set and payload.labels is not None:
    t.labels = [lab.model_dump() for lab in payload.labels]
    changed["labels"] = t.labels
  if assignee_ids is not None:
    await _set_assignees(db, t, assignee_ids)
    changed["assignees"] = assignee_ids

  if "column" in fields_set and payload.column is not None and payload.column != t.column_type:
    changed["column"] = payload.column
    await place_task(db, t, column=payload.column)
  else:
    apply_status(t)

  t.version += 1
  t.updated_at = _now()
  await write_audit(
    db,
    event_type="task.updated",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"version": t.version, "changed": list(changed.keys()), "fields": changed},
  )
  await db.commit()
  return t


async def set_task_archived(db: AsyncSession, t: Task, *, user: User, archived: bool) -> Task:
  if t.is_archived == archived:
    return t
  if archived:
    t.is_archived = True
    t.archived_at = _now()
    await compact_column(db, t.board_id, t.column_type, exclude_id=t.id)
  else:
    # restored tasks go to the end of their column
    t.order_index = await next_order(db, t.board_id, t.column_type)
    t.is_archived = False
    t.archived_at = None
  t.version += 1
  await write_audit(
    db,
    event_type="task.archived" if archived else "task.restored",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"title": t.title},
  )
  await db.commit()
  return t


async def delete_task_records(db: AsyncSession, task_ids: list[str]) -> list[str]:
  """Delete tasks and every task-owned row; returns blob keys to remove once committed."""
  if not task_ids:
    return []
  ares = await db.execute(select(Attachment.storage_key).where(Attachment.task_id.in_(task_ids)))
  blob_keys = list(ares.scalars().all())
  await db.execute(delete(Comment).where(Comment.task_id.in_(task_ids)))
  await db.execute(delete(ChecklistItem).where(ChecklistItem.task_id.in_(task_ids)))
  await db.execute(delete(TimeLog).where(TimeLog.task_id.in_(task_ids)))
  await db.execute(delete(Attachment).where(Attachment.task_id.in_(task_ids)))
  await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id.in_(task_ids)))
  await db.execute(delete(Task).where(Task.id.in_(task_ids)))
  return blob_keys


async def delete_task(db: AsyncSession, t: Task, *, user: User, blobs: LocalBlobStore) -> None:
  blob_keys = await delete_task_records(db, [t.id])
  if not t.is_archived:
    await compact_column(db, t.board_id, t.column_type, exclude_id=t.id)
  await write_audit(
    db,
    event_type="task.deleted",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    actor_id=user.id,
    payload={"title": t.title},
  )
  await db.commit()
  for key in blob_keys:
    blobs.delete(key)


async def add_comment(db: AsyncSession, t: Task, *, user: User, text: str) -> Comment:
  c = Comment(task_id=t.id, author_id=user.id, text=text)
  db.add(c)
  await db.flush()
  await write_audit(
    db,
    event_type="comment.created",
    entity_type="Comment",
    entity_id=c.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"text": text[:500]},
  )
  await db.commit()
  return c


async def get_comment(db: AsyncSession, t: Task, comment_id: str) -> Comment:
  res = await db.execute(select(Comment).where(Comment.id == comment_id, Comment.task_id == t.id))
  c = res.scalar_one_or_none()
  if not c:
    raise NotFound("Comment not found")
  return c


async def edit_comment(db: AsyncSession, t: Task, c: Comment, *, user: User, text: str) -> Comment:
  if c.author_id != user.id:
    raise Forbidden("Only the author can edit this comment")
  c.text = text
  c.updated_at = _now()
  await write_audit(
    db,
    event_type="comment.updated",
    entity_type="Comment",
    entity_id=c.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"text": text[:500]},
  )
  await db.commit()
  return c


async def delete_comment(db: AsyncSession, t: Task, c: Comment, *, user: User, role: BoardRole) -> None:
  if c.author_id != user.id and role < BoardRole.admin:
    raise Forbidden("Only the author or a board admin can delete this comment")
  await db.execute(delete(Comment).where(Comment.id == c.id))
  await write_audit(
    db,
    event_type="comment.deleted",
    entity_type="Comment",
    entity_id=c.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"commentId": c.id},
  )
  await db.commit()


async def add_checklist_item(db: AsyncSession, t: Task, *, user: User, payload: ChecklistCreateIn) -> ChecklistItem:
  res = await db.execute(select(func.max(ChecklistItem.position)).where(ChecklistItem.task_id == t.id))
  max_pos = res.scalar_one()
  pos = (max_pos + 1) if max_pos is not None else 0
  i = ChecklistItem(task_id=t.id, text=payload.text, completed=False, position=pos)
  db.add(i)
  await db.flush()
  await write_audit(
    db, event_type="checklist.created", entity_type="ChecklistItem", entity_id=i.id, board_id=t.board_id, task_id=t.id, actor_id=user.id, payload={}
  )
  await db.commit()
  return i


async def get_checklist_item(db: AsyncSession, t: Task, item_id: str) -> ChecklistItem:
  res = await db.execute(select(ChecklistItem).where(ChecklistItem.id == item_id, ChecklistItem.task_id == t.id))
  i = res.scalar_one_or_none()
  if not i:
    raise NotFound("Checklist item not found")
  return i


async def update_checklist_item(db: AsyncSession, t: Task, i: ChecklistItem, *, user: User, payload: ChecklistUpdateIn) -> ChecklistItem:
  if payload.text is not None:
    i.text = payload.text
  if payload.completed is not None:
    completed = payload.completed
  elif payload.text is None:
    # bare toggle
    completed = not i.completed
  else:
    completed = i.completed
  if completed != i.completed:
    i.completed = completed
    i.completed_at = _now() if completed else None
  await write_audit(
    db,
    event_type="checklist.updated",
    entity_type="ChecklistItem",
    entity_id=i.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"text": i.text[:200], "completed": i.completed},
  )
  await db.commit()
  return i


async def delete_checklist_item(db: AsyncSession, t: Task, i: ChecklistItem, *, user: User) -> None:
  await db.execute(delete(ChecklistItem).where(ChecklistItem.id == i.id))
  await write_audit(
    db,
    event_type="checklist.deleted",
    entity_type="ChecklistItem",
    entity_id=i.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"checklistItemId": i.id},
  )
  await db.commit()


async def log_time(db: AsyncSession, t: Task, *, user: User, payload: TimeLogIn) -> TimeLog:
  if payload.minutes <= 0:
    raise InvalidInput("minutes must be positive")
  entry = TimeLog(task_id=t.id, user_id=user.id, minutes=payload.minutes, description=payload.description or "")
  db.add(entry)
  t.time_spent_minutes = (t.time_spent_minutes or 0) + payload.minutes
  t.version += 1
  await db.flush()
  await write_audit(
    db,
    event_type="task.time_logged",
    entity_type="TimeLog",
    entity_id=entry.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"minutes": payload.minutes, "timeSpent": t.time_spent_minutes},
  )
  await db.commit()
  return entry


async def add_attachment(
  db: AsyncSession,
  t: Task,
  *,
  user: User,
  filename: str,
  content_type: str | None,
  data: bytes,
  blobs: LocalBlobStore,
) -> Attachment:
  blob = blobs.store(filename, content_type, data)
  a = Attachment(
    task_id=t.id,
    name=filename,
    url="",
    mime=blob.type,
    size_bytes=blob.size,
    storage_key=blob.key,
    uploaded_by=user.id,
  )
  db.add(a)
  await db.flush()
  a.url = f"/attachments/{a.id}"
  await write_audit(
    db,
    event_type="attachment.added",
    entity_type="Attachment",
    entity_id=a.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"name": a.name, "size": a.size_bytes},
  )
  try:
    await db.commit()
  except Exception:
    blobs.delete(blob.key)
    raise
  return a


async def get_attachment(db: AsyncSession, attachment_id: str) -> Attachment:
  res = await db.execute(select(Attachment).where(Attachment.id == attachment_id))
  a = res.scalar_one_or_none()
  if not a:
    raise NotFound("Attachment not found")
  return a


async def delete_attachment(db: AsyncSession, t: Task, a: Attachment, *, user: User, blobs: LocalBlobStore) -> None:
  await db.execute(delete(Attachment).where(Attachment.id == a.id))
  await write_audit(
    db,
    event_type="attachment.deleted",
    entity_type="Attachment",
    entity_id=a.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"name": a.name},
  )
  await db.commit()
  blobs.delete(a.storage_key)


async def list_tasks(db: AsyncSession, board_id: str, filters: TaskFilters | None = None) -> list[Task]:
  f = filters or TaskFilters()
  q = select(Task).where(Task.board_id == board_id, Task.is_archived.is_(False))
  if f.type:
    q = q.where(Task.type == f.type)
  if f.difficulty:
    q = q.where(Task.difficulty == f.difficulty)
  if f.priority:
    q = q.where(Task.priority == f.priority)
  if f.status:
    q = q.where(Task.status == f.status)
  if f.column:
    q = q.where(Task.column_type == f.column)
  if f.assignee:
    q = q.where(Task.id.in_(select(TaskAssignee.task_id).where(TaskAssignee.user_id == f.assignee)))
  if f.search and f.search.strip():
    term = f"%{f.search.strip()}%"
    q = q.where(
      or_(
        Task.title.ilike(term),
        Task.description.ilike(term),
        Task.company.ilike(term),
        cast(Task.tags, String).ilike(term),
      )
    )
  q = q.order_by(Task.column_type.asc(), Task.order_index.asc(), Task.created_at.asc())
  res = await db.execute(q)
  return list(res.scalars().all())


async def list_archived_tasks(db: AsyncSession, board_id: str) -> list[Task]:
  res = await db.execute(
    select(Task).where(Task.board_id == board_id, Task.is_archived.is_(True)).order_by(Task.archived_at.desc(), Task.id.asc())
  )
  return list(res.scalars().all())


async def task_stats(db: AsyncSession, board_id: str) -> TaskStatsOut:
  tasks = await list_tasks(db, board_id)
  now = _now()
  by_status = Counter(t.status for t in tasks)
  return TaskStatsOut(
    total=len(tasks),
    byType=dict(Counter(t.type for t in tasks)),
    byDifficulty=dict(Counter(t.difficulty for t in tasks)),
    byPriority=dict(Counter(t.priority for t in tasks)),
    byStatus=dict(by_status),
    byColumn=dict(Counter(t.column_type for t in tasks)),
    overdue=sum(1 for t in tasks if is_overdue(t, now=now)),
    completed=by_status.get("Completed", 0),
    inProgress=by_status.get("In Progress", 0),
    blocked=by_status.get("Blocked", 0),
    totalTimeSpent=sum(t.time_spent_minutes or 0 for t in tasks),
    totalEstimatedTime=sum(t.estimated_minutes or 0 for t in tasks),
  )
