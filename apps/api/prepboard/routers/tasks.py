from __future__ import annotations

import os

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.access import BoardRole, authorize
from prepboard.boards.service import get_board
from prepboard.deps import get_blob_store, get_broadcaster, get_current_user, get_db, valid_id
from prepboard.errors import NotFound
from prepboard.models import Task, User
from prepboard.ordering import engine as ordering
from prepboard.realtime.broadcaster import RoomBroadcaster
from prepboard.schemas import (
  ChecklistCreateIn,
  ChecklistOut,
  ChecklistUpdateIn,
  ColumnType,
  CommentIn,
  CommentOut,
  Difficulty,
  Priority,
  ReorderIn,
  TaskCreateIn,
  TaskMoveIn,
  TaskOut,
  TaskStatsOut,
  TaskStatus,
  TaskUpdateIn,
  TimeLogIn,
  TimeLogOut,
)
from prepboard.storage.blobs import LocalBlobStore
from prepboard.tasks import service as tasks
from prepboard.tasks.service import TaskFilters

router = APIRouter(tags=["tasks"])


async def _task_for(db: AsyncSession, task_id: str, user: User, role: BoardRole) -> tuple[Task, BoardRole]:
  t = await tasks.get_task(db, valid_id(task_id, "task id"))
  m = await authorize(db, user_id=user.id, board_id=t.board_id, required=role)
  return t, BoardRole(m.role)


async def _board_for(db: AsyncSession, board_id: str, user: User, role: BoardRole) -> str:
  b = await get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=role)
  return b.id


@router.post("/tasks", response_model=TaskOut)
async def create_task(
  payload: TaskCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskOut:
  payload.boardId = await _board_for(db, payload.boardId, user, BoardRole.member)
  t = await tasks.create_task(db, user=user, payload=payload)
  out = await tasks.task_view(db, t)
  await bc.broadcast(t.board_id, "created", out.model_dump())
  return out


@router.get("/tasks/board/{board_id}", response_model=list[TaskOut])
async def list_tasks(
  board_id: str,
  type: str | None = None,
  difficulty: Difficulty | None = None,
  priority: Priority | None = None,
  status: TaskStatus | None = None,
  assignee: str | None = None,
  column: ColumnType | None = None,
  search: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  bid = await _board_for(db, board_id, user, BoardRole.viewer)
  filters = TaskFilters(
    type=type,
    difficulty=difficulty,
    priority=priority,
    status=status,
    assignee=assignee,
    column=column,
    search=search,
  )
  return await tasks.task_views(db, await tasks.list_tasks(db, bid, filters))


@router.get("/tasks/board/{board_id}/archived", response_model=list[TaskOut])
async def list_archived_tasks(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  bid = await _board_for(db, board_id, user, BoardRole.viewer)
  return await tasks.task_views(db, await tasks.list_archived_tasks(db, bid))


@router.get("/tasks/board/{board_id}/stats", response_model=TaskStatsOut)
async def task_stats(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskStatsOut:
  bid = await _board_for(db, board_id, user, BoardRole.viewer)
  return await tasks.task_stats(db, bid)


@router.post("/tasks/reorder")
async def reorder_tasks(
  payload: ReorderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> dict:
  bid = await _board_for(db, payload.boardId, user, BoardRole.member)
  touched = await ordering.reorder(db, board_id=bid, items=payload.tasks, actor_id=user.id, broadcaster=bc)
  refs = [ordering.order_ref(t) for t in touched]
  await bc.broadcast(bid, "reordered", {"tasks": refs})
  return {"ok": True, "tasks": refs}


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.viewer)
  return await tasks.task_view(db, t)


@router.put("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  t = await tasks.update_task(db, t, user=user, payload=payload)
  out = await tasks.task_view(db, t)
  await bc.broadcast(t.board_id, "updated", out.model_dump())
  return out


@router.delete("/tasks/{task_id}")
async def delete_task(
  task_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
  blobs: LocalBlobStore = Depends(get_blob_store),
) -> dict:
  t, _ = await _task_for(db, task_id, user, BoardRole.admin)
  board_id, tid = t.board_id, t.id
  await tasks.delete_task(db, t, user=user, blobs=blobs)
  await bc.broadcast(board_id, "deleted", {"taskId": tid})
  return {"ok": True}


@router.post("/tasks/{task_id}/move", response_model=TaskOut)
async def move_task(
  task_id: str,
  payload: TaskMoveIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  if t.is_archived:
    raise NotFound("Task not found")
  touched = await ordering.move_task(
    db, t, actor_id=user.id, column=payload.column, position=payload.position, version=payload.version
  )
  out = await tasks.task_view(db, t)
  await bc.broadcast(t.board_id, "reordered", {"tasks": [ordering.order_ref(x) for x in touched], "task": out.model_dump()})
  return out


async def _set_archived(task_id: str, archived: bool, user: User, db: AsyncSession, bc: RoomBroadcaster) -> TaskOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  t = await tasks.set_task_archived(db, t, user=user, archived=archived)
  out = await tasks.task_view(db, t)
  await bc.broadcast(t.board_id, "archived" if archived else "restored", out.model_dump())
  return out


@router.post("/tasks/{task_id}/archive", response_model=TaskOut)
async def archive_task(
  task_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskOut:
  return await _set_archived(task_id, True, user, db, bc)


@router.post("/tasks/{task_id}/restore", response_model=TaskOut)
async def restore_task(
  task_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskOut:
  return await _set_archived(task_id, False, user, db, bc)


@router.post("/tasks/{task_id}/comments", response_model=CommentOut)
async def add_comment(
  task_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> CommentOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  c = await tasks.add_comment(db, t, user=user, text=payload.text)
  out = tasks.comment_out(c, user.name)
  await bc.broadcast(t.board_id, "commented", out.model_dump())
  return out


@router.put("/tasks/{task_id}/comments/{comment_id}", response_model=CommentOut)
async def edit_comment(
  task_id: str,
  comment_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> CommentOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  c = await tasks.get_comment(db, t, valid_id(comment_id, "comment id"))
  c = await tasks.edit_comment(db, t, c, user=user, text=payload.text)
  out = tasks.comment_out(c, user.name)
  await bc.broadcast(t.board_id, "commentUpdated", out.model_dump())
  return out


@router.delete("/tasks/{task_id}/comments/{comment_id}")
async def delete_comment(
  task_id: str,
  comment_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> dict:
  t, role = await _task_for(db, task_id, user, BoardRole.member)
  c = await tasks.get_comment(db, t, valid_id(comment_id, "comment id"))
  await tasks.delete_comment(db, t, c, user=user, role=role)
  await bc.broadcast(t.board_id, "commentDeleted", {"taskId": t.id, "commentId": c.id})
  return {"ok": True}


@router.post("/tasks/{task_id}/checklist", response_model=ChecklistOut)
async def add_checklist_item(
  task_id: str,
  payload: ChecklistCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> ChecklistOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  i = await tasks.add_checklist_item(db, t, user=user, payload=payload)
  out = tasks.checklist_out(i)
  await bc.broadcast(t.board_id, "checklistAdded", out.model_dump())
  return out


@router.put("/tasks/{task_id}/checklist/{item_id}", response_model=ChecklistOut)
async def update_checklist_item(
  task_id: str,
  item_id: str,
  payload: ChecklistUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> ChecklistOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  i = await tasks.get_checklist_item(db, t, valid_id(item_id, "checklist item id"))
  i = await tasks.update_checklist_item(db, t, i, user=user, payload=payload)
  out = tasks.checklist_out(i)
  await bc.broadcast(t.board_id, "checklistUpdated", out.model_dump())
  return out


@router.delete("/tasks/{task_id}/checklist/{item_id}")
async def delete_checklist_item(
  task_id: str,
  item_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> dict:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  i = await tasks.get_checklist_item(db, t, valid_id(item_id, "checklist item id"))
  await tasks.delete_checklist_item(db, t, i, user=user)
  await bc.broadcast(t.board_id, "checklistDeleted", {"taskId": t.id, "itemId": i.id})
  return {"ok": True}


@router.post("/tasks/{task_id}/log-time", response_model=TimeLogOut)
async def log_time(
  task_id: str,
  payload: TimeLogIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TimeLogOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  entry = await tasks.log_time(db, t, user=user, payload=payload)
  out = TimeLogOut(id=entry.id, userId=entry.user_id, minutes=entry.minutes, description=entry.description, loggedAt=entry.logged_at)
  await bc.broadcast(t.board_id, "timeLogged", {"taskId": t.id, "timeLog": out.model_dump(), "timeSpent": t.time_spent_minutes})
  return out


@router.post("/tasks/{task_id}/attachments", response_model=TaskOut)
async def upload_attachment(
  task_id: str,
  file: UploadFile = File(...),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
  blobs: LocalBlobStore = Depends(get_blob_store),
) -> TaskOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  data = await file.read(blobs.max_bytes + 1)
  await tasks.add_attachment(
    db, t, user=user, filename=file.filename or "upload", content_type=file.content_type, data=data, blobs=blobs
  )
  out = await tasks.task_view(db, t)
  await bc.broadcast(t.board_id, "updated", out.model_dump())
  return out


@router.delete("/tasks/{task_id}/attachments/{attachment_id}", response_model=TaskOut)
async def delete_attachment(
  task_id: str,
  attachment_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
  blobs: LocalBlobStore = Depends(get_blob_store),
) -> TaskOut:
  t, _ = await _task_for(db, task_id, user, BoardRole.member)
  a = await tasks.get_attachment(db, valid_id(attachment_id, "attachment id"))
  if a.task_id != t.id:
    raise NotFound("Attachment not found")
  await tasks.delete_attachment(db, t, a, user=user, blobs=blobs)
  out = await tasks.task_view(db, t)
  await bc.broadcast(t.board_id, "updated", out.model_dump())
  return out


@router.get("/attachments/{attachment_id}")
async def download_attachment(
  attachment_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  blobs: LocalBlobStore = Depends(get_blob_store),
) -> FileResponse:
  a = await tasks.get_attachment(db, valid_id(attachment_id, "attachment id"))
  t = await tasks.get_task(db, a.task_id)
  await authorize(db, user_id=user.id, board_id=t.board_id, required=BoardRole.viewer)
  path = blobs.path_for(a.storage_key)
  if not os.path.exists(path):
    raise NotFound("Attachment content missing")
  return FileResponse(path=path, media_type=a.mime, filename=a.name)
