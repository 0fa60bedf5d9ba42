from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.audit import write_audit
from prepboard.boards.defaults import default_columns, default_labels, default_settings, default_task_types
from prepboard.errors import Conflict, NotFound
from prepboard.membership.invites import unique_invite_code
from prepboard.models import Board, BoardColumn, BoardLabel, BoardMember, BoardTaskType, Task, User
from prepboard.schemas import (
  BoardCreateIn,
  BoardOut,
  BoardUpdateIn,
  ColumnIn,
  ColumnOut,
  LabelIn,
  LabelOut,
  MemberOut,
  TaskTypeIn,
  TaskTypeOut,
  TaskTypeUpdateIn,
)
from prepboard.storage.blobs import LocalBlobStore
from prepboard.tasks.service import delete_task_records

logger = logging.getLogger(__name__)


def _now() -> datetime:
  return datetime.now(timezone.utc)


async def get_board(db: AsyncSession, board_id: str) -> Board:
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise NotFound("Board not found")
  return b


def _ordered(items: list[Any]) -> list[tuple[int, Any]]:
  # explicit order wins; list position breaks ties and fills gaps
  keyed = sorted(enumerate(items), key=lambda p: (p[1].order if p[1].order is not None else p[0], p[0]))
  return [(pos, item) for pos, (_, item) in enumerate(keyed)]


def _add_columns(db: AsyncSession, board_id: str, columns: list[ColumnIn]) -> None:
  for pos, c in _ordered(columns):
    db.add(BoardColumn(board_id=board_id, title=c.title, type=c.type, position=pos, color=c.color, wip_limit=c.wipLimit))


def _add_labels(db: AsyncSession, board_id: str, labels: list[LabelIn]) -> None:
  for pos, lab in enumerate(labels):
    db.add(BoardLabel(board_id=board_id, name=lab.name, color=lab.color, is_active=lab.isActive, position=pos))


async def create_board(db: AsyncSession, *, owner: User, payload: BoardCreateIn) -> Board:
  # Defaults apply once, and only where the caller sent nothing.
  columns = payload.columns or [ColumnIn(**c) for c in default_columns()]
  task_types = payload.taskTypes or [TaskTypeIn(**t) for t in default_task_types()]
  labels = payload.labels or [LabelIn(**lab) for lab in default_labels()]

  seen: set[str] = set()
  for tt in task_types:
    key = tt.name.lower()
    if key in seen:
      raise Conflict(f"Duplicate task type: {tt.name}")
    seen.add(key)

  b = Board(
    title=payload.title,
    description=payload.description or "",
    owner_id=owner.id,
    invite_code=await unique_invite_code(db),
    settings={**default_settings(), **(payload.settings or {})},
    is_archived=False,
  )
  db.add(b)
  await db.flush()
  db.add(BoardMember(board_id=b.id, user_id=owner.id, role="admin"))
  _add_columns(db, b.id, columns)
  for pos, tt in _ordered(task_types):
    db.add(
      BoardTaskType(
        board_id=b.id,
        name=tt.name,
        color=tt.color,
        icon=tt.icon,
        description=tt.description,
        position=tt.order if tt.order is not None else pos,
        is_active=tt.isActive,
      )
    )
  _add_labels(db, b.id, labels)
  await write_audit(
    db,
    event_type="board.created",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=owner.id,
    payload={"title": b.title},
  )
  await db.commit()
  logger.info("board %s created by %s", b.id, owner.id)
  return b


async def list_members(db: AsyncSession, board_id: str) -> list[MemberOut]:
  res = await db.execute(
    select(BoardMember, User)
    .join(User, User.id == BoardMember.user_id)
    .where(BoardMember.board_id == board_id)
    .order_by(BoardMember.joined_at.asc(), BoardMember.id.asc())
  )
  return [
    MemberOut(userId=u.id, email=u.email, name=u.name, avatarUrl=u.avatar_url, role=m.role, joinedAt=m.joined_at)
    for m, u in res.all()
  ]


def task_type_out(t: BoardTaskType) -> TaskTypeOut:
  return TaskTypeOut(
    id=t.id,
    boardId=t.board_id,
    name=t.name,
    color=t.color,
    icon=t.icon,
    description=t.description,
    order=t.position,
    isActive=t.is_active,
  )


async def list_task_types(db: AsyncSession, board_id: str) -> list[BoardTaskType]:
  res = await db.execute(
    select(BoardTaskType).where(BoardTaskType.board_id == board_id).order_by(BoardTaskType.position.asc(), BoardTaskType.name.asc())
  )
  return list(res.scalars().all())


async def board_view(db: AsyncSession, b: Board, *, viewer_id: str | None = None) -> BoardOut:
  cres = await db.execute(select(BoardColumn).where(BoardColumn.board_id == b.id).order_by(BoardColumn.position.asc()))
  lres = await db.execute(select(BoardLabel).where(BoardLabel.board_id == b.id).order_by(BoardLabel.position.asc()))
  members = await list_members(db, b.id)
  my_role = next((m.role for m in members if m.userId == viewer_id), None)
  return BoardOut(
    id=b.id,
    title=b.title,
    description=b.description,
    ownerId=b.owner_id,
    inviteCode=b.invite_code,
    myRole=my_role,
    columns=[
      ColumnOut(id=c.id, title=c.title, type=c.type, order=c.position, color=c.color, wipLimit=c.wip_limit)
      for c in cres.scalars().all()
    ],
    taskTypes=[task_type_out(t) for t in await list_task_types(db, b.id)],
    labels=[LabelOut(id=lab.id, name=lab.name, color=lab.color, isActive=lab.is_active) for lab in lres.scalars().all()],
    members=members,
    settings=dict(b.settings or {}),
    isArchived=b.is_archived,
    archivedAt=b.archived_at,
    createdAt=b.created_at,
    updatedAt=b.updated_at,
  )


async def list_boards(db: AsyncSession, *, user_id: str, include_archived: bool = False) -> list[Board]:
  q = (
    select(Board)
    .join(BoardMember, BoardMember.board_id == Board.id)
    .where(BoardMember.user_id == user_id)
    .order_by(Board.created_at.desc(), Board.id.asc())
  )
  if not include_archived:
    q = q.where(Board.is_archived.is_(False))
  res = await db.execute(q)
  return list(res.scalars().all())


async def update_board(db: AsyncSession, b: Board, *, actor_id: str, payload: BoardUpdateIn) -> Board:
  fields_set = payload.model_fields_set
  changed: list[str] = []
  if "title" in fields_set and payload.title is not None:
    b.title = payload.title
    changed.append("title")
  if "description" in fields_set and payload.description is not None:
    b.description = payload.description
    changed.append("description")
  if payload.settings is not None:
    # new dict so the JSON column registers the change
    b.settings = {**(b.settings or {}), **payload.settings}
    changed.append("settings")
  if payload.columns is not None:
    await db.execute(delete(BoardColumn).where(BoardColumn.board_id == b.id))
    _add_columns(db, b.id, payload.columns)
    changed.append("columns")
  if payload.labels is not None:
    await db.execute(delete(BoardLabel).where(BoardLabel.board_id == b.id))
    _add_labels(db, b.id, payload.labels)
    changed.append("labels")
  b.updated_at = _now()
  await write_audit(
    db,
    event_type="board.updated",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=actor_id,
    payload={"changed": changed},
  )
  await db.commit()
  return b


async def set_archived(db: AsyncSession, b: Board, *, actor_id: str, archived: bool) -> Board:
  b.is_archived = archived
  b.archived_at = _now() if archived else None
  await write_audit(
    db,
    event_type="board.archived" if archived else "board.unarchived",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=actor_id,
    payload={},
  )
  await db.commit()
  return b


async def delete_board_records(db: AsyncSession, board_id: str) -> list[str]:
  """Delete the board with every task and board-owned row; returns blob keys to remove after commit."""
  tres = await db.execute(select(Task.id).where(Task.board_id == board_id))
  blob_keys = await delete_task_records(db, list(tres.scalars().all()))
  await db.execute(delete(BoardColumn).where(BoardColumn.board_id == board_id))
  await db.execute(delete(BoardTaskType).where(BoardTaskType.board_id == board_id))
  await db.execute(delete(BoardLabel).where(BoardLabel.board_id == board_id))
  await db.execute(delete(BoardMember).where(BoardMember.board_id == board_id))
  await db.execute(delete(Board).where(Board.id == board_id))
  return blob_keys


async def delete_board(db: AsyncSession, b: Board, *, actor_id: str, blobs: LocalBlobStore) -> None:
  blob_keys = await delete_board_records(db, b.id)
  await write_audit(
    db,
    event_type="board.deleted",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=actor_id,
    payload={"title": b.title, "blobs": len(blob_keys)},
  )
  await db.commit()
  for key in blob_keys:
    blobs.delete(key)
  logger.info("board %s deleted by %s", b.id, actor_id)


async def _task_type_name_taken(db: AsyncSession, board_id: str, name: str, *, exclude_id: str | None = None) -> bool:
  q = select(BoardTaskType.id).where(BoardTaskType.board_id == board_id, func.lower(BoardTaskType.name) == name.lower())
  if exclude_id:
    q = q.where(BoardTaskType.id != exclude_id)
  res = await db.execute(q)
  return res.first() is not None


async def get_task_type(db: AsyncSession, board_id: str, type_id: str) -> BoardTaskType:
  res = await db.execute(select(BoardTaskType).where(BoardTaskType.id == type_id, BoardTaskType.board_id == board_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFound("Task type not found")
  return t


async def add_task_type(db: AsyncSession, board_id: str, *, actor_id: str, payload: TaskTypeIn) -> BoardTaskType:
  if await _task_type_name_taken(db, board_id, payload.name):
    raise Conflict("Task type with this name already exists")
  position = payload.order
  if position is None:
    res = await db.execute(select(func.max(BoardTaskType.position)).where(BoardTaskType.board_id == board_id))
    max_pos = res.scalar_one()
    position = (max_pos + 1) if max_pos is not None else 0
  t = BoardTaskType(
    board_id=board_id,
    name=payload.name,
    color=payload.color,
    icon=payload.icon,
    description=payload.description,
    position=position,
    is_active=payload.isActive,
  )
  db.add(t)
  await db.flush()
  await write_audit(
    db,
    event_type="board.task_type.created",
    entity_type="BoardTaskType",
    entity_id=t.id,
    board_id=board_id,
    actor_id=actor_id,
    payload={"name": t.name},
  )
  await db.commit()
  return t


async def update_task_type(db: AsyncSession, t: BoardTaskType, *, actor_id: str, payload: TaskTypeUpdateIn) -> BoardTaskType:
  if payload.name is not None and payload.name != t.name:
    if await _task_type_name_taken(db, t.board_id, payload.name, exclude_id=t.id):
      raise Conflict("Task type with this name already exists")
    t.name = payload.name
  if payload.color is not None:
    t.color = payload.color
  if payload.icon is not None:
    t.icon = payload.icon
  if payload.description is not None:
    t.description = payload.description
  if payload.order is not None:
    t.position = payload.order
  if payload.isActive is not None:
    t.is_active = payload.isActive
  await write_audit(
    db,
    event_type="board.task_type.updated",
    entity_type="BoardTaskType",
    entity_id=t.id,
    board_id=t.board_id,
    actor_id=actor_id,
    payload=payload.model_dump(exclude_unset=True),
  )
  await db.commit()
  return t


async def deactivate_task_type(db: AsyncSession, t: BoardTaskType, *, actor_id: str) -> BoardTaskType:
  t.is_active = False
  await write_audit(
    db,
    event_type="board.task_type.deactivated",
    entity_type="BoardTaskType",
    entity_id=t.id,
    board_id=t.board_id,
    actor_id=actor_id,
    payload={"name": t.name},
  )
  await db.commit()
  return t
