from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.audit import write_audit
from prepboard.errors import Conflict, Internal, InvalidInput, NotFound
from prepboard.models import Task
from prepboard.realtime.broadcaster import RoomBroadcaster
from prepboard.schemas import ReorderItemIn
from prepboard.tasks.status import apply_status

logger = logging.getLogger(__name__)


def order_ref(t: Task) -> dict:
  return {"id": t.id, "column": t.column_type, "order": t.order_index, "status": t.status, "version": t.version}


async def column_tasks(db: AsyncSession, board_id: str, column: str) -> list[Task]:
  res = await db.execute(
    select(Task)
    .where(Task.board_id == board_id, Task.column_type == column, Task.is_archived.is_(False))
    .order_by(Task.order_index.asc(), Task.created_at.asc(), Task.id.asc())
  )
  return list(res.scalars().all())


def _renumber(arr: list[Task]) -> None:
  for idx, x in enumerate(arr):
    x.order_index = idx


async def compact_column(db: AsyncSession, board_id: str, column: str, *, exclude_id: str | None = None) -> list[Task]:
  arr = [x for x in await column_tasks(db, board_id, column) if x.id != exclude_id]
  _renumber(arr)
  return arr


async def next_order(db: AsyncSession, board_id: str, column: str) -> int:
  arr = await column_tasks(db, board_id, column)
  return (arr[-1].order_index + 1) if arr else 0


def check_version(t: Task, version: int | None) -> None:
  if version is not None and t.version != version:
    raise Conflict(f"Version conflict on task {t.id}")


async def place_task(db: AsyncSession, t: Task, *, column: str, position: int | None = None) -> list[Task]:
  """Move `t` into `column` at `position` (clamped, appended when None); both columns end up 0..n-1.

  Does not commit. Returns every task whose order or column changed.
  """
  from_column = t.column_type
  source = [x for x in await column_tasks(db, t.board_id, from_column) if x.id != t.id]
  if from_column == column:
    dest = source
  else:
    dest = [x for x in await column_tasks(db, t.board_id, column) if x.id != t.id]
  to_idx = len(dest) if position is None else min(max(position, 0), len(dest))
  dest.insert(to_idx, t)
  _renumber(dest)
  touched = list(dest)
  if from_column != column:
    _renumber(source)
    touched.extend(source)
    t.column_type = column
  apply_status(t, column_changed=from_column != column)
  return touched


async def move_task(
  db: AsyncSession,
  t: Task,
  *,
  actor_id: str,
  column: str,
  position: int | None = None,
  version: int | None = None,
) -> list[Task]:
  check_version(t, version)
  from_column = t.column_type
  touched = await place_task(db, t, column=column, position=position)
  t.version += 1
  await write_audit(
    db,
    event_type="task.moved",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=actor_id,
    payload={"fromColumn": from_column, "toColumn": column, "toIndex": t.order_index},
  )
  await db.commit()
  return touched


async def board_order_state(db: AsyncSession, board_id: str) -> list[dict]:
  res = await db.execute(
    select(Task)
    .where(Task.board_id == board_id, Task.is_archived.is_(False))
    .order_by(Task.column_type.asc(), Task.order_index.asc())
  )
  return [order_ref(t) for t in res.scalars().all()]


async def reorder(
  db: AsyncSession,
  *,
  board_id: str,
  items: list[ReorderItemIn],
  actor_id: str,
  broadcaster: RoomBroadcaster | None = None,
) -> list[Task]:
  """Rewrite order for every column named in `items` as one batch.

  Each task takes its index among the payload entries for its target column,
  ordered by position with submission order breaking ties. Tasks already in an affected column but absent from
  the payload follow, keeping their previous relative order. Every check runs
  before any write; a failed write rolls back and the stored order is
  broadcast before the error surfaces.
  """
  ids = [i.taskId for i in items]
  if len(set(ids)) != len(ids):
    raise InvalidInput("Duplicate taskId in reorder payload")

  res = await db.execute(select(Task).where(Task.id.in_(ids), Task.board_id == board_id))
  by_id = {t.id: t for t in res.scalars().all()}
  missing = [i for i in ids if i not in by_id]
  if missing:
    raise NotFound(f"Task {missing[0]} not found on this board")
  for item in items:
    t = by_id[item.taskId]
    if t.is_archived:
      raise InvalidInput(f"Task {t.id} is archived")
    check_version(t, item.version)

  grouped: dict[str, list[Task]] = {}
  # within a column, position decides; submission order breaks ties
  for _, item in sorted(enumerate(items), key=lambda p: (p[1].position, p[0])):
    grouped.setdefault(item.column, []).append(by_id[item.taskId])

  # source columns of tasks that change column lose them; keep those contiguous too
  affected = set(grouped) | {by_id[i].column_type for i in ids}
  for column in affected:
    arr = grouped.setdefault(column, [])
    placed = {x.id for x in arr}
    for x in await column_tasks(db, board_id, column):
      if x.id not in placed and x.id not in by_id:
        arr.append(x)

  touched: list[Task] = []
  for column, arr in grouped.items():
    for idx, x in enumerate(arr):
      changed = x.column_type != column
      if changed or x.order_index != idx or x.id in by_id:
        x.column_type = column
        x.order_index = idx
        apply_status(x, column_changed=changed)
        x.version += 1
        touched.append(x)

  await write_audit(
    db,
    event_type="task.reordered",
    entity_type="Board",
    entity_id=board_id,
    board_id=board_id,
    actor_id=actor_id,
    payload={"columns": sorted(grouped), "tasks": ids},
  )
  try:
    await db.commit()
  except SQLAlchemyError:
    await db.rollback()
    logger.exception("reorder batch failed on board %s", board_id)
    if broadcaster is not None:
      await broadcaster.broadcast(board_id, "reordered", {"tasks": await board_order_state(db, board_id)})
    raise Internal("Reorder failed; authoritative order re-broadcast") from None
  logger.info("board %s reordered %d tasks across %d columns", board_id, len(touched), len(grouped))
  return touched
