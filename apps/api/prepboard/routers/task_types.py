from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.access import BoardRole, authorize
from prepboard.boards import service as boards
from prepboard.deps import get_broadcaster, get_current_user, get_db, valid_id
from prepboard.models import User
from prepboard.realtime.broadcaster import RoomBroadcaster
from prepboard.schemas import TaskTypeIn, TaskTypeOut, TaskTypeUpdateIn

router = APIRouter(prefix="/task-types", tags=["task-types"])


async def _announce(db: AsyncSession, bc: RoomBroadcaster, board_id: str) -> None:
  types = [boards.task_type_out(t).model_dump() for t in await boards.list_task_types(db, board_id)]
  await bc.broadcast(board_id, "taskTypesUpdated", {"taskTypes": types})


@router.get("/board/{board_id}", response_model=list[TaskTypeOut])
async def list_task_types(
  board_id: str,
  includeInactive: bool = False,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TaskTypeOut]:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.viewer)
  rows = await boards.list_task_types(db, b.id)
  return [boards.task_type_out(t) for t in rows if includeInactive or t.is_active]


@router.post("/board/{board_id}", response_model=TaskTypeOut)
async def add_task_type(
  board_id: str,
  payload: TaskTypeIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskTypeOut:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.admin)
  t = await boards.add_task_type(db, b.id, actor_id=user.id, payload=payload)
  await _announce(db, bc, b.id)
  return boards.task_type_out(t)


@router.put("/board/{board_id}/{type_id}", response_model=TaskTypeOut)
async def update_task_type(
  board_id: str,
  type_id: str,
  payload: TaskTypeUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskTypeOut:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.admin)
  t = await boards.get_task_type(db, b.id, valid_id(type_id, "task type id"))
  t = await boards.update_task_type(db, t, actor_id=user.id, payload=payload)
  await _announce(db, bc, b.id)
  return boards.task_type_out(t)


@router.delete("/board/{board_id}/{type_id}", response_model=TaskTypeOut)
async def deactivate_task_type(
  board_id: str,
  type_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> TaskTypeOut:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.admin)
  t = await boards.get_task_type(db, b.id, valid_id(type_id, "task type id"))
  t = await boards.deactivate_task_type(db, t, actor_id=user.id)
  await _announce(db, bc, b.id)
  return boards.task_type_out(t)
