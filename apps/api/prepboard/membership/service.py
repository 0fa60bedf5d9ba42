from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.access import BoardRole, authorize, get_membership
from prepboard.audit import write_audit
from prepboard.boards.service import delete_board_records, get_board
from prepboard.errors import AlreadyMember, Forbidden, InvalidInput, NotFound
from prepboard.membership.invites import unique_invite_code
from prepboard.models import Board, BoardMember
from prepboard.storage.blobs import LocalBlobStore

logger = logging.getLogger(__name__)


@dataclass
class LeaveResult:
  board_id: str
  board_deleted: bool = False
  new_owner_id: str | None = None


async def create_invite(db: AsyncSession, b: Board, *, actor_id: str) -> str:
  b.invite_code = await unique_invite_code(db)
  await write_audit(
    db,
    event_type="board.invite_rotated",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=actor_id,
    payload={},
  )
  await db.commit()
  return b.invite_code


async def join_by_invite(db: AsyncSession, *, code: str, user_id: str) -> Board:
  res = await db.execute(select(Board).where(Board.invite_code == code))
  b = res.scalar_one_or_none()
  if not b:
    raise NotFound("Invalid invite code")
  if await get_membership(db, board_id=b.id, user_id=user_id):
    raise AlreadyMember("Already a member of this board")
  db.add(BoardMember(board_id=b.id, user_id=user_id, role=BoardRole.member.value))
  await write_audit(
    db,
    event_type="board.member_joined",
    entity_type="BoardMember",
    entity_id=user_id,
    board_id=b.id,
    actor_id=user_id,
    payload={"role": BoardRole.member.value},
  )
  try:
    await db.commit()
  except IntegrityError:
    # concurrent join of the same user lost the unique (board, user) race
    await db.rollback()
    raise AlreadyMember("Already a member of this board") from None
  logger.info("user %s joined board %s", user_id, b.id)
  return b


async def _ordered_members(db: AsyncSession, board_id: str) -> list[BoardMember]:
  res = await db.execute(
    select(BoardMember).where(BoardMember.board_id == board_id).order_by(BoardMember.joined_at.asc(), BoardMember.id.asc())
  )
  return list(res.scalars().all())


async def leave(db: AsyncSession, *, board_id: str, user_id: str, blobs: LocalBlobStore) -> LeaveResult:
  """Remove `user_id` from the board.

  The last member leaving deletes the board. An owner leaving hands the board
  to the earliest-joined admin, or else to the earliest-joined member, who is
  promoted to admin.
  """
  b = await get_board(db, board_id)
  members = await _ordered_members(db, board_id)
  me = next((m for m in members if m.user_id == user_id), None)
  if not me:
    raise Forbidden("Not a member of this board")
  rest = [m for m in members if m.id != me.id]

  if not rest:
    blob_keys = await delete_board_records(db, board_id)
    await write_audit(
      db,
      event_type="board.deleted",
      entity_type="Board",
      entity_id=board_id,
      board_id=board_id,
      actor_id=user_id,
      payload={"reason": "last member left", "title": b.title},
    )
    await db.commit()
    for key in blob_keys:
      blobs.delete(key)
    logger.info("board %s deleted after its last member %s left", board_id, user_id)
    return LeaveResult(board_id=board_id, board_deleted=True)

  result = LeaveResult(board_id=board_id)
  if b.owner_id == user_id:
    heir = next((m for m in rest if m.role == BoardRole.admin.value), None) or rest[0]
    heir.role = BoardRole.admin.value
    b.owner_id = heir.user_id
    result.new_owner_id = heir.user_id
    logger.info("board %s ownership moved from %s to %s", board_id, user_id, heir.user_id)
  await db.delete(me)
  await write_audit(
    db,
    event_type="board.member_left",
    entity_type="BoardMember",
    entity_id=user_id,
    board_id=board_id,
    actor_id=user_id,
    payload={"newOwnerId": result.new_owner_id},
  )
  await db.commit()
  logger.info("user %s left board %s", user_id, board_id)
  return result


async def set_role(db: AsyncSession, *, board_id: str, actor_id: str, target_user_id: str, role: BoardRole) -> BoardMember:
  b = await get_board(db, board_id)
  await authorize(db, user_id=actor_id, board_id=board_id, required=BoardRole.admin)
  target = await get_membership(db, board_id=board_id, user_id=target_user_id)
  if not target:
    raise NotFound("Member not found")
  if target_user_id == b.owner_id and role < BoardRole.admin:
    raise InvalidInput("The board owner cannot be demoted")
  old_role = target.role
  target.role = role.value
  await write_audit(
    db,
    event_type="board.member_role_changed",
    entity_type="BoardMember",
    entity_id=target_user_id,
    board_id=board_id,
    actor_id=actor_id,
    payload={"from": old_role, "to": role.value},
  )
  await db.commit()
  logger.info("board %s member %s role %s -> %s", board_id, target_user_id, old_role, role.value)
  return target
