from __future__ import annotations

from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.errors import Forbidden
from prepboard.models import BoardMember


class BoardRole(str, Enum):
  # role order: viewer < member < admin
  viewer = "viewer"
  member = "member"
  admin = "admin"

  @property
  def rank(self) -> int:
    return _RANKS[self]

  def __lt__(self, other):
    if not isinstance(other, BoardRole):
      return NotImplemented
    return self.rank < other.rank

  def __le__(self, other):
    if not isinstance(other, BoardRole):
      return NotImplemented
    return self.rank <= other.rank

  def __gt__(self, other):
    if not isinstance(other, BoardRole):
      return NotImplemented
    return self.rank > other.rank

  def __ge__(self, other):
    if not isinstance(other, BoardRole):
      return NotImplemented
    return self.rank >= other.rank


_RANKS = {BoardRole.viewer: 0, BoardRole.member: 1, BoardRole.admin: 2}


async def get_membership(db: AsyncSession, *, board_id: str, user_id: str) -> BoardMember | None:
  res = await db.execute(select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id))
  return res.scalar_one_or_none()


async def authorize(
  db: AsyncSession,
  *,
  user_id: str,
  board_id: str,
  required: BoardRole = BoardRole.viewer,
) -> BoardMember:
  """Return the caller's membership, or raise Forbidden when it is missing or too weak."""
  m = await get_membership(db, board_id=board_id, user_id=user_id)
  if not m:
    raise Forbidden("No board access")
  if BoardRole(m.role) < required:
    raise Forbidden(f"Requires {required.value} role")
  return m
