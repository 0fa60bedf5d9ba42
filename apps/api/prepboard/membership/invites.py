from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.config import settings
from prepboard.errors import Internal
from prepboard.models import Board
from prepboard.security import invite_code_new

logger = logging.getLogger(__name__)


async def unique_invite_code(db: AsyncSession) -> str:
  """Draw invite codes until one is unused; collisions are retried, never surfaced."""
  for attempt in range(max(1, settings.invite_code_max_attempts)):
    code = invite_code_new()
    res = await db.execute(select(Board.id).where(Board.invite_code == code))
    if res.scalar_one_or_none() is None:
      return code
    logger.warning("invite code collision on attempt %d, regenerating", attempt + 1)
  raise Internal("Could not allocate a unique invite code")
