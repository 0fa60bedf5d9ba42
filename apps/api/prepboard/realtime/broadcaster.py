from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class Connection(Protocol):
  async def send_json(self, data: Any) -> None: ...


class RoomBroadcaster:
  """Per-board rooms of live connections.

  Sends within one room are serialized by that room's lock, so every
  subscriber sees a room's events in the order `broadcast` was called for it.
  Routers call `broadcast` right after their commit. A connection whose send
  fails is dropped from every room it joined.

  Each subscription remembers the user behind it so a member who leaves or is
  removed can be evicted from the room without closing their other rooms.
  """

  def __init__(self) -> None:
    self.rooms: dict[str, list[Connection]] = {}
    self._locks: dict[str, asyncio.Lock] = {}
    # (board_id, id(conn)) -> user_id
    self._owners: dict[tuple[str, int], str] = {}

  def join(self, board_id: str, conn: Connection, user_id: str | None = None) -> None:
    members = self.rooms.setdefault(board_id, [])
    self._locks.setdefault(board_id, asyncio.Lock())
    if conn not in members:
      members.append(conn)
    if user_id is not None:
      self._owners[(board_id, id(conn))] = user_id

  def leave(self, board_id: str, conn: Connection) -> None:
    members = self.rooms.get(board_id)
    if not members:
      return
    if conn in members:
      members.remove(conn)
      self._owners.pop((board_id, id(conn)), None)
    if not members:
      # lock is kept until close_room; a broadcast may still hold it
      del self.rooms[board_id]

  def evict_user(self, board_id: str, user_id: str) -> int:
    """Remove every connection of `user_id` from one room; returns how many went."""
    gone = [c for c in self.rooms.get(board_id, []) if self._owners.get((board_id, id(c))) == user_id]
    for conn in gone:
      self.leave(board_id, conn)
    if gone:
      logger.info("evicted %d connection(s) of user %s from board %s", len(gone), user_id, board_id)
    return len(gone)

  def close_room(self, board_id: str) -> None:
    for conn in self.rooms.pop(board_id, []):
      self._owners.pop((board_id, id(conn)), None)
    self._locks.pop(board_id, None)

  def drop(self, conn: Connection) -> None:
    for board_id in self.subscriptions(conn):
      self.leave(board_id, conn)

  def subscriptions(self, conn: Connection) -> list[str]:
    return [b for b, members in self.rooms.items() if conn in members]

  async def broadcast(self, board_id: str, event_type: str, payload: Any) -> int:
    """Send one event to every connection in the room; returns the number delivered."""
    if board_id not in self.rooms:
      return 0
    lock = self._locks.setdefault(board_id, asyncio.Lock())
    message = jsonable_encoder({"type": event_type, "boardId": board_id, "payload": payload})
    delivered = 0
    dead: list[Connection] = []
    async with lock:
      for conn in list(self.rooms.get(board_id, [])):
        try:
          await conn.send_json(message)
          delivered += 1
        except Exception:
          logger.warning("dropping connection after failed send to board %s", board_id)
          dead.append(conn)
    for conn in dead:
      self.drop(conn)
    return delivered

  def reset(self) -> None:
    self.rooms.clear()
    self._locks.clear()
    self._owners.clear()
