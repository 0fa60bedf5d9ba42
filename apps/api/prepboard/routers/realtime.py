from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from prepboard.access import BoardRole, authorize
from prepboard.config import settings
from prepboard.db import SessionLocal
from prepboard.deps import resolve_token
from prepboard.errors import AppError, InvalidInput, Unauthenticated, error_body
from prepboard.realtime.broadcaster import Connection, RoomBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class BoardSocket:
  """Subscription state of one authenticated connection.

  Clients send `{"type": "joinBoard"|"leaveBoard", "boardId": ...}` or
  `{"type": "ping"}`; each message gets exactly one reply frame.
  """

  def __init__(self, conn: Connection, broadcaster: RoomBroadcaster, user_id: str, session_factory: Callable = SessionLocal) -> None:
    self.conn = conn
    self.broadcaster = broadcaster
    self.user_id = user_id
    self.session_factory = session_factory

  async def handle(self, msg: Any) -> dict:
    try:
      return await self._dispatch(msg)
    except AppError as exc:
      return {"type": "error", **error_body(exc.kind, exc.message)}

  async def _dispatch(self, msg: Any) -> dict:
    if not isinstance(msg, dict):
      raise InvalidInput("Message must be a JSON object")
    kind = msg.get("type")
    if kind == "ping":
      return {"type": "pong"}
    if kind not in ("joinBoard", "leaveBoard"):
      raise InvalidInput(f"Unknown message type: {kind}")
    board_id = msg.get("boardId")
    if not isinstance(board_id, str) or not board_id:
      raise InvalidInput("boardId is required")
    if kind == "leaveBoard":
      self.broadcaster.leave(board_id, self.conn)
      logger.info("user %s unsubscribed from board %s", self.user_id, board_id)
      return {"type": "leftBoard", "boardId": board_id}
    async with self.session_factory() as db:
      await authorize(db, user_id=self.user_id, board_id=board_id, required=BoardRole.viewer)
    self.broadcaster.join(board_id, self.conn, self.user_id)
    logger.info("user %s subscribed to board %s", self.user_id, board_id)
    return {"type": "joinedBoard", "boardId": board_id}

  def close(self) -> None:
    self.broadcaster.drop(self.conn)


def _token_from_first_message(raw: str) -> str:
  try:
    data = json.loads(raw)
  except ValueError:
    raise Unauthenticated("First message must be JSON with a token") from None
  if not isinstance(data, dict):
    raise Unauthenticated("First message must be JSON with a token")
  return str(data.get("token") or "").replace("Bearer ", "").strip()


@router.websocket("/ws")
async def board_socket(websocket: WebSocket, token: str | None = None) -> None:
  await websocket.accept()
  broadcaster: RoomBroadcaster = websocket.app.state.broadcaster
  try:
    if not token:
      raw = await asyncio.wait_for(websocket.receive_text(), timeout=settings.ws_auth_timeout_seconds)
      token = _token_from_first_message(raw)
    async with SessionLocal() as db:
      user = await resolve_token(db, token)
  except asyncio.TimeoutError:
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication timeout")
    return
  except Unauthenticated as exc:
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
    return
  except WebSocketDisconnect:
    return

  sock = BoardSocket(websocket, broadcaster, user.id)
  logger.info("socket connected for user %s", user.id)
  try:
    await websocket.send_json({"type": "connected", "userId": user.id})
    while True:
      raw = await websocket.receive_text()
      try:
        msg = json.loads(raw)
      except ValueError:
        msg = None
      await websocket.send_json(await sock.handle(msg))
  except WebSocketDisconnect:
    logger.info("socket disconnected for user %s", user.id)
  finally:
    sock.close()
