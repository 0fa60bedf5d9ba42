from __future__ import annotations

import os
import secrets
import sys
import tempfile
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / 'prepboard_test.db'}")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="prepboard-uploads-test-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

from prepboard.config import settings
from prepboard.db import SessionLocal, engine
from prepboard.main import app
from prepboard.models import (
  ApiToken,
  Attachment,
  AuditEvent,
  Base,
  Board,
  BoardColumn,
  BoardLabel,
  BoardMember,
  BoardTaskType,
  ChecklistItem,
  Comment,
  Task,
  TaskAssignee,
  TimeLog,
  User,
)
from prepboard.security import issue_api_token


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    for model in (
      AuditEvent,
      Attachment,
      TimeLog,
      ChecklistItem,
      Comment,
      TaskAssignee,
      Task,
      BoardLabel,
      BoardTaskType,
      BoardColumn,
      BoardMember,
      Board,
      ApiToken,
      User,
    ):
      await db.execute(delete(model))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend: str) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. prepboard_test)."
    )
  await _reset_db()
  app.state.broadcaster.reset()
  yield
  app.state.broadcaster.reset()
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


class FakeConnection:
  """Stands in for a websocket in the broadcaster's rooms."""

  def __init__(self, *, fail: bool = False) -> None:
    self.sent: list[dict] = []
    self.fail = fail

  async def send_json(self, data: Any) -> None:
    if self.fail:
      raise RuntimeError("socket closed")
    self.sent.append(data)

  def types(self) -> list[str]:
    return [m["type"] for m in self.sent]


async def make_user(name: str = "User", email: str | None = None) -> tuple[str, dict[str, str]]:
  async with SessionLocal() as db:
    u = User(email=email or f"{name.lower()}-{secrets.token_hex(4)}@prepboard.test", name=name)
    db.add(u)
    await db.flush()
    token = await issue_api_token(db, user=u)
    await db.commit()
    return u.id, {"Authorization": f"Bearer {token}"}


async def create_board(client: AsyncClient, headers: dict[str, str], **payload: Any) -> dict:
  payload.setdefault("title", f"Board {secrets.token_hex(3)}")
  res = await client.post("/boards", json=payload, headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


async def join_board(client: AsyncClient, headers: dict[str, str], board: dict) -> dict:
  res = await client.post(f"/boards/join/{board['inviteCode']}", headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


async def set_role(client: AsyncClient, headers: dict[str, str], board_id: str, user_id: str, role: str) -> None:
  res = await client.put(f"/boards/{board_id}/members/{user_id}", json={"role": role}, headers=headers)
  assert res.status_code == 200, res.text


async def create_task(client: AsyncClient, headers: dict[str, str], board_id: str, **payload: Any) -> dict:
  payload.setdefault("title", f"Task {secrets.token_hex(3)}")
  res = await client.post("/tasks", json={"boardId": board_id, **payload}, headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


async def column_titles(client: AsyncClient, headers: dict[str, str], board_id: str, column: str) -> list[tuple[str, int]]:
  res = await client.get(f"/tasks/board/{board_id}", params={"column": column}, headers=headers)
  assert res.status_code == 200, res.text
  return [(t["title"], t["order"]) for t in res.json()]
