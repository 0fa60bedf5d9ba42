from __future__ import annotations

import asyncio
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.boards.service import create_board
from prepboard.db import SessionLocal
from prepboard.models import Board, User
from prepboard.schemas import BoardCreateIn, ChecklistCreateIn, TaskCreateIn
from prepboard.security import issue_api_token
from prepboard.tasks.service import add_checklist_item, create_task

DEMO_EMAIL = "demo@prepboard.local"
DEMO_BOARD_TITLE = "Interview Prep"


async def _ensure_user(db: AsyncSession, *, email: str, name: str) -> User:
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u:
    u = User(email=email, name=name, avatar_url=None)
    db.add(u)
    await db.flush()
  return u


async def _ensure_demo_board(db: AsyncSession, user: User) -> Board:
  res = await db.execute(select(Board).where(Board.title == DEMO_BOARD_TITLE, Board.owner_id == user.id))
  board = res.scalar_one_or_none()
  if board:
    return board
  board = await create_board(db, owner=user, payload=BoardCreateIn(title=DEMO_BOARD_TITLE, description="Demo board"))
  samples = [
    ("Two Sum variations", "DSA Problem", "Easy", "todo", ["arrays", "hashing"]),
    ("Design a URL shortener", "System Design", "Hard", "inprogress", ["scaling"]),
    ("Tell me about a conflict", "Behavioral", "Medium", "backlog", ["star"]),
    ("LRU cache", "Coding Challenge", "Medium", "done", ["linked-list"]),
  ]
  for title, task_type, difficulty, column, tags in samples:
    t = await create_task(
      db,
      user=user,
      payload=TaskCreateIn(boardId=board.id, title=title, type=task_type, difficulty=difficulty, column=column, tags=tags),
    )
    if column == "inprogress":
      await add_checklist_item(db, t, user=user, payload=ChecklistCreateIn(text="Estimate traffic"))
  return board


async def seed() -> str:
  """Create the demo user (and optionally a demo board); returns a fresh API token."""
  async with SessionLocal() as db:
    user = await _ensure_user(db, email=os.getenv("SEED_EMAIL", DEMO_EMAIL), name="Demo")
    token = await issue_api_token(db, user=user, name="seed")
    await db.commit()
    if os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y"):
      await _ensure_demo_board(db, user)
    return token


def main() -> None:
  token = asyncio.run(seed())
  print("PrepBoard seed token created (shown once):")
  print(f"  {token}")


if __name__ == "__main__":
  main()
