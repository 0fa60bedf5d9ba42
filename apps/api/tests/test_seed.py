from __future__ import annotations

import pytest
from httpx import AsyncClient

from prepboard.seed import DEMO_BOARD_TITLE, seed


@pytest.mark.anyio
async def test_seed_issues_working_token(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("SEED_EMAIL", "seed@prepboard.test")
  monkeypatch.delenv("SEED_DEMO_BOARD", raising=False)

  token = await seed()
  assert token.startswith("pb_")
  res = await client.get("/boards", headers={"Authorization": f"Bearer {token}"})
  assert res.status_code == 200, res.text
  assert res.json() == []

  # re-seeding reuses the user and leaves the first token valid
  second = await seed()
  assert second != token
  res = await client.get("/boards", headers={"Authorization": f"Bearer {token}"})
  assert res.status_code == 200, res.text


@pytest.mark.anyio
async def test_seed_demo_board_is_idempotent(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("SEED_EMAIL", "seed@prepboard.test")
  monkeypatch.setenv("SEED_DEMO_BOARD", "1")

  token = await seed()
  await seed()
  headers = {"Authorization": f"Bearer {token}"}
  boards = (await client.get("/boards", headers=headers)).json()
  assert [b["title"] for b in boards] == [DEMO_BOARD_TITLE]

  tasks = (await client.get(f"/tasks/board/{boards[0]['id']}", headers=headers)).json()
  assert len(tasks) == 4
  by_title = {t["title"]: t for t in tasks}
  assert by_title["LRU cache"]["status"] == "Completed"
  assert by_title["Design a URL shortener"]["status"] == "In Progress"
  assert len(by_title["Design a URL shortener"]["checklist"]) == 1
