from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import FakeConnection, column_titles, create_board, create_task, make_user
from prepboard.main import app
from prepboard.models import AuditEvent
from prepboard.ordering import engine as ordering


async def _seed(client: AsyncClient, headers: dict[str, str], board_id: str, column: str, *titles: str) -> dict[str, dict]:
  out = {}
  for title in titles:
    out[title] = await create_task(client, headers, board_id, title=title, column=column)
  return out


@pytest.mark.anyio
async def test_reorder_within_column(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  t = await _seed(client, owner, b["id"], "todo", "A", "B", "C")

  res = await client.post(
    "/tasks/reorder",
    json={
      "boardId": b["id"],
      "tasks": [
        {"taskId": t["C"]["id"], "column": "todo", "position": 0},
        {"taskId": t["A"]["id"], "column": "todo", "position": 1},
        {"taskId": t["B"]["id"], "column": "todo", "position": 2},
      ],
    },
    headers=owner,
  )
  assert res.status_code == 200, res.text
  assert res.json()["ok"] is True
  assert await column_titles(client, owner, b["id"], "todo") == [("C", 0), ("A", 1), ("B", 2)]


@pytest.mark.anyio
async def test_reorder_across_columns_keeps_both_contiguous(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  todo = await _seed(client, owner, b["id"], "todo", "A", "B", "C")
  done = await _seed(client, owner, b["id"], "done", "X", "Y")

  # B moves to the top of done; Y is not in the payload and follows
  res = await client.post(
    "/tasks/reorder",
    json={
      "boardId": b["id"],
      "tasks": [
        {"taskId": todo["B"]["id"], "column": "done", "position": 0},
        {"taskId": done["X"]["id"], "column": "done", "position": 1},
      ],
    },
    headers=owner,
  )
  assert res.status_code == 200, res.text
  refs = {r["id"]: r for r in res.json()["tasks"]}
  assert refs[todo["B"]["id"]]["status"] == "Completed"

  assert await column_titles(client, owner, b["id"], "done") == [("B", 0), ("X", 1), ("Y", 2)]
  assert await column_titles(client, owner, b["id"], "todo") == [("A", 0), ("C", 1)]
  moved = (await client.get(f"/tasks/{todo['B']['id']}", headers=owner)).json()
  assert moved["completedAt"]
  assert moved["version"] == 1


@pytest.mark.anyio
async def test_reorder_rejects_foreign_task_without_writing(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  other = await create_board(client, owner)
  mine = await _seed(client, owner, b["id"], "todo", "A", "B")
  foreign = await create_task(client, owner, other["id"], title="F")

  res = await client.post(
    "/tasks/reorder",
    json={
      "boardId": b["id"],
      "tasks": [
        {"taskId": mine["B"]["id"], "column": "todo", "position": 0},
        {"taskId": foreign["id"], "column": "todo", "position": 1},
      ],
    },
    headers=owner,
  )
  assert res.status_code == 404, res.text
  assert res.json()["error"]["kind"] == "NotFound"
  assert await column_titles(client, owner, b["id"], "todo") == [("A", 0), ("B", 1)]


@pytest.mark.anyio
async def test_reorder_payload_checks(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  t = await _seed(client, owner, b["id"], "todo", "A", "B")

  res = await client.post("/tasks/reorder", json={"boardId": b["id"], "tasks": []}, headers=owner)
  assert res.status_code == 422, res.text

  dup = {"taskId": t["A"]["id"], "column": "todo", "position": 0}
  res = await client.post("/tasks/reorder", json={"boardId": b["id"], "tasks": [dup, dup]}, headers=owner)
  assert res.status_code == 400, res.text

  bad = {"taskId": t["A"]["id"], "column": "todo", "position": -1}
  res = await client.post("/tasks/reorder", json={"boardId": b["id"], "tasks": [bad]}, headers=owner)
  assert res.status_code == 422, res.text

  stale = {"taskId": t["A"]["id"], "column": "done", "position": 0, "version": 7}
  res = await client.post("/tasks/reorder", json={"boardId": b["id"], "tasks": [stale]}, headers=owner)
  assert res.status_code == 409, res.text
  assert res.json()["error"]["kind"] == "Conflict"
  assert await column_titles(client, owner, b["id"], "todo") == [("A", 0), ("B", 1)]

  await client.post(f"/tasks/{t['B']['id']}/archive", headers=owner)
  gone = {"taskId": t["B"]["id"], "column": "todo", "position": 0}
  res = await client.post("/tasks/reorder", json={"boardId": b["id"], "tasks": [gone]}, headers=owner)
  assert res.status_code == 400, res.text


@pytest.mark.anyio
async def test_move_clamps_and_compacts(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  todo = await _seed(client, owner, b["id"], "todo", "A", "B", "C")
  await _seed(client, owner, b["id"], "review", "R1", "R2")

  res = await client.post(f"/tasks/{todo['A']['id']}/move", json={"column": "review", "position": 1}, headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["column"] == "review"
  assert res.json()["order"] == 1
  assert await column_titles(client, owner, b["id"], "review") == [("R1", 0), ("A", 1), ("R2", 2)]
  assert await column_titles(client, owner, b["id"], "todo") == [("B", 0), ("C", 1)]

  res = await client.post(f"/tasks/{todo['B']['id']}/move", json={"column": "review", "position": 99}, headers=owner)
  assert res.json()["order"] == 3

  # no position appends
  res = await client.post(f"/tasks/{todo['C']['id']}/move", json={"column": "review"}, headers=owner)
  assert res.json()["order"] == 4
  assert await column_titles(client, owner, b["id"], "todo") == []

  # same column move
  res = await client.post(f"/tasks/{todo['C']['id']}/move", json={"column": "review", "position": 0}, headers=owner)
  assert res.status_code == 200, res.text
  assert await column_titles(client, owner, b["id"], "review") == [("C", 0), ("R1", 1), ("A", 2), ("R2", 3), ("B", 4)]


@pytest.mark.anyio
async def test_move_status_and_version(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  t = await create_task(client, owner, b["id"], title="A")

  res = await client.post(f"/tasks/{t['id']}/move", json={"column": "done", "version": 0}, headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["status"] == "Completed"
  assert res.json()["completedAt"]
  assert res.json()["version"] == 1

  res = await client.post(f"/tasks/{t['id']}/move", json={"column": "review", "version": 0}, headers=owner)
  assert res.status_code == 409, res.text

  res = await client.post(f"/tasks/{t['id']}/move", json={"column": "review", "version": 1}, headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["status"] == "In Review"
  assert res.json()["completedAt"] is None


@pytest.mark.anyio
async def test_failed_reorder_rolls_back_and_rebroadcasts(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  t = await _seed(client, owner, b["id"], "todo", "A", "B")

  async def broken_audit(db, **kwargs) -> None:
    # event_type is NOT NULL, so the commit fails
    db.add(AuditEvent(event_type=None, entity_type="Board", payload={}))

  monkeypatch.setattr(ordering, "write_audit", broken_audit)
  conn = FakeConnection()
  app.state.broadcaster.join(b["id"], conn)

  res = await client.post(
    "/tasks/reorder",
    json={
      "boardId": b["id"],
      "tasks": [
        {"taskId": t["B"]["id"], "column": "todo", "position": 0},
        {"taskId": t["A"]["id"], "column": "todo", "position": 1},
      ],
    },
    headers=owner,
  )
  assert res.status_code == 500, res.text
  assert res.json()["error"]["kind"] == "Internal"

  assert conn.types() == ["reordered"]
  state = conn.sent[0]["payload"]["tasks"]
  assert [(x["id"], x["order"]) for x in state] == [(t["A"]["id"], 0), (t["B"]["id"], 1)]
  assert await column_titles(client, owner, b["id"], "todo") == [("A", 0), ("B", 1)]


@pytest.mark.anyio
async def test_reorder_ranks_by_position_then_submission(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  t = await _seed(client, owner, b["id"], "todo", "A", "B", "C", "D")

  # submitted out of order; B and D share a position so submission order decides
  res = await client.post(
    "/tasks/reorder",
    json={
      "boardId": b["id"],
      "tasks": [
        {"taskId": t["A"]["id"], "column": "todo", "position": 9},
        {"taskId": t["D"]["id"], "column": "todo", "position": 2},
        {"taskId": t["C"]["id"], "column": "todo", "position": 0},
        {"taskId": t["B"]["id"], "column": "todo", "position": 2},
      ],
    },
    headers=owner,
  )
  assert res.status_code == 200, res.text
  assert await column_titles(client, owner, b["id"], "todo") == [("C", 0), ("D", 1), ("B", 2), ("A", 3)]
