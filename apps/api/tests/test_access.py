from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import create_board, create_task, join_board, make_user, set_role
from prepboard.access import BoardRole, authorize
from prepboard.db import SessionLocal
from prepboard.errors import Forbidden


def test_role_ordering() -> None:
  assert BoardRole.viewer < BoardRole.member < BoardRole.admin
  assert BoardRole.admin >= BoardRole.member
  assert not BoardRole.member >= BoardRole.admin
  assert sorted([BoardRole.admin, BoardRole.viewer, BoardRole.member]) == [BoardRole.viewer, BoardRole.member, BoardRole.admin]


@pytest.mark.anyio
async def test_authorize_checks_membership_and_rank(client: AsyncClient) -> None:
  owner_id, owner = await make_user("Owner")
  viewer_id, viewer = await make_user("Viewer")
  stranger_id, _ = await make_user("Stranger")
  b = await create_board(client, owner)
  await join_board(client, viewer, b)
  await set_role(client, owner, b["id"], viewer_id, "viewer")

  async with SessionLocal() as db:
    m = await authorize(db, user_id=owner_id, board_id=b["id"], required=BoardRole.admin)
    assert m.role == "admin"
    m = await authorize(db, user_id=viewer_id, board_id=b["id"])
    assert m.role == "viewer"
    with pytest.raises(Forbidden):
      await authorize(db, user_id=viewer_id, board_id=b["id"], required=BoardRole.member)
    with pytest.raises(Forbidden):
      await authorize(db, user_id=stranger_id, board_id=b["id"])


@pytest.mark.anyio
async def test_non_member_is_forbidden_everywhere(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  _, stranger = await make_user("Stranger")
  b = await create_board(client, owner)
  t = await create_task(client, owner, b["id"])
  bid, tid = b["id"], t["id"]

  calls = [
    ("GET", f"/boards/{bid}", None),
    ("PUT", f"/boards/{bid}", {"title": "x"}),
    ("DELETE", f"/boards/{bid}", None),
    ("POST", f"/boards/{bid}/archive", None),
    ("POST", f"/boards/{bid}/invite", None),
    ("GET", f"/boards/{bid}/members", None),
    ("GET", f"/task-types/board/{bid}", None),
    ("POST", f"/task-types/board/{bid}", {"name": "Mine"}),
    ("POST", "/tasks", {"boardId": bid, "title": "x"}),
    ("GET", f"/tasks/board/{bid}", None),
    ("GET", f"/tasks/board/{bid}/stats", None),
    ("GET", f"/tasks/{tid}", None),
    ("PUT", f"/tasks/{tid}", {"title": "x"}),
    ("DELETE", f"/tasks/{tid}", None),
    ("POST", f"/tasks/{tid}/move", {"column": "done"}),
    ("POST", "/tasks/reorder", {"boardId": bid, "tasks": [{"taskId": tid, "column": "todo", "position": 0}]}),
    ("POST", f"/tasks/{tid}/comments", {"text": "hi"}),
    ("POST", f"/tasks/{tid}/checklist", {"text": "step"}),
    ("POST", f"/tasks/{tid}/log-time", {"minutes": 5}),
    ("POST", f"/tasks/{tid}/archive", None),
  ]
  for method, url, body in calls:
    res = await client.request(method, url, json=body, headers=stranger)
    assert res.status_code == 403, f"{method} {url}: {res.text}"
    assert res.json()["error"]["kind"] == "Forbidden"

  # nothing changed
  view = (await client.get(f"/tasks/{tid}", headers=owner)).json()
  assert view["title"] == t["title"]
  assert view["version"] == t["version"]


@pytest.mark.anyio
async def test_role_gates(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  viewer_id, viewer = await make_user("Viewer")
  member_id, member = await make_user("Member")
  b = await create_board(client, owner)
  await join_board(client, viewer, b)
  await join_board(client, member, b)
  await set_role(client, owner, b["id"], viewer_id, "viewer")
  t = await create_task(client, member, b["id"])

  # viewer: read only
  assert (await client.get(f"/tasks/board/{b['id']}", headers=viewer)).status_code == 200
  assert (await client.get(f"/tasks/{t['id']}", headers=viewer)).status_code == 200
  res = await client.put(f"/tasks/{t['id']}", json={"title": "x"}, headers=viewer)
  assert res.status_code == 403, res.text
  res = await client.post(f"/tasks/{t['id']}/comments", json={"text": "hi"}, headers=viewer)
  assert res.status_code == 403, res.text

  # member: edits tasks, not the board
  res = await client.put(f"/tasks/{t['id']}", json={"title": "Edited"}, headers=member)
  assert res.status_code == 200, res.text
  res = await client.delete(f"/tasks/{t['id']}", headers=member)
  assert res.status_code == 403, res.text
  res = await client.post(f"/boards/{b['id']}/archive", headers=member)
  assert res.status_code == 403, res.text
  res = await client.put(f"/boards/{b['id']}/members/{member_id}", json={"role": "admin"}, headers=member)
  assert res.status_code == 403, res.text

  # admin may delete tasks
  res = await client.delete(f"/tasks/{t['id']}", headers=owner)
  assert res.status_code == 200, res.text
