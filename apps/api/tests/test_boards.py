from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import create_board, create_task, join_board, make_user, set_role


@pytest.mark.anyio
async def test_health_and_version(client: AsyncClient) -> None:
  res = await client.get("/health")
  assert res.status_code == 200, res.text
  assert res.json() == {"ok": True}
  ver = (await client.get("/version")).json()
  assert set(ver) == {"version", "buildSha"}


@pytest.mark.anyio
async def test_missing_or_bad_token_is_unauthenticated(client: AsyncClient) -> None:
  res = await client.get("/boards")
  assert res.status_code == 401, res.text
  assert res.json() == {"ok": False, "error": {"kind": "Unauthenticated", "message": "Not authenticated"}}

  res = await client.get("/boards", headers={"Authorization": "Bearer nope"})
  assert res.status_code == 401, res.text
  assert res.json()["error"]["kind"] == "Unauthenticated"


@pytest.mark.anyio
async def test_create_board_applies_defaults_once(client: AsyncClient) -> None:
  owner_id, owner = await make_user("Owner")
  b = await create_board(client, owner, title="  Prep  ")

  assert b["title"] == "Prep"
  assert b["ownerId"] == owner_id
  assert b["myRole"] == "admin"
  assert b["inviteCode"]
  assert [(m["userId"], m["role"]) for m in b["members"]] == [(owner_id, "admin")]

  cols = [(c["title"], c["type"], c["wipLimit"]) for c in b["columns"]]
  assert cols == [
    ("Backlog", "backlog", None),
    ("Ready", "todo", None),
    ("In Progress", "inprogress", 5),
    ("Code Review", "review", 3),
    ("Testing", "review", 3),
    ("Blocked", "blocked", None),
    ("Done", "done", None),
  ]
  assert [c["order"] for c in b["columns"]] == list(range(7))

  names = [t["name"] for t in b["taskTypes"]]
  assert len(names) == 21
  assert names[0] == "DSA Problem"
  assert names[-1] == "General"
  assert len(b["labels"]) == 10
  assert b["settings"]["allowComments"] is True
  assert b["settings"]["defaultView"] == "board"


@pytest.mark.anyio
async def test_caller_supplied_lists_are_kept(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(
    client,
    owner,
    title="Custom",
    columns=[{"title": "Todo", "type": "todo"}, {"title": "Shipped", "type": "done"}],
    taskTypes=[{"name": "Leetcode", "color": "#000000", "icon": "x"}],
    labels=[],
    settings={"allowTimeTracking": True},
  )
  assert [(c["title"], c["type"]) for c in b["columns"]] == [("Todo", "todo"), ("Shipped", "done")]
  assert [t["name"] for t in b["taskTypes"]] == ["Leetcode"]
  # empty list counts as absent
  assert len(b["labels"]) == 10
  assert b["settings"]["allowTimeTracking"] is True
  assert b["settings"]["allowComments"] is True


@pytest.mark.anyio
async def test_board_title_validation(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  res = await client.post("/boards", json={"title": "   "}, headers=owner)
  assert res.status_code == 422, res.text
  assert res.json()["ok"] is False
  assert res.json()["error"]["kind"] == "InvalidInput"

  res = await client.post("/boards", json={"title": "x" * 101}, headers=owner)
  assert res.status_code == 422, res.text


@pytest.mark.anyio
async def test_list_boards_newest_first_and_archived_hidden(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  _, other = await make_user("Other")
  first = await create_board(client, owner, title="First")
  second = await create_board(client, owner, title="Second")
  await create_board(client, other, title="Not mine")

  res = await client.get("/boards", headers=owner)
  assert res.status_code == 200, res.text
  assert [b["title"] for b in res.json()] == ["Second", "First"]

  arch = await client.post(f"/boards/{first['id']}/archive", headers=owner)
  assert arch.status_code == 200, arch.text
  assert arch.json()["isArchived"] is True
  assert arch.json()["archivedAt"]

  titles = [b["title"] for b in (await client.get("/boards", headers=owner)).json()]
  assert titles == ["Second"]
  titles = [b["title"] for b in (await client.get("/boards", params={"includeArchived": "true"}, headers=owner)).json()]
  assert titles == ["Second", "First"]

  un = await client.post(f"/boards/{first['id']}/unarchive", headers=owner)
  assert un.status_code == 200, un.text
  assert un.json()["isArchived"] is False
  assert un.json()["archivedAt"] is None
  assert second["id"] in [b["id"] for b in (await client.get("/boards", headers=owner)).json()]


@pytest.mark.anyio
async def test_archived_board_keeps_tasks(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  b = await create_board(client, owner)
  t = await create_task(client, owner, b["id"], title="Keep me")
  assert (await client.post(f"/boards/{b['id']}/archive", headers=owner)).status_code == 200
  res = await client.get(f"/tasks/{t['id']}", headers=owner)
  assert res.status_code == 200, res.text


@pytest.mark.anyio
async def test_update_board_admin_only_and_merges_settings(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  _, member = await make_user("Member")
  b = await create_board(client, owner)
  await join_board(client, member, b)

  res = await client.put(f"/boards/{b['id']}", json={"title": "Nope"}, headers=member)
  assert res.status_code == 403, res.text
  assert res.json()["error"]["kind"] == "Forbidden"

  res = await client.put(
    f"/boards/{b['id']}",
    json={
      "title": "Renamed",
      "settings": {"enableChecklists": True},
      "columns": [{"title": "Doing", "type": "inprogress"}, {"title": "Done", "type": "done"}],
      "labels": [{"name": "Hot", "color": "#ff0000"}],
    },
    headers=owner,
  )
  assert res.status_code == 200, res.text
  out = res.json()
  assert out["title"] == "Renamed"
  assert out["settings"]["enableChecklists"] is True
  assert out["settings"]["allowComments"] is True
  assert [c["title"] for c in out["columns"]] == ["Doing", "Done"]
  assert [lab["name"] for lab in out["labels"]] == ["Hot"]
  # task types untouched by board update
  assert len(out["taskTypes"]) == 21

  res = await client.put(f"/boards/{b['id']}", json={"columns": []}, headers=owner)
  assert res.status_code == 422, res.text


@pytest.mark.anyio
async def test_delete_board_owner_only_and_cascades(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  admin_id, admin = await make_user("Admin")
  b = await create_board(client, owner)
  await join_board(client, admin, b)
  await set_role(client, owner, b["id"], admin_id, "admin")
  t = await create_task(client, owner, b["id"])
  c = await client.post(f"/tasks/{t['id']}/comments", json={"text": "hi"}, headers=owner)
  assert c.status_code == 200, c.text

  res = await client.delete(f"/boards/{b['id']}", headers=admin)
  assert res.status_code == 403, res.text

  res = await client.delete(f"/boards/{b['id']}", headers=owner)
  assert res.status_code == 200, res.text
  assert res.json() == {"ok": True}

  assert (await client.get(f"/boards/{b['id']}", headers=owner)).status_code == 404
  assert (await client.get(f"/tasks/{t['id']}", headers=owner)).status_code == 404


@pytest.mark.anyio
async def test_malformed_and_unknown_ids(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  res = await client.get("/boards/not-a-uuid", headers=owner)
  assert res.status_code == 400, res.text
  assert res.json()["error"]["kind"] == "InvalidInput"

  res = await client.get("/boards/00000000-0000-0000-0000-000000000000", headers=owner)
  assert res.status_code == 404, res.text
  assert res.json()["error"]["kind"] == "NotFound"


@pytest.mark.anyio
async def test_task_type_taxonomy(client: AsyncClient) -> None:
  _, owner = await make_user("Owner")
  _, member = await make_user("Member")
  b = await create_board(client, owner)
  await join_board(client, member, b)

  res = await client.get(f"/task-types/board/{b['id']}", headers=member)
  assert res.status_code == 200, res.text
  assert len(res.json()) == 21

  res = await client.post(f"/task-types/board/{b['id']}", json={"name": "Take-home"}, headers=member)
  assert res.status_code == 403, res.text

  res = await client.post(f"/task-types/board/{b['id']}", json={"name": "Take-home", "icon": "🏠"}, headers=owner)
  assert res.status_code == 200, res.text
  tt = res.json()
  assert tt["isActive"] is True

  dup = await client.post(f"/task-types/board/{b['id']}", json={"name": "take-home"}, headers=owner)
  assert dup.status_code == 409, dup.text
  assert dup.json()["error"]["kind"] == "Conflict"

  upd = await client.put(f"/task-types/board/{b['id']}/{tt['id']}", json={"color": "#123456"}, headers=owner)
  assert upd.status_code == 200, upd.text
  assert upd.json()["color"] == "#123456"

  rename = await client.put(f"/task-types/board/{b['id']}/{tt['id']}", json={"name": "DSA Problem"}, headers=owner)
  assert rename.status_code == 409, rename.text

  gone = await client.delete(f"/task-types/board/{b['id']}/{tt['id']}", headers=owner)
  assert gone.status_code == 200, gone.text
  assert gone.json()["isActive"] is False

  active = [t["name"] for t in (await client.get(f"/task-types/board/{b['id']}", headers=owner)).json()]
  assert "Take-home" not in active
  every = (await client.get(f"/task-types/board/{b['id']}", params={"includeInactive": "true"}, headers=owner)).json()
  assert "Take-home" in [t["name"] for t in every]

  missing = await client.put(
    f"/task-types/board/{b['id']}/00000000-0000-0000-0000-000000000000", json={"color": "#000000"}, headers=owner
  )
  assert missing.status_code == 404, missing.text
