from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from collabboard.config import settings
from collabboard.db import SessionLocal
from collabboard.models import Activity, BoardList, BoardMember, Task
from conftest import add_member, auth, make_board, make_list, make_task, register


@pytest.mark.anyio
async def test_create_board_owner_is_member(client: AsyncClient) -> None:
  token, user = await register(client, "owner")
  b = await make_board(client, token, "  Roadmap  ")
  assert b["title"] == "Roadmap"
  assert b["ownerId"] == user["id"]
  assert b["background"] == "#0079bf"
  assert [m["id"] for m in b["members"]] == [user["id"]]


@pytest.mark.anyio
async def test_board_title_validation(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  for bad in ["", "   ", "x" * 101, 42]:
    res = await client.post("/boards", json={"title": bad}, headers=auth(token))
    assert res.status_code == 400, (bad, res.text)
  res = await client.post("/boards", json={"title": "ok", "background": "blue"}, headers=auth(token))
  assert res.status_code == 400
  assert "background" in res.json()["error"]


@pytest.mark.anyio
async def test_list_boards_only_returns_member_boards(client: AsyncClient) -> None:
  a_token, _ = await register(client, "alice")
  b_token, b_user = await register(client, "bob")
  mine = await make_board(client, a_token, "Alice board")
  shared = await make_board(client, a_token, "Shared")
  await make_board(client, b_token, "Bob board")
  await add_member(client, a_token, shared["id"], b_user["id"])

  res = await client.get("/boards", headers=auth(b_token))
  assert res.status_code == 200, res.text
  titles = {b["title"] for b in res.json()}
  assert titles == {"Shared", "Bob board"}
  assert mine["id"] not in {b["id"] for b in res.json()}


@pytest.mark.anyio
async def test_board_detail_returns_lists_and_tasks_in_order(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  b = await make_board(client, token)
  l1 = await make_list(client, token, b["id"], "Todo")
  l2 = await make_list(client, token, b["id"], "Done")
  t1 = await make_task(client, token, l1["id"], "first")
  t2 = await make_task(client, token, l1["id"], "second")

  res = await client.get(f"/boards/{b['id']}", headers=auth(token))
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["board"]["id"] == b["id"]
  assert [l["id"] for l in body["lists"]] == [l1["id"], l2["id"]]
  assert [t["id"] for t in body["tasks"]] == [t1["id"], t2["id"]]


@pytest.mark.anyio
async def test_non_member_forbidden_absent_not_found(client: AsyncClient) -> None:
  a_token, _ = await register(client, "alice")
  b_token, _ = await register(client, "bob")
  b = await make_board(client, a_token)

  res = await client.get(f"/boards/{b['id']}", headers=auth(b_token))
  assert res.status_code == 403
  assert res.json() == {"error": "Access denied"}

  res = await client.get("/boards/does-not-exist", headers=auth(b_token))
  assert res.status_code == 404
  assert res.json() == {"error": "Board not found"}


@pytest.mark.anyio
async def test_owner_only_refusal_stays_visible_to_members(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  a_token, _ = await register(client, "alice")
  b_token, b_user = await register(client, "bob")
  b = await make_board(client, a_token)
  await add_member(client, a_token, b["id"], b_user["id"])
  monkeypatch.setattr(settings, "hide_forbidden_as_not_found", True)

  res = await client.delete(f"/boards/{b['id']}", headers=auth(b_token))
  assert res.status_code == 403
  assert res.json() == {"error": "Only owner can delete board"}
  assert (await client.get(f"/boards/{b['id']}", headers=auth(a_token))).status_code == 200

  res = await client.put(f"/boards/{b['id']}", json={"title": "hijack"}, headers=auth(b_token))
  assert res.status_code == 403


@pytest.mark.anyio
async def test_forbidden_can_be_rendered_as_not_found(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  a_token, _ = await register(client, "alice")
  b_token, _ = await register(client, "bob")
  b = await make_board(client, a_token)
  monkeypatch.setattr(settings, "hide_forbidden_as_not_found", True)

  res = await client.get(f"/boards/{b['id']}", headers=auth(b_token))
  assert res.status_code == 404
  assert res.json() == {"error": "Board not found"}


@pytest.mark.anyio
async def test_update_board_partial_fields(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  b = await make_board(client, token, "Old")
  res = await client.put(f"/boards/{b['id']}", json={"background": "#112233"}, headers=auth(token))
  assert res.status_code == 200, res.text
  assert res.json()["title"] == "Old"
  assert res.json()["background"] == "#112233"

  res = await client.put(f"/boards/{b['id']}", json={"title": "New", "description": "d"}, headers=auth(token))
  assert res.status_code == 200, res.text
  assert res.json()["title"] == "New"
  assert res.json()["description"] == "d"


@pytest.mark.anyio
async def test_members_add_and_remove_rules(client: AsyncClient) -> None:
  a_token, a_user = await register(client, "alice")
  b_token, b_user = await register(client, "bob")
  _, c_user = await register(client, "carol")
  b = await make_board(client, a_token)

  res = await client.post(f"/boards/{b['id']}/members", json={"userId": "nobody"}, headers=auth(a_token))
  assert res.status_code == 404
  assert res.json() == {"error": "User not found"}

  out = await add_member(client, a_token, b["id"], b_user["id"])
  assert {m["id"] for m in out["members"]} == {a_user["id"], b_user["id"]}

  res = await client.post(f"/boards/{b['id']}/members", json={"userId": b_user["id"]}, headers=auth(a_token))
  assert res.status_code == 400
  assert res.json() == {"error": "User already a member"}

  # Members can read and write but not manage membership.
  assert (await client.get(f"/boards/{b['id']}", headers=auth(b_token))).status_code == 200
  res = await client.post(f"/boards/{b['id']}/members", json={"userId": c_user["id"]}, headers=auth(b_token))
  assert res.status_code == 403
  assert res.json() == {"error": "Only owner can add members"}

  res = await client.delete(f"/boards/{b['id']}/members/{a_user['id']}", headers=auth(a_token))
  assert res.status_code == 400

  res = await client.delete(f"/boards/{b['id']}/members/{c_user['id']}", headers=auth(a_token))
  assert res.status_code == 404

  res = await client.delete(f"/boards/{b['id']}/members/{b_user['id']}", headers=auth(a_token))
  assert res.status_code == 200, res.text
  assert [m["id"] for m in res.json()["members"]] == [a_user["id"]]
  assert (await client.get(f"/boards/{b['id']}", headers=auth(b_token))).status_code == 403


@pytest.mark.anyio
async def test_delete_board_is_owner_only_and_cascades(client: AsyncClient) -> None:
  a_token, _ = await register(client, "alice")
  b_token, b_user = await register(client, "bob")
  b = await make_board(client, a_token)
  await add_member(client, a_token, b["id"], b_user["id"])
  l = await make_list(client, a_token, b["id"])
  await make_task(client, a_token, l["id"])

  res = await client.delete(f"/boards/{b['id']}", headers=auth(b_token))
  assert res.status_code == 403
  assert res.json() == {"error": "Only owner can delete board"}

  res = await client.delete(f"/boards/{b['id']}", headers=auth(a_token))
  assert res.status_code == 200, res.text
  assert res.json() == {"message": "Board deleted successfully"}

  async with SessionLocal() as db:
    for model in (BoardList, Task, Activity, BoardMember):
      count = (await db.execute(select(func.count()).select_from(model).where(model.board_id == b["id"]))).scalar_one()
      assert count == 0, model.__name__

  assert (await client.get(f"/boards/{b['id']}", headers=auth(a_token))).status_code == 404
