from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import auth, make_board, make_list, make_task, register


@pytest.mark.anyio
async def test_list_positions_append(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  b = await make_board(client, token)
  created = [await make_list(client, token, b["id"], f"L{i}") for i in range(3)]
  assert [l["position"] for l in created] == [0, 1, 2]

  # Positions continue from the max, gaps included.
  res = await client.put(f"/lists/{created[2]['id']}", json={"position": 9}, headers=auth(token))
  assert res.status_code == 200, res.text
  nxt = await make_list(client, token, b["id"], "L3")
  assert nxt["position"] == 10


@pytest.mark.anyio
async def test_list_create_requires_access_and_valid_title(client: AsyncClient) -> None:
  a_token, _ = await register(client, "alice")
  b_token, _ = await register(client, "bob")
  b = await make_board(client, a_token)

  res = await client.post("/lists", json={"title": "x", "boardId": b["id"]}, headers=auth(b_token))
  assert res.status_code == 403
  res = await client.post("/lists", json={"title": "x", "boardId": "missing"}, headers=auth(a_token))
  assert res.status_code == 404
  res = await client.post("/lists", json={"title": "  ", "boardId": b["id"]}, headers=auth(a_token))
  assert res.status_code == 400
  assert res.json() == {"error": "title is required"}


@pytest.mark.anyio
async def test_update_list_rejects_bad_position(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  b = await make_board(client, token)
  l = await make_list(client, token, b["id"])
  for bad in [-1, None, "abc", 1.5]:
    res = await client.put(f"/lists/{l['id']}", json={"position": bad}, headers=auth(token))
    assert res.status_code == 400, (bad, res.text)
  res = await client.put(f"/lists/{l['id']}", json={"title": "Renamed"}, headers=auth(token))
  assert res.status_code == 200
  assert res.json()["title"] == "Renamed"
  assert res.json()["position"] == 0


@pytest.mark.anyio
async def test_delete_list_cascades_tasks(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  b = await make_board(client, token)
  keep = await make_list(client, token, b["id"], "keep")
  gone = await make_list(client, token, b["id"], "gone")
  kept_task = await make_task(client, token, keep["id"])
  gone_task = await make_task(client, token, gone["id"])

  res = await client.delete(f"/lists/{gone['id']}", headers=auth(token))
  assert res.status_code == 200, res.text
  assert res.json() == {"message": "List deleted successfully"}

  assert (await client.get(f"/tasks/{gone_task['id']}", headers=auth(token))).status_code == 404
  detail = (await client.get(f"/boards/{b['id']}", headers=auth(token))).json()
  assert [l["id"] for l in detail["lists"]] == [keep["id"]]
  assert [t["id"] for t in detail["tasks"]] == [kept_task["id"]]
  assert (await client.delete(f"/lists/{gone['id']}", headers=auth(token))).status_code == 404


@pytest.mark.anyio
async def test_reorder_lists_applies_each_entry_and_is_idempotent(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  b = await make_board(client, token)
  l0, l1, l2 = [await make_list(client, token, b["id"], f"L{i}") for i in range(3)]
  body = {"listPositions": [{"listId": l2["id"], "position": 0}, {"listId": l0["id"], "position": 1}, {"listId": l1["id"], "position": 2}]}

  for _ in range(2):
    res = await client.put("/lists/reorder/positions", json=body, headers=auth(token))
    assert res.status_code == 200, res.text
    detail = (await client.get(f"/boards/{b['id']}", headers=auth(token))).json()
    assert [l["id"] for l in detail["lists"]] == [l2["id"], l0["id"], l1["id"]]
    assert [l["position"] for l in detail["lists"]] == [0, 1, 2]


@pytest.mark.anyio
async def test_duplicate_positions_break_ties_by_creation(client: AsyncClient) -> None:
  token, _ = await register(client, "owner")
  b = await make_board(client, token)
  l0, l1, l2 = [await make_list(client, token, b["id"], f"L{i}") for i in range(3)]
  # Only l2 moves; nothing else is shifted, so it collides with l0.
  res = await client.put(
    "/lists/reorder/positions", json={"listPositions": [{"listId": l2["id"], "position": 0}]}, headers=auth(token)
  )
  assert res.status_code == 200, res.text
  detail = (await client.get(f"/boards/{b['id']}", headers=auth(token))).json()
  assert [l["position"] for l in detail["lists"]] == [0, 0, 1]
  assert [l["id"] for l in detail["lists"]] == [l0["id"], l2["id"], l1["id"]]


@pytest.mark.anyio
async def test_reorder_lists_checks_every_board(client: AsyncClient) -> None:
  a_token, _ = await register(client, "alice")
  b_token, _ = await register(client, "bob")
  a_board = await make_board(client, a_token)
  b_board = await make_board(client, b_token)
  a_list = await make_list(client, a_token, a_board["id"])
  b_list = await make_list(client, b_token, b_board["id"])

  res = await client.put(
    "/lists/reorder/positions",
    json={"listPositions": [{"listId": b_list["id"], "position": 3}, {"listId": a_list["id"], "position": 5}]},
    headers=auth(b_token),
  )
  assert res.status_code == 403
  detail = (await client.get(f"/boards/{a_board['id']}", headers=auth(a_token))).json()
  assert detail["lists"][0]["position"] == 0

  res = await client.put(
    "/lists/reorder/positions", json={"listPositions": [{"listId": "missing", "position": 0}]}, headers=auth(b_token)
  )
  assert res.status_code == 404
