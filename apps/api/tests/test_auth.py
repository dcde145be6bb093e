from __future__ import annotations

import pytest
from httpx import AsyncClient

from collabboard.config import settings
from conftest import auth, register


@pytest.mark.anyio
async def test_register_login_me_logout(client: AsyncClient) -> None:
  token, user = await register(client, "alice")
  assert token.startswith("cb_")
  assert user["username"] == "alice"

  me = await client.get("/auth/me", headers=auth(token))
  assert me.status_code == 200, me.text
  assert me.json()["id"] == user["id"]

  login = await client.post("/auth/login", json={"email": "ALICE@collabboard.test", "password": "secret123"})
  assert login.status_code == 200, login.text
  second = login.json()["token"]
  assert second != token

  out = await client.post("/auth/logout", headers=auth(token))
  assert out.status_code == 200, out.text
  assert (await client.get("/auth/me", headers=auth(token))).status_code == 401
  # Other sessions stay valid.
  assert (await client.get("/auth/me", headers=auth(second))).status_code == 200


@pytest.mark.anyio
async def test_duplicate_registration_conflicts(client: AsyncClient) -> None:
  await register(client, "alice")
  res = await client.post(
    "/auth/register", json={"email": "other@collabboard.test", "username": "alice", "password": "secret123"}
  )
  assert res.status_code == 409, res.text
  assert "already exists" in res.json()["error"]


@pytest.mark.anyio
async def test_bad_credentials_and_missing_token(client: AsyncClient) -> None:
  await register(client, "alice")
  bad = await client.post("/auth/login", json={"email": "alice@collabboard.test", "password": "wrong-pass"})
  assert bad.status_code == 401
  assert bad.json() == {"error": "Invalid credentials"}

  res = await client.get("/boards")
  assert res.status_code == 401
  assert res.json() == {"error": "No authentication token provided"}

  res = await client.get("/boards", headers=auth("cb_not-a-real-token"))
  assert res.status_code == 401
  assert res.json() == {"error": "Invalid authentication token"}


@pytest.mark.anyio
async def test_short_password_is_a_400(client: AsyncClient) -> None:
  res = await client.post("/auth/register", json={"email": "x@collabboard.test", "username": "xavier", "password": "123"})
  assert res.status_code == 400, res.text
  assert "password" in res.json()["error"]


@pytest.mark.anyio
async def test_login_rate_limited(client: AsyncClient) -> None:
  orig = settings.rate_limit_login_ip_per_minute
  settings.rate_limit_login_ip_per_minute = 3
  try:
    for _ in range(3):
      r = await client.post("/auth/login", json={"email": "nobody@example.com", "password": "bad"})
      assert r.status_code == 401, r.text
    r = await client.post("/auth/login", json={"email": "nobody@example.com", "password": "bad"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after")
  finally:
    settings.rate_limit_login_ip_per_minute = orig


@pytest.mark.anyio
async def test_user_search_matches_username_and_email(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  token, _ = await register(client, "alice")
  _, carol = await register(client, "Carol")
  await register(client, "dave")
  res = await client.post(
    "/auth/register", json={"email": "Mallory_x@elsewhere.test", "username": "mal", "password": "secret123"}
  )
  assert res.status_code == 201, res.text

  res = await client.get("/auth/users/search", params={"q": "CAR"}, headers=auth(token))
  assert res.status_code == 200, res.text
  assert [u["id"] for u in res.json()] == [carol["id"]]
  assert set(res.json()[0]) == {"id", "username", "email", "avatar"}

  res = await client.get("/auth/users/search", params={"q": "mallory_"}, headers=auth(token))
  assert [u["username"] for u in res.json()] == ["mal"]
  # LIKE wildcards are matched literally.
  res = await client.get("/auth/users/search", params={"q": "%"}, headers=auth(token))
  assert res.json() == []

  res = await client.get("/auth/users/search", params={"q": "collabboard.test"}, headers=auth(token))
  assert {u["username"] for u in res.json()} == {"alice", "Carol", "dave"}
  assert (await client.get("/auth/users/search", params={"q": "  "}, headers=auth(token))).json() == []

  monkeypatch.setattr(settings, "user_search_limit_max", 2)
  res = await client.get("/auth/users/search", params={"q": "collabboard.test", "limit": 50}, headers=auth(token))
  assert len(res.json()) == 2
  res = await client.get("/auth/users/search", params={"q": "a", "limit": 0}, headers=auth(token))
  assert res.status_code == 400

  assert (await client.get("/auth/users/search", params={"q": "alice"})).status_code == 401
