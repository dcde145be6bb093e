from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / 'collabboard_test.db'}")

from collabboard.config import settings
from collabboard.main import app
from collabboard.models import Base
from collabboard.rate_limit import limiter


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


def _reset_db() -> None:
  # Sync engine so the same fixture serves anyio tests and TestClient socket tests.
  limiter.reset_prefix("auth:")
  sync_engine = create_engine(settings.database_url.replace("+aiosqlite", ""))
  try:
    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)
  finally:
    sync_engine.dispose()


@pytest.fixture(autouse=True)
def _clean_between_tests():
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. sqlite+aiosqlite:///./collabboard_test.db)."
    )
  _reset_db()
  yield


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


def auth(token: str, *, socket_id: str | None = None) -> dict[str, str]:
  h = {"Authorization": f"Bearer {token}"}
  if socket_id:
    h["X-Socket-Id"] = socket_id
  return h


async def register(client: AsyncClient, name: str) -> tuple[str, dict]:
  res = await client.post(
    "/auth/register",
    json={"email": f"{name}@collabboard.test", "username": name, "password": "secret123"},
  )
  assert res.status_code == 201, res.text
  body = res.json()
  return body["token"], body["user"]


async def make_board(client: AsyncClient, token: str, title: str = "Board") -> dict:
  res = await client.post("/boards", json={"title": title}, headers=auth(token))
  assert res.status_code == 201, res.text
  return res.json()


async def make_list(client: AsyncClient, token: str, board_id: str, title: str = "List") -> dict:
  res = await client.post("/lists", json={"title": title, "boardId": board_id}, headers=auth(token))
  assert res.status_code == 201, res.text
  return res.json()


async def make_task(client: AsyncClient, token: str, list_id: str, title: str = "Task", **fields) -> dict:
  res = await client.post("/tasks", json={"title": title, "listId": list_id, **fields}, headers=auth(token))
  assert res.status_code == 201, res.text
  return res.json()


async def add_member(client: AsyncClient, owner_token: str, board_id: str, user_id: str) -> dict:
  res = await client.post(f"/boards/{board_id}/members", json={"userId": user_id}, headers=auth(owner_token))
  assert res.status_code == 200, res.text
  return res.json()
