from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard.db import SessionLocal
from collabboard.errors import Unauthenticated
from collabboard.models import AuthToken, User
from collabboard.security import as_utc, token_hash


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def bearer_token(request: Request) -> str | None:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    return None
  token = auth.split(" ", 1)[1].strip()
  return token or None


async def authenticate_token(db: AsyncSession, token: str | None) -> User:
  if not token:
    raise Unauthenticated("No authentication token provided")
  res = await db.execute(select(AuthToken).where(AuthToken.token_hash == token_hash(token), AuthToken.revoked_at.is_(None)))
  t = res.scalar_one_or_none()
  if not t:
    raise Unauthenticated("Invalid authentication token")
  if as_utc(t.expires_at) < datetime.now(timezone.utc):
    raise Unauthenticated("Authentication token expired")
  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise Unauthenticated("User not found")
  return u


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  return await authenticate_token(db, bearer_token(request))


def socket_id(request: Request) -> str | None:
  # Connection id of the caller's own realtime socket, if it has one.
  value = (request.headers.get("x-socket-id") or "").strip()
  return value or None
