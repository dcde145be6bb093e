from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard.activity import user_ref
from collabboard import validation
from collabboard.config import settings
from collabboard.deps import bearer_token, get_current_user, get_db
from collabboard.errors import Conflict, Unauthenticated
from collabboard.models import AuthToken, User
from collabboard.rate_limit import rate_limit_or_429
from collabboard.schemas import AuthOut, LoginIn, MessageOut, RegisterIn, UserRefOut
from collabboard.security import hash_password, new_token, new_token_expires_at, token_hash, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


async def _issue_token(db: AsyncSession, u: User) -> str:
  token = new_token()
  db.add(AuthToken(user_id=u.id, token_hash=token_hash(token), expires_at=new_token_expires_at()))
  await db.commit()
  return token


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, request: Request, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = request.client.host if request.client else "unknown"
  rate_limit_or_429(key=f"auth:register:ip:{ip}", limit=int(settings.rate_limit_register_ip_per_minute))

  email = payload.email.strip().lower()
  username = payload.username.strip()
  exists = await db.execute(select(User.id).where(or_(User.email == email, User.username == username)))
  if exists.scalar_one_or_none():
    raise Conflict("User with this email or username already exists")

  u = User(email=email, username=username, password_hash=hash_password(payload.password))
  db.add(u)
  await db.flush()
  token = await _issue_token(db, u)
  logger.info("User registered", extra={"user_id": u.id})
  return AuthOut(user=user_ref(u), token=token)


@router.post("/login", response_model=AuthOut)
async def login(payload: LoginIn, request: Request, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = request.client.host if request.client else "unknown"
  rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute))

  email = (payload.email or "").strip().lower()
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    raise Unauthenticated("Invalid credentials")
  token = await _issue_token(db, u)
  return AuthOut(user=user_ref(u), token=token)


@router.get("/me", response_model=UserRefOut)
async def me(user: User = Depends(get_current_user)) -> UserRefOut:
  return user_ref(user)


@router.get("/users/search", response_model=list[UserRefOut])
async def search_users(
  q: str | None = None,
  limit: int = Query(default=settings.user_search_limit_default),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[UserRefOut]:
  """Case-insensitive match on username or email, for picking board members."""
  _, limit = validation.unwrap(validation.page_params(1, limit, max_limit=settings.user_search_limit_max))
  needle = (q or "").strip().lower()
  if not needle:
    return []
  res = await db.execute(
    select(User)
    .where(
      or_(
        func.lower(User.username).contains(needle, autoescape=True),
        func.lower(User.email).contains(needle, autoescape=True),
      )
    )
    .order_by(User.username.asc(), User.id.asc())
    .limit(limit)
  )
  return [user_ref(u) for u in res.scalars().all()]


@router.post("/logout", response_model=MessageOut)
async def logout(request: Request, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MessageOut:
  token = bearer_token(request)
  await db.execute(
    update(AuthToken)
    .where(AuthToken.token_hash == token_hash(token or ""), AuthToken.user_id == user.id)
    .values(revoked_at=datetime.now(timezone.utc))
  )
  await db.commit()
  return MessageOut(message="Logged out")
