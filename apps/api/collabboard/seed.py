from __future__ import annotations

import asyncio
import logging
import os
import secrets

from sqlalchemy import select

from collabboard.config import configure_logging
from collabboard.db import SessionLocal, init_db
from collabboard.models import Board, BoardList, BoardMember, Task, User
from collabboard.security import hash_password

logger = logging.getLogger(__name__)


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def _ensure_user(db, *, email: str, username: str, env_key: str, created: list[str]) -> User:
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if u:
    return u
  password, generated = _bootstrap_password(env_key)
  u = User(email=email, username=username, password_hash=hash_password(password))
  db.add(u)
  created.append(f"{email}={password} (generated={str(generated).lower()})")
  return u


async def seed() -> None:
  await init_db()
  async with SessionLocal() as db:
    created: list[str] = []
    owner = await _ensure_user(db, email="owner@collabboard.local", username="owner", env_key="SEED_OWNER_PASSWORD", created=created)
    member = await _ensure_user(db, email="member@collabboard.local", username="member", env_key="SEED_MEMBER_PASSWORD", created=created)
    await db.flush()

    if os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y"):
      # Idempotent by title + owner.
      title = "CollabBoard Demo"
      bres = await db.execute(select(Board).where(Board.title == title, Board.owner_id == owner.id))
      board = bres.scalar_one_or_none()
      if not board:
        board = Board(title=title, description="A shared board to try live updates.", owner_id=owner.id)
        db.add(board)
        await db.flush()
        db.add(BoardMember(board_id=board.id, user_id=owner.id))
        db.add(BoardMember(board_id=board.id, user_id=member.id))
        lists = [BoardList(board_id=board.id, title=name, position=idx) for idx, name in enumerate(["To Do", "Doing", "Done"])]
        db.add_all(lists)
        await db.flush()
        samples = [
          (lists[0], "Open this board in two windows", "Changes made in one show up in the other."),
          (lists[0], "Drag a task to another list", ""),
          (lists[1], "Invite a teammate", "Owners can add members by user id."),
        ]
        for idx, (lst, task_title, desc) in enumerate(samples):
          db.add(
            Task(board_id=board.id, list_id=lst.id, title=task_title, description=desc, position=idx, created_by=owner.id)
          )

    await db.commit()
  for line in created:
    logger.info("Seed user created: %s", line)


def main() -> None:
  configure_logging()
  asyncio.run(seed())


if __name__ == "__main__":
  main()
