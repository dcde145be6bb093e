from __future__ import annotations

import enum
import logging
import math
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard.db import SessionLocal
from collabboard.models import Activity, User
from collabboard.realtime.events import EventKind
from collabboard.realtime.hub import broadcast
from collabboard.schemas import ActivityOut, ActivityPageOut, UserRefOut

logger = logging.getLogger(__name__)


class ActivityAction(str, enum.Enum):
  BOARD_CREATED = "board_created"
  BOARD_UPDATED = "board_updated"
  BOARD_DELETED = "board_deleted"
  LIST_CREATED = "list_created"
  LIST_UPDATED = "list_updated"
  LIST_DELETED = "list_deleted"
  TASK_CREATED = "task_created"
  TASK_UPDATED = "task_updated"
  TASK_DELETED = "task_deleted"
  TASK_MOVED = "task_moved"
  MEMBER_ADDED = "member_added"
  MEMBER_REMOVED = "member_removed"


class ActivityEntity(str, enum.Enum):
  BOARD = "board"
  LIST = "list"
  TASK = "task"
  MEMBER = "member"


def user_ref(u: User | None) -> UserRefOut | None:
  if u is None:
    return None
  return UserRefOut(id=u.id, username=u.username, email=u.email, avatar=u.avatar)


def activity_out(a: Activity, user: User | None) -> ActivityOut:
  return ActivityOut(
    id=a.id,
    boardId=a.board_id,
    userId=a.user_id,
    user=user_ref(user),
    action=a.action,
    entity=a.entity,
    entityId=a.entity_id,
    details=a.details or {},
    createdAt=a.created_at,
  )


async def _append(
  *,
  board_id: str,
  user_id: str,
  action: ActivityAction,
  entity: ActivityEntity,
  entity_id: str | None,
  details: dict[str, Any],
) -> Activity:
  # Own session: a failed append must not touch the caller's committed work.
  async with SessionLocal() as log_db:
    a = Activity(
      board_id=board_id,
      user_id=user_id,
      action=action.value,
      entity=entity.value,
      entity_id=entity_id,
      details=jsonable_encoder(details),
    )
    log_db.add(a)
    await log_db.commit()
    return a


async def record_activity(
  *,
  board_id: str,
  actor: User,
  action: ActivityAction,
  entity: ActivityEntity,
  entity_id: str | None,
  details: dict[str, Any] | None = None,
  announce: bool = True,
) -> Activity | None:
  """
  Append one ledger entry for an accepted mutation.

  Called after the mutation is committed. Failures are logged and swallowed;
  the caller's response is never affected. On success the entry is announced
  to every socket on the board topic.
  """
  try:
    a = await _append(
      board_id=board_id,
      user_id=actor.id,
      action=action,
      entity=entity,
      entity_id=entity_id,
      details=details or {},
    )
  except Exception:
    logger.exception(
      "Activity log append failed",
      extra={"board_id": board_id, "action": action.value, "entity_id": entity_id},
    )
    return None
  if announce:
    await broadcast(EventKind.ACTIVITY_LOGGED, board_id, {"activity": activity_out(a, actor)})
  return a


async def list_activities(db: AsyncSession, *, board_id: str, page: int, limit: int) -> ActivityPageOut:
  total_res = await db.execute(select(func.count()).select_from(Activity).where(Activity.board_id == board_id))
  total = int(total_res.scalar_one() or 0)
  res = await db.execute(
    select(Activity)
    .where(Activity.board_id == board_id)
    .order_by(Activity.created_at.desc(), Activity.seq.desc())
    .limit(limit)
    .offset((page - 1) * limit)
  )
  rows = res.scalars().all()

  user_ids = {a.user_id for a in rows if a.user_id}
  users: dict[str, User] = {}
  if user_ids:
    ures = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {u.id: u for u in ures.scalars().all()}

  return ActivityPageOut(
    activities=[activity_out(a, users.get(a.user_id)) for a in rows],
    currentPage=page,
    totalPages=math.ceil(total / limit) if limit else 0,
    total=total,
  )
