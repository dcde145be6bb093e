from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard import positions, validation
from collabboard.access import require_board_access
from collabboard.activity import ActivityAction, ActivityEntity, list_activities, record_activity
from collabboard.config import settings
from collabboard.deps import get_current_user, get_db, socket_id
from collabboard.errors import NotFound, ValidationFailed
from collabboard.models import Activity, Board, BoardList, BoardMember, Task, User
from collabboard.realtime.events import EventKind
from collabboard.realtime.hub import broadcast
from collabboard.schemas import (
  ActivityPageOut,
  BoardCreateIn,
  BoardDetailOut,
  BoardOut,
  BoardUpdateIn,
  MemberAddIn,
  MessageOut,
)
from collabboard.serialize import board_out, list_out, task_out

router = APIRouter(prefix="/boards", tags=["boards"])
logger = logging.getLogger(__name__)


async def _delete_board_everything(db: AsyncSession, *, board_id: str) -> None:
  # One transaction: either the whole board goes or nothing does.
  steps = [
    ("tasks", delete(Task).where(Task.board_id == board_id)),
    ("lists", delete(BoardList).where(BoardList.board_id == board_id)),
    ("activities", delete(Activity).where(Activity.board_id == board_id)),
    ("members", delete(BoardMember).where(BoardMember.board_id == board_id)),
    ("board", delete(Board).where(Board.id == board_id)),
  ]
  for name, stmt in steps:
    res = await db.execute(stmt)
    logger.debug("Board cascade step", extra={"board_id": board_id, "step": name, "rows": res.rowcount})
  await db.commit()


@router.get("", response_model=list[BoardOut])
async def list_boards(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[BoardOut]:
  res = await db.execute(
    select(Board)
    .join(BoardMember, BoardMember.board_id == Board.id)
    .where(BoardMember.user_id == user.id)
    .order_by(Board.updated_at.desc())
  )
  return [await board_out(db, b) for b in res.scalars().unique().all()]


@router.post("", response_model=BoardOut, status_code=status.HTTP_201_CREATED)
async def create_board(payload: BoardCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  title = validation.unwrap(validation.title(payload.title, max_length=validation.BOARD_TITLE_MAX))
  description = validation.unwrap(validation.description(payload.description, max_length=validation.BOARD_DESCRIPTION_MAX))
  background = "#0079bf"
  if payload.background is not None:
    background = validation.unwrap(validation.color(payload.background, field="background"))

  b = Board(title=title, description=description, background=background, owner_id=user.id)
  db.add(b)
  await db.flush()
  db.add(BoardMember(board_id=b.id, user_id=user.id))
  await db.commit()

  await record_activity(
    board_id=b.id, actor=user, action=ActivityAction.BOARD_CREATED, entity=ActivityEntity.BOARD, entity_id=b.id, details={"title": title}
  )
  return await board_out(db, b)


@router.get("/{board_id}", response_model=BoardDetailOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardDetailOut:
  b = await require_board_access(db, user.id, board_id)
  lres = await db.execute(select(BoardList).where(BoardList.board_id == board_id).order_by(*positions.order_by(BoardList)))
  tres = await db.execute(select(Task).where(Task.board_id == board_id).order_by(*positions.order_by(Task)))
  return BoardDetailOut(
    board=await board_out(db, b),
    lists=[list_out(l) for l in lres.scalars().all()],
    tasks=[task_out(t) for t in tres.scalars().all()],
  )


@router.put("/{board_id}", response_model=BoardOut)
async def update_board(
  board_id: str,
  payload: BoardUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> BoardOut:
  b = await require_board_access(db, user.id, board_id)
  fields_set = payload.model_fields_set
  title = description = background = None
  if "title" in fields_set and payload.title is not None:
    title = validation.unwrap(validation.title(payload.title, max_length=validation.BOARD_TITLE_MAX))
  if "description" in fields_set:
    description = validation.unwrap(validation.description(payload.description, max_length=validation.BOARD_DESCRIPTION_MAX))
  if "background" in fields_set and payload.background is not None:
    background = validation.unwrap(validation.color(payload.background, field="background"))

  if title is not None:
    b.title = title
  if description is not None:
    b.description = description
  if background is not None:
    b.background = background
  await db.commit()

  await record_activity(
    board_id=b.id, actor=user, action=ActivityAction.BOARD_UPDATED, entity=ActivityEntity.BOARD, entity_id=b.id, details={"title": b.title}
  )
  out = await board_out(db, b)
  await broadcast(EventKind.BOARD_UPDATED, b.id, {"board": out}, origin=origin)
  return out


@router.delete("/{board_id}", response_model=MessageOut)
async def delete_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MessageOut:
  b = await require_board_access(db, user.id, board_id, owner_only=True, action="delete board")
  title = b.title
  # Logged first so the cascade below removes this entry along with the rest.
  await record_activity(
    board_id=board_id, actor=user, action=ActivityAction.BOARD_DELETED, entity=ActivityEntity.BOARD, entity_id=board_id, details={"title": title}
  )
  await _delete_board_everything(db, board_id=board_id)
  logger.info("Board deleted", extra={"board_id": board_id, "user_id": user.id})
  await broadcast(EventKind.BOARD_DELETED, board_id, {"boardId": board_id, "title": title})
  return MessageOut(message="Board deleted successfully")


@router.post("/{board_id}/members", response_model=BoardOut)
async def add_member(board_id: str, payload: MemberAddIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = await require_board_access(db, user.id, board_id, owner_only=True, action="add members")
  ures = await db.execute(select(User).where(User.id == payload.userId))
  member = ures.scalar_one_or_none()
  if not member:
    raise NotFound("User not found")
  existing = await db.execute(select(BoardMember.id).where(BoardMember.board_id == board_id, BoardMember.user_id == member.id))
  if existing.scalar_one_or_none():
    raise ValidationFailed("User already a member")
  db.add(BoardMember(board_id=board_id, user_id=member.id))
  await db.commit()

  await record_activity(
    board_id=board_id,
    actor=user,
    action=ActivityAction.MEMBER_ADDED,
    entity=ActivityEntity.MEMBER,
    entity_id=member.id,
    details={"username": member.username},
  )
  out = await board_out(db, b)
  await broadcast(EventKind.MEMBER_ADDED, board_id, {"board": out, "userId": member.id})
  return out


@router.delete("/{board_id}/members/{member_id}", response_model=BoardOut)
async def remove_member(board_id: str, member_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = await require_board_access(db, user.id, board_id, owner_only=True, action="remove members")
  if member_id == b.owner_id:
    raise ValidationFailed("Owner cannot be removed from the board")
  res = await db.execute(delete(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == member_id))
  if not res.rowcount:
    await db.rollback()
    raise NotFound("User is not a member")
  await db.commit()

  out = await board_out(db, b)
  await broadcast(EventKind.MEMBER_REMOVED, board_id, {"board": out, "userId": member_id})
  await record_activity(
    board_id=board_id, actor=user, action=ActivityAction.MEMBER_REMOVED, entity=ActivityEntity.MEMBER, entity_id=member_id
  )
  return out


@router.get("/{board_id}/activities", response_model=ActivityPageOut)
async def get_activities(
  board_id: str,
  page: int = Query(default=1),
  limit: int | None = Query(default=None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ActivityPageOut:
  await require_board_access(db, user.id, board_id)
  page, limit = validation.unwrap(
    validation.page_params(page, limit or settings.activity_page_size_default, max_limit=settings.activity_page_size_max)
  )
  return await list_activities(db, board_id=board_id, page=page, limit=limit)
