from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard import positions, validation
from collabboard.access import require_board_access
from collabboard.activity import ActivityAction, ActivityEntity, record_activity
from collabboard.deps import get_current_user, get_db, socket_id
from collabboard.errors import NotFound, ValidationFailed
from collabboard.models import BoardList, Task, User
from collabboard.realtime.events import EventKind
from collabboard.realtime.hub import broadcast
from collabboard.schemas import ListCreateIn, ListOut, ListReorderIn, ListUpdateIn, MessageOut
from collabboard.serialize import list_out

router = APIRouter(prefix="/lists", tags=["lists"])


async def _get_list_or_404(db: AsyncSession, list_id: str) -> BoardList:
  res = await db.execute(select(BoardList).where(BoardList.id == list_id))
  l = res.scalar_one_or_none()
  if not l:
    raise NotFound("List not found")
  return l


@router.post("", response_model=ListOut, status_code=status.HTTP_201_CREATED)
async def create_list(
  payload: ListCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> ListOut:
  title = validation.unwrap(validation.title(payload.title, max_length=validation.LIST_TITLE_MAX))
  await require_board_access(db, user.id, payload.boardId)

  pos = await positions.next_position(db, BoardList, BoardList.board_id == payload.boardId)
  l = BoardList(board_id=payload.boardId, title=title, position=pos)
  db.add(l)
  await db.commit()

  await record_activity(
    board_id=l.board_id, actor=user, action=ActivityAction.LIST_CREATED, entity=ActivityEntity.LIST, entity_id=l.id, details={"title": title}
  )
  out = list_out(l)
  await broadcast(EventKind.LIST_CREATED, l.board_id, {"list": out}, origin=origin)
  return out


@router.put("/reorder/positions", response_model=MessageOut)
async def reorder_lists(
  payload: ListReorderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> MessageOut:
  entries = []
  for item in payload.listPositions:
    entries.append((item.listId, validation.unwrap(validation.position(item.position))))
  if not entries:
    return MessageOut(message="Lists reordered successfully")

  ids = {list_id for list_id, _ in entries}
  res = await db.execute(select(BoardList).where(BoardList.id.in_(ids)))
  lists = {l.id: l for l in res.scalars().all()}
  missing = ids - set(lists.keys())
  if missing:
    raise NotFound("List not found")
  board_ids = {l.board_id for l in lists.values()}
  for board_id in sorted(board_ids):
    await require_board_access(db, user.id, board_id)

  # Each entry is applied as given; no compaction, no sibling shifting.
  for list_id, pos in entries:
    lists[list_id].position = pos
  await db.commit()

  for board_id in sorted(board_ids):
    batch = [{"listId": list_id, "position": pos} for list_id, pos in entries if lists[list_id].board_id == board_id]
    await broadcast(EventKind.LISTS_REORDERED, board_id, {"listPositions": batch}, origin=origin)
  return MessageOut(message="Lists reordered successfully")


@router.put("/{list_id}", response_model=ListOut)
async def update_list(
  list_id: str,
  payload: ListUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> ListOut:
  l = await _get_list_or_404(db, list_id)
  await require_board_access(db, user.id, l.board_id)

  fields_set = payload.model_fields_set
  title = None
  pos = None
  if "title" in fields_set and payload.title is not None:
    title = validation.unwrap(validation.title(payload.title, max_length=validation.LIST_TITLE_MAX))
  if "position" in fields_set:
    if payload.position is None:
      raise ValidationFailed("position must be an integer")
    pos = validation.unwrap(validation.position(payload.position))

  if title is not None:
    l.title = title
  if pos is not None:
    l.position = pos
  await db.commit()

  await record_activity(
    board_id=l.board_id, actor=user, action=ActivityAction.LIST_UPDATED, entity=ActivityEntity.LIST, entity_id=l.id, details={"title": l.title}
  )
  out = list_out(l)
  await broadcast(EventKind.LIST_UPDATED, l.board_id, {"list": out}, origin=origin)
  return out


@router.delete("/{list_id}", response_model=MessageOut)
async def delete_list(
  list_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> MessageOut:
  l = await _get_list_or_404(db, list_id)
  await require_board_access(db, user.id, l.board_id)
  board_id, title = l.board_id, l.title

  await db.execute(delete(Task).where(Task.list_id == list_id))
  await db.execute(delete(BoardList).where(BoardList.id == list_id))
  await db.commit()

  await record_activity(
    board_id=board_id, actor=user, action=ActivityAction.LIST_DELETED, entity=ActivityEntity.LIST, entity_id=list_id, details={"title": title}
  )
  await broadcast(EventKind.LIST_DELETED, board_id, {"listId": list_id}, origin=origin)
  return MessageOut(message="List deleted successfully")
