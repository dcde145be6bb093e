from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard import validation
from collabboard.access import member_ids, require_board_access
from collabboard.activity import ActivityAction, ActivityEntity, record_activity
from collabboard.config import settings
from collabboard.deps import get_current_user, get_db, socket_id
from collabboard.errors import NotFound, ValidationFailed
from collabboard.models import Board, BoardList, Task, User
from collabboard import positions
from collabboard.realtime.events import EventKind
from collabboard.realtime.hub import broadcast
from collabboard.schemas import (
  MessageOut,
  TaskCreateIn,
  TaskMoveIn,
  TaskOut,
  TaskReorderIn,
  TaskSearchOut,
  TaskUpdateIn,
)
from collabboard.serialize import task_out

router = APIRouter(prefix="/tasks", tags=["tasks"])


async def _get_task_or_404(db: AsyncSession, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFound("Task not found")
  return t


async def _validate_assignees(db: AsyncSession, board: Board, assignees: list[str]) -> None:
  if not assignees:
    return
  allowed = set(await member_ids(db, board.id)) | {board.owner_id}
  if any(a not in allowed for a in assignees):
    raise ValidationFailed("Assignees must be board members")


def _labels(raw: list | None) -> list[dict[str, str]]:
  if raw is None:
    return []
  return validation.unwrap(validation.labels([x.model_dump() for x in raw]))


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
  payload: TaskCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> TaskOut:
  title = validation.unwrap(validation.title(payload.title, max_length=validation.TASK_TITLE_MAX))
  description = validation.unwrap(validation.description(payload.description, max_length=validation.TASK_DESCRIPTION_MAX))
  labels = _labels(payload.labels)
  assignees = validation.unwrap(validation.id_list(payload.assignedTo, field="assignedTo"))

  lres = await db.execute(select(BoardList).where(BoardList.id == payload.listId))
  lst = lres.scalar_one_or_none()
  if not lst:
    raise NotFound("List not found")
  board = await require_board_access(db, user.id, lst.board_id)
  await _validate_assignees(db, board, assignees)

  pos = await positions.next_position(db, Task, Task.list_id == lst.id)
  t = Task(
    board_id=lst.board_id,
    list_id=lst.id,
    title=title,
    description=description,
    position=pos,
    assigned_to=assignees,
    labels=labels,
    due_date=payload.dueDate,
    completed=False,
    created_by=user.id,
  )
  db.add(t)
  await db.commit()

  await record_activity(
    board_id=t.board_id, actor=user, action=ActivityAction.TASK_CREATED, entity=ActivityEntity.TASK, entity_id=t.id, details={"title": title}
  )
  out = task_out(t)
  await broadcast(EventKind.TASK_CREATED, t.board_id, {"task": out}, origin=origin)
  return out


@router.get("/board/{board_id}/search", response_model=TaskSearchOut)
async def search_tasks(
  board_id: str,
  q: str | None = None,
  page: int = Query(default=1),
  limit: int = Query(default=20),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskSearchOut:
  await require_board_access(db, user.id, board_id)
  page, limit = validation.unwrap(validation.page_params(page, limit, max_limit=settings.search_page_size_max))

  cond = [Task.board_id == board_id]
  needle = (q or "").strip().lower()
  if needle:
    cond.append(
      or_(
        func.lower(Task.title).contains(needle, autoescape=True),
        func.lower(Task.description).contains(needle, autoescape=True),
      )
    )
  total_res = await db.execute(select(func.count()).select_from(Task).where(*cond))
  total = int(total_res.scalar_one() or 0)
  res = await db.execute(
    select(Task).where(*cond).order_by(Task.updated_at.desc(), Task.id.asc()).limit(limit).offset((page - 1) * limit)
  )
  return TaskSearchOut(
    tasks=[task_out(t) for t in res.scalars().all()],
    currentPage=page,
    totalPages=math.ceil(total / limit),
    total=total,
  )


@router.put("/reorder/positions", response_model=MessageOut)
async def reorder_tasks(
  payload: TaskReorderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> MessageOut:
  entries = []
  for item in payload.taskPositions:
    entries.append((item.taskId, item.listId, validation.unwrap(validation.position(item.position))))
  if not entries:
    return MessageOut(message="Tasks reordered successfully")

  task_ids = {task_id for task_id, _, _ in entries}
  tres = await db.execute(select(Task).where(Task.id.in_(task_ids)))
  tasks = {t.id: t for t in tres.scalars().all()}
  if task_ids - set(tasks.keys()):
    raise NotFound("Task not found")

  list_ids = {list_id for _, list_id, _ in entries if list_id}
  lists: dict[str, BoardList] = {}
  if list_ids:
    lres = await db.execute(select(BoardList).where(BoardList.id.in_(list_ids)))
    lists = {l.id: l for l in lres.scalars().all()}
  for task_id, list_id, _ in entries:
    if list_id and (list_id not in lists or lists[list_id].board_id != tasks[task_id].board_id):
      raise ValidationFailed("Invalid list")

  board_ids = {t.board_id for t in tasks.values()}
  for board_id in sorted(board_ids):
    await require_board_access(db, user.id, board_id)

  for task_id, list_id, pos in entries:
    t = tasks[task_id]
    if list_id:
      t.list_id = list_id
    t.position = pos
  await db.commit()

  for board_id in sorted(board_ids):
    batch = [
      {"taskId": task_id, "listId": tasks[task_id].list_id, "position": pos}
      for task_id, _, pos in entries
      if tasks[task_id].board_id == board_id
    ]
    await broadcast(EventKind.TASKS_REORDERED, board_id, {"taskPositions": batch}, origin=origin)
  return MessageOut(message="Tasks reordered successfully")


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await _get_task_or_404(db, task_id)
  await require_board_access(db, user.id, t.board_id)
  return task_out(t)


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> TaskOut:
  t = await _get_task_or_404(db, task_id)
  board = await require_board_access(db, user.id, t.board_id)

  fields_set = payload.model_fields_set
  changes: dict = {}
  if "title" in fields_set and payload.title is not None:
    changes["title"] = validation.unwrap(validation.title(payload.title, max_length=validation.TASK_TITLE_MAX))
  if "description" in fields_set:
    changes["description"] = validation.unwrap(
      validation.description(payload.description, max_length=validation.TASK_DESCRIPTION_MAX)
    )
  if "assignedTo" in fields_set and payload.assignedTo is not None:
    assignees = validation.unwrap(validation.id_list(payload.assignedTo, field="assignedTo"))
    await _validate_assignees(db, board, assignees)
    changes["assigned_to"] = assignees
  if "labels" in fields_set and payload.labels is not None:
    changes["labels"] = _labels(payload.labels)
  if "dueDate" in fields_set:
    changes["due_date"] = payload.dueDate
  if "completed" in fields_set and payload.completed is not None:
    changes["completed"] = payload.completed
  if "position" in fields_set:
    if payload.position is None:
      raise ValidationFailed("position must be an integer")
    changes["position"] = validation.unwrap(validation.position(payload.position))

  for attr, value in changes.items():
    setattr(t, attr, value)
  await db.commit()

  await record_activity(
    board_id=t.board_id, actor=user, action=ActivityAction.TASK_UPDATED, entity=ActivityEntity.TASK, entity_id=t.id, details={"title": t.title}
  )
  out = task_out(t)
  await broadcast(EventKind.TASK_UPDATED, t.board_id, {"task": out}, origin=origin)
  return out


@router.put("/{task_id}/move", response_model=TaskOut)
async def move_task(
  task_id: str,
  payload: TaskMoveIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> TaskOut:
  pos = validation.unwrap(validation.position(payload.position))
  t = await _get_task_or_404(db, task_id)
  await require_board_access(db, user.id, t.board_id)

  lres = await db.execute(select(BoardList).where(BoardList.id == payload.listId))
  dest = lres.scalar_one_or_none()
  # The task's board never changes on a move; a list on another board is rejected, not adopted.
  if not dest or dest.board_id != t.board_id:
    raise ValidationFailed("Invalid list")

  from_list = t.list_id
  t.list_id = dest.id
  t.position = pos
  await db.commit()

  await record_activity(
    board_id=t.board_id,
    actor=user,
    action=ActivityAction.TASK_MOVED,
    entity=ActivityEntity.TASK,
    entity_id=t.id,
    details={"title": t.title, "fromList": from_list, "toList": dest.id, "position": pos},
  )
  await broadcast(
    EventKind.TASK_MOVED,
    t.board_id,
    {"taskId": t.id, "fromListId": from_list, "listId": dest.id, "position": pos},
    origin=origin,
  )
  return task_out(t)


@router.delete("/{task_id}", response_model=MessageOut)
async def delete_task(
  task_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  origin: str | None = Depends(socket_id),
) -> MessageOut:
  t = await _get_task_or_404(db, task_id)
  await require_board_access(db, user.id, t.board_id)
  board_id, title = t.board_id, t.title

  await db.execute(delete(Task).where(Task.id == task_id))
  await db.commit()

  await record_activity(
    board_id=board_id, actor=user, action=ActivityAction.TASK_DELETED, entity=ActivityEntity.TASK, entity_id=task_id, details={"title": title}
  )
  await broadcast(EventKind.TASK_DELETED, board_id, {"taskId": task_id}, origin=origin)
  return MessageOut(message="Task deleted successfully")
