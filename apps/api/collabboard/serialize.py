from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard.access import member_ids
from collabboard.activity import user_ref
from collabboard.models import Board, BoardList, Task, User
from collabboard.schemas import BoardOut, LabelOut, ListOut, TaskOut


def list_out(l: BoardList) -> ListOut:
  return ListOut(
    id=l.id,
    boardId=l.board_id,
    title=l.title,
    position=l.position,
    createdAt=l.created_at,
    updatedAt=l.updated_at,
  )


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=t.board_id,
    listId=t.list_id,
    title=t.title,
    description=t.description or "",
    position=t.position,
    assignedTo=list(t.assigned_to or []),
    labels=[LabelOut(color=x.get("color") or "", text=x.get("text") or "") for x in (t.labels or [])],
    dueDate=t.due_date,
    completed=bool(t.completed),
    createdBy=t.created_by,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def board_out(db: AsyncSession, b: Board) -> BoardOut:
  ids = await member_ids(db, b.id)
  wanted = set(ids) | {b.owner_id}
  ures = await db.execute(select(User).where(User.id.in_(wanted)))
  users = {u.id: u for u in ures.scalars().all()}
  return BoardOut(
    id=b.id,
    title=b.title,
    description=b.description or "",
    background=b.background,
    owner=user_ref(users.get(b.owner_id)),
    ownerId=b.owner_id,
    members=[user_ref(users[uid]) for uid in ids if uid in users],
    createdAt=b.created_at,
    updatedAt=b.updated_at,
  )
