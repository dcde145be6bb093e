from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


class UserRefOut(BaseModel):
  id: str
  username: str
  email: str
  avatar: str | None = None


class RegisterIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  username: str = Field(min_length=3, max_length=30)
  password: str = Field(min_length=6, max_length=200)


class LoginIn(BaseModel):
  email: str
  password: str


class AuthOut(BaseModel):
  user: UserRefOut
  token: str


class BoardCreateIn(BaseModel):
  title: Any = None
  description: str | None = None
  background: str | None = None


class BoardUpdateIn(BaseModel):
  title: Any = None
  description: str | None = None
  background: str | None = None


class BoardOut(BaseModel):
  id: str
  title: str
  description: str
  background: str
  owner: UserRefOut | None
  ownerId: str
  members: list[UserRefOut]
  createdAt: datetime
  updatedAt: datetime


class MemberAddIn(BaseModel):
  userId: str = Field(min_length=1)


class ListCreateIn(BaseModel):
  title: Any = None
  boardId: str = Field(min_length=1)


class ListUpdateIn(BaseModel):
  title: Any = None
  position: int | None = None


class ListOut(BaseModel):
  id: str
  boardId: str
  title: str
  position: int
  createdAt: datetime
  updatedAt: datetime


class ListPositionIn(BaseModel):
  listId: str = Field(min_length=1)
  position: int


class ListReorderIn(BaseModel):
  listPositions: list[ListPositionIn]


class LabelIn(BaseModel):
  color: str
  text: str = ""


class TaskCreateIn(BaseModel):
  title: Any = None
  listId: str = Field(min_length=1)
  description: str | None = None
  assignedTo: list[str] | None = None
  labels: list[LabelIn] | None = None
  dueDate: datetime | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  title: Any = None
  description: str | None = None
  assignedTo: list[str] | None = None
  labels: list[LabelIn] | None = None
  dueDate: datetime | None = None
  completed: bool | None = None
  position: int | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskMoveIn(BaseModel):
  listId: str = Field(min_length=1)
  position: int


class TaskPositionIn(BaseModel):
  taskId: str = Field(min_length=1)
  listId: str | None = None
  position: int


class TaskReorderIn(BaseModel):
  taskPositions: list[TaskPositionIn]


class LabelOut(BaseModel):
  color: str
  text: str = ""


class TaskOut(BaseModel):
  id: str
  boardId: str
  listId: str
  title: str
  description: str
  position: int
  assignedTo: list[str]
  labels: list[LabelOut]
  dueDate: datetime | None = None
  completed: bool
  createdBy: str
  createdAt: datetime
  updatedAt: datetime


class BoardDetailOut(BaseModel):
  board: BoardOut
  lists: list[ListOut]
  tasks: list[TaskOut]


class TaskSearchOut(BaseModel):
  tasks: list[TaskOut]
  currentPage: int
  totalPages: int
  total: int


class ActivityOut(BaseModel):
  id: str
  boardId: str
  userId: str
  user: UserRefOut | None = None
  action: str
  entity: str
  entityId: str | None = None
  details: dict[str, Any] = Field(default_factory=dict)
  createdAt: datetime


class ActivityPageOut(BaseModel):
  activities: list[ActivityOut]
  currentPage: int
  totalPages: int
  total: int


class MessageOut(BaseModel):
  message: str
