from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from fastapi.encoders import jsonable_encoder


class EventKind(str, enum.Enum):
  JOIN_BOARD = "join-board"
  LEAVE_BOARD = "leave-board"
  BOARD_UPDATED = "board-updated"
  BOARD_DELETED = "board-deleted"
  LIST_CREATED = "list-created"
  LIST_UPDATED = "list-updated"
  LIST_DELETED = "list-deleted"
  LISTS_REORDERED = "lists-reordered"
  TASK_CREATED = "task-created"
  TASK_UPDATED = "task-updated"
  TASK_DELETED = "task-deleted"
  TASK_MOVED = "task-moved"
  TASKS_REORDERED = "tasks-reordered"
  MEMBER_ADDED = "member-added"
  MEMBER_REMOVED = "member-removed"
  ACTIVITY_LOGGED = "activity-logged"


# No optimistic client path exists for these, so the originator gets them too.
DELIVER_TO_ALL = frozenset(
  {
    EventKind.BOARD_DELETED,
    EventKind.MEMBER_ADDED,
    EventKind.MEMBER_REMOVED,
    EventKind.ACTIVITY_LOGGED,
  }
)

# Subscription control messages are handled by the socket itself, never fanned out.
CONTROL = frozenset({EventKind.JOIN_BOARD, EventKind.LEAVE_BOARD})


def parse_kind(value: Any) -> EventKind | None:
  try:
    return EventKind(value)
  except ValueError:
    return None


@dataclass(frozen=True)
class BoardEvent:
  kind: EventKind
  board_id: str
  payload: dict[str, Any] = field(default_factory=dict)
  # Re-emitted by a client socket rather than produced by a committed mutation.
  relayed: bool = False

  @property
  def includes_origin(self) -> bool:
    return self.kind in DELIVER_TO_ALL

  def frame(self) -> dict[str, Any]:
    body = jsonable_encoder(self.payload)
    body.pop("type", None)
    body["boardId"] = self.board_id
    return {"type": self.kind.value, **body}
