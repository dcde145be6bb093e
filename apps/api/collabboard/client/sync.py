from __future__ import annotations

import logging
from typing import Any, Protocol

from collabboard.client.api import ApiError, BoardApi
from collabboard.client.state import BoardState
from collabboard.positions import reindex, splice
from collabboard.realtime.events import EventKind, parse_kind

logger = logging.getLogger(__name__)


class RealtimeTransport(Protocol):
  async def emit(self, kind: str, payload: dict[str, Any]) -> None: ...


class BoardSync:
  """
  Keeps a ``BoardState`` in step with the server.

  Notes:
  - Local drags are applied optimistically, then sent. A failed request throws
    the optimistic state away and reloads the whole board.
  - Remote events are merged idempotently; events for other boards are ignored.
  - There is no replay: after a reconnect the board is fetched again in full.
  """

  def __init__(self, api: BoardApi, state: BoardState, transport: RealtimeTransport | None = None) -> None:
    self.api = api
    self.state = state
    self.transport = transport

  @property
  def board_id(self) -> str:
    return self.state.board_id

  async def reload(self) -> None:
    data = await self.api.get_board(self.board_id)
    self.state.load(data["board"], data.get("lists") or [], data.get("tasks") or [])

  async def _emit(self, kind: EventKind, payload: dict[str, Any]) -> None:
    if self.transport is None:
      return
    try:
      await self.transport.emit(kind.value, {"boardId": self.board_id, **payload})
    except Exception as e:
      logger.warning("Realtime emit failed", extra={"event": kind.value, "board_id": self.board_id, "error": str(e)})

  async def move_task(self, task_id: str, dest_list_id: str, index: int) -> bool:
    if task_id not in self.state.tasks or dest_list_id not in self.state.lists:
      await self.reload()
      return False

    order = splice([t["id"] for t in self.state.tasks_in(dest_list_id)], task_id, index)
    new_positions = reindex(order)
    position = new_positions[task_id]
    before = {tid: self.state.tasks[tid].get("position") for tid in new_positions}
    self.state.apply_task_positions(
      [{"taskId": tid, "listId": dest_list_id, "position": pos} for tid, pos in new_positions.items()]
    )
    # The server never shifts siblings, so every sibling whose slot changed is sent too.
    shifted = [
      {"taskId": tid, "listId": dest_list_id, "position": pos}
      for tid, pos in new_positions.items()
      if tid != task_id and before[tid] != pos
    ]

    try:
      await self.api.move_task(task_id, dest_list_id, position)
      if shifted:
        await self.api.reorder_tasks(shifted)
    except ApiError as e:
      logger.warning("Task move rejected; reloading board", extra={"task_id": task_id, "status": e.status_code, "error": e.message})
      await self.reload()
      return False

    await self._emit(EventKind.TASK_MOVED, {"taskId": task_id, "listId": dest_list_id, "position": position})
    if shifted:
      await self._emit(EventKind.TASKS_REORDERED, {"taskPositions": shifted})
    return True

  async def reorder_lists(self, list_ids: list[str]) -> bool:
    known = [lid for lid in list_ids if lid in self.state.lists]
    batch = [{"listId": lid, "position": pos} for lid, pos in reindex(known).items()]
    self.state.apply_list_positions(batch)

    try:
      await self.api.reorder_lists(batch)
    except ApiError as e:
      logger.warning("List reorder rejected; reloading board", extra={"board_id": self.board_id, "status": e.status_code, "error": e.message})
      await self.reload()
      return False

    await self._emit(EventKind.LISTS_REORDERED, {"listPositions": batch})
    return True

  async def apply_remote(self, event: dict[str, Any]) -> bool:
    """Merge one remote frame. Returns True when local state changed."""
    kind = parse_kind(event.get("type"))
    if kind is None or event.get("boardId") != self.board_id:
      return False
    s = self.state

    if kind == EventKind.BOARD_UPDATED:
      return s.update_board(event.get("board") or {})
    if kind == EventKind.BOARD_DELETED:
      s.mark_board_deleted()
      return True
    if kind in (EventKind.MEMBER_ADDED, EventKind.MEMBER_REMOVED):
      return s.update_board(event["board"]) if event.get("board") else False
    if kind == EventKind.ACTIVITY_LOGGED:
      return s.add_activity(event.get("activity") or {})

    if kind == EventKind.LIST_CREATED:
      return s.add_list(event.get("list") or {})
    if kind == EventKind.LIST_UPDATED:
      return s.update_list(event.get("list") or {})
    if kind == EventKind.LIST_DELETED:
      return s.remove_list(event.get("listId") or "")
    if kind == EventKind.LISTS_REORDERED:
      return s.apply_list_positions(event.get("listPositions") or []) > 0

    if kind == EventKind.TASK_CREATED:
      return s.add_task(event.get("task") or {})
    if kind == EventKind.TASK_UPDATED:
      return s.update_task(event.get("task") or {})
    if kind == EventKind.TASK_DELETED:
      return s.remove_task(event.get("taskId") or "")
    if kind == EventKind.TASK_MOVED:
      task_id = event.get("taskId") or ""
      if task_id in s.deleted:
        return False
      if task_id not in s.tasks:
        # A move frame does not carry the task itself.
        await self.reload()
        return True
      return s.move_task(task_id, event["listId"], event["position"])
    if kind == EventKind.TASKS_REORDERED:
      return s.apply_task_positions(event.get("taskPositions") or []) > 0
    return False

  async def on_reconnect(self) -> None:
    await self.reload()
    if self.transport is not None:
      await self.transport.emit(EventKind.JOIN_BOARD.value, {"boardId": self.board_id})
