"""Local board state kept by a client that is viewing one board.

All changes go through the transition methods below. Remote events are treated
as commutative hints: upserts merge into whatever is there, and anything the
client has seen deleted stays deleted, so replaying an event is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from collabboard.positions import sorted_items

ACTIVITY_KEEP = 50


@dataclass
class BoardState:
  board_id: str
  board: dict[str, Any] | None = None
  lists: dict[str, dict[str, Any]] = field(default_factory=dict)
  tasks: dict[str, dict[str, Any]] = field(default_factory=dict)
  deleted: set[str] = field(default_factory=set)
  activities: list[dict[str, Any]] = field(default_factory=list)
  board_deleted: bool = False

  def load(self, board: dict[str, Any], lists: list[dict[str, Any]], tasks: list[dict[str, Any]]) -> None:
    """Replace everything with an authoritative snapshot."""
    self.board = dict(board)
    self.lists = {l["id"]: dict(l) for l in lists}
    self.tasks = {t["id"]: dict(t) for t in tasks}
    # Anything present in the snapshot exists again, e.g. after a failed optimistic delete.
    self.deleted -= set(self.lists) | set(self.tasks)
    self.board_deleted = False

  def update_board(self, board: dict[str, Any]) -> bool:
    if self.board_deleted:
      return False
    self.board = {**(self.board or {}), **board}
    return True

  def mark_board_deleted(self) -> None:
    self.board_deleted = True
    self.deleted.add(self.board_id)
    self.deleted.update(self.lists)
    self.deleted.update(self.tasks)
    self.lists.clear()
    self.tasks.clear()

  def add_list(self, lst: dict[str, Any]) -> bool:
    return self.update_list(lst)

  def update_list(self, lst: dict[str, Any]) -> bool:
    list_id = lst.get("id")
    if not list_id or list_id in self.deleted:
      return False
    self.lists[list_id] = {**self.lists.get(list_id, {}), **lst}
    return True

  def remove_list(self, list_id: str) -> bool:
    self.deleted.add(list_id)
    existed = self.lists.pop(list_id, None) is not None
    for task_id in [tid for tid, t in self.tasks.items() if t.get("listId") == list_id]:
      self.remove_task(task_id)
    return existed

  def add_task(self, task: dict[str, Any]) -> bool:
    return self.update_task(task)

  def update_task(self, task: dict[str, Any]) -> bool:
    task_id = task.get("id")
    if not task_id or task_id in self.deleted:
      return False
    if task.get("listId") in self.deleted:
      return False
    self.tasks[task_id] = {**self.tasks.get(task_id, {}), **task}
    return True

  def remove_task(self, task_id: str) -> bool:
    self.deleted.add(task_id)
    return self.tasks.pop(task_id, None) is not None

  def move_task(self, task_id: str, list_id: str, position: int) -> bool:
    t = self.tasks.get(task_id)
    if t is None or list_id in self.deleted:
      return False
    t["listId"] = list_id
    t["position"] = position
    return True

  def apply_task_positions(self, entries: list[dict[str, Any]]) -> int:
    applied = 0
    for e in entries:
      t = self.tasks.get(e.get("taskId"))
      if t is None:
        continue
      if e.get("listId"):
        t["listId"] = e["listId"]
      t["position"] = e["position"]
      applied += 1
    return applied

  def apply_list_positions(self, entries: list[dict[str, Any]]) -> int:
    applied = 0
    for e in entries:
      l = self.lists.get(e.get("listId"))
      if l is None:
        continue
      l["position"] = e["position"]
      applied += 1
    return applied

  def add_activity(self, activity: dict[str, Any]) -> bool:
    if any(a.get("id") == activity.get("id") for a in self.activities):
      return False
    self.activities.insert(0, activity)
    del self.activities[ACTIVITY_KEEP:]
    return True

  def ordered_lists(self) -> list[dict[str, Any]]:
    return sorted_items(self.lists.values())

  def tasks_in(self, list_id: str) -> list[dict[str, Any]]:
    return sorted_items(t for t in self.tasks.values() if t.get("listId") == list_id)
