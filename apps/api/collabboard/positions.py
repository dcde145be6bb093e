"""Integer ordering keys for lists within a board and tasks within a list.

Positions are never compacted and siblings are never shifted implicitly, so two
independent moves can leave duplicate values behind. Everything that orders
items goes through ``sort_key`` / ``order_by`` and breaks ties by creation time,
then id.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession


def _field(item: Any, name: str) -> Any:
  if isinstance(item, Mapping):
    return item.get(name)
  return getattr(item, name, None)


def _ts(value: Any) -> str:
  if isinstance(value, datetime):
    return value.isoformat()
  return str(value or "")


def sort_key(item: Any) -> tuple[int, str, str]:
  # Works for ORM rows and for the plain dicts the client keeps.
  created = _field(item, "created_at")
  if created is None:
    created = _field(item, "createdAt")
  return (int(_field(item, "position") or 0), _ts(created), str(_field(item, "id") or ""))


def sorted_items(items: Iterable[Any]) -> list[Any]:
  return sorted(items, key=sort_key)


def order_by(model: Any) -> tuple:
  return (model.position.asc(), model.created_at.asc(), model.id.asc())


async def next_position(db: AsyncSession, model: Any, *where: Any) -> int:
  res = await db.execute(select(func.max(model.position)).where(*where))
  max_pos = res.scalar_one()
  return (max_pos + 1) if max_pos is not None else 0


def splice(ordered_ids: list[str], moved_id: str, index: int) -> list[str]:
  """Return ``ordered_ids`` with ``moved_id`` removed and re-inserted at ``index``."""
  out = [x for x in ordered_ids if x != moved_id]
  idx = max(0, min(index, len(out)))
  out.insert(idx, moved_id)
  return out


def reindex(ordered_ids: list[str]) -> dict[str, int]:
  return {item_id: idx for idx, item_id in enumerate(ordered_ids)}
