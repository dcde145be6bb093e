"""Domain constraint checks run before any entity is built.

Every check returns ``Valid`` or ``Invalid`` instead of raising; routers turn an
``Invalid`` into a 400 through ``unwrap``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from collabboard.errors import ValidationFailed

T = TypeVar("T")

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

BOARD_TITLE_MAX = 100
BOARD_DESCRIPTION_MAX = 500
LIST_TITLE_MAX = 100
TASK_TITLE_MAX = 200
TASK_DESCRIPTION_MAX = 2000
LABEL_TEXT_MAX = 50


@dataclass(frozen=True)
class Valid(Generic[T]):
  value: T


@dataclass(frozen=True)
class Invalid:
  message: str


Result = Union[Valid[T], Invalid]


def unwrap(result: Result[T]) -> T:
  if isinstance(result, Invalid):
    raise ValidationFailed(result.message)
  return result.value


def title(value: Any, *, field: str = "title", max_length: int) -> Result[str]:
  if not isinstance(value, str):
    return Invalid(f"{field} is required")
  s = value.strip()
  if not s:
    return Invalid(f"{field} is required")
  if len(s) > max_length:
    return Invalid(f"{field} cannot exceed {max_length} characters")
  return Valid(s)


def description(value: Any, *, max_length: int) -> Result[str]:
  if value is None:
    return Valid("")
  if not isinstance(value, str):
    return Invalid("description must be a string")
  if len(value) > max_length:
    return Invalid(f"description cannot exceed {max_length} characters")
  return Valid(value)


def color(value: Any, *, field: str = "color") -> Result[str]:
  if not isinstance(value, str) or not _HEX_COLOR_RE.fullmatch(value):
    return Invalid(f"{field} must be a hex color like #0079bf")
  return Valid(value)


def position(value: Any, *, field: str = "position") -> Result[int]:
  # bool is an int subclass; reject it explicitly.
  if isinstance(value, bool) or not isinstance(value, int):
    return Invalid(f"{field} must be an integer")
  if value < 0:
    return Invalid(f"{field} must be non-negative")
  return Valid(value)


def labels(value: Any) -> Result[list[dict[str, str]]]:
  if value is None:
    return Valid([])
  if not isinstance(value, list):
    return Invalid("labels must be a list")
  out: list[dict[str, str]] = []
  for raw in value:
    if not isinstance(raw, dict):
      return Invalid("labels must be objects with color and text")
    c = color(raw.get("color"), field="label color")
    if isinstance(c, Invalid):
      return c
    text = raw.get("text") or ""
    if not isinstance(text, str) or len(text) > LABEL_TEXT_MAX:
      return Invalid(f"label text cannot exceed {LABEL_TEXT_MAX} characters")
    out.append({"color": c.value, "text": text})
  return Valid(out)


def id_list(value: Any, *, field: str) -> Result[list[str]]:
  if value is None:
    return Valid([])
  if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
    return Invalid(f"{field} must be a list of ids")
  # keep first occurrence order, drop repeats
  return Valid(list(dict.fromkeys(value)))


def page_params(page: int, limit: int, *, max_limit: int) -> Result[tuple[int, int]]:
  if page < 1:
    return Invalid("page must be at least 1")
  if limit < 1:
    return Invalid("limit must be at least 1")
  return Valid((page, min(limit, max_limit)))
