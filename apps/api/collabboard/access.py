"""Board access gate.

``authorize`` answers owner / member / denied for a user on a board and raises
``NotFound`` when the board does not exist. ``require_board_access`` is the
guard every board, list, task, activity and socket-join path goes through.
"""

from __future__ import annotations

import enum
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabboard.errors import AccessDenied, Forbidden, NotFound
from collabboard.models import Board, BoardMember

logger = logging.getLogger(__name__)


class BoardRole(str, enum.Enum):
  OWNER = "owner"
  MEMBER = "member"
  DENIED = "denied"


async def get_board_or_404(db: AsyncSession, board_id: str) -> Board:
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise NotFound("Board not found")
  return b


async def member_ids(db: AsyncSession, board_id: str) -> list[str]:
  res = await db.execute(
    select(BoardMember.user_id).where(BoardMember.board_id == board_id).order_by(BoardMember.created_at.asc())
  )
  return list(res.scalars().all())


async def role_of(db: AsyncSession, board: Board, user_id: str) -> BoardRole:
  if board.owner_id == user_id:
    return BoardRole.OWNER
  res = await db.execute(
    select(BoardMember.id).where(BoardMember.board_id == board.id, BoardMember.user_id == user_id)
  )
  return BoardRole.MEMBER if res.scalar_one_or_none() else BoardRole.DENIED


async def authorize(db: AsyncSession, user_id: str, board_id: str) -> BoardRole:
  return await role_of(db, await get_board_or_404(db, board_id), user_id)


async def require_board_access(
  db: AsyncSession,
  user_id: str,
  board_id: str,
  *,
  owner_only: bool = False,
  action: str = "access this board",
) -> Board:
  board = await get_board_or_404(db, board_id)
  role = await role_of(db, board, user_id)
  if role == BoardRole.DENIED:
    logger.info("Board access denied", extra={"board_id": board_id, "user_id": user_id})
    raise AccessDenied("Access denied")
  if owner_only and role != BoardRole.OWNER:
    raise Forbidden(f"Only owner can {action}")
  return board
