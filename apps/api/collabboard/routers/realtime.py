from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from collabboard.access import require_board_access
from collabboard.config import settings
from collabboard.db import SessionLocal
from collabboard.deps import authenticate_token
from collabboard.errors import BoardError, public_error
from collabboard.realtime.events import CONTROL, BoardEvent, EventKind, parse_kind
from collabboard.realtime.hub import Connection, ConnectionState, hub

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


def _handshake_token(websocket: WebSocket) -> str | None:
  token = (websocket.query_params.get("token") or "").strip()
  if token:
    return token
  auth = websocket.headers.get("authorization") or ""
  if auth.lower().startswith("bearer "):
    return auth.split(" ", 1)[1].strip() or None
  return None


async def _error(conn: Connection, message: str, **extra: Any) -> None:
  await conn.send({"type": "error", "message": message, **extra})


async def _handle_join(conn: Connection, board_id: Any) -> None:
  if not isinstance(board_id, str) or not board_id:
    await _error(conn, "boardId is required", event=EventKind.JOIN_BOARD.value)
    return
  try:
    async with SessionLocal() as db:
      await require_board_access(db, conn.user_id, board_id)
  except BoardError as e:
    await _error(conn, public_error(e)[1], event=EventKind.JOIN_BOARD.value, boardId=board_id)
    return
  hub.join(conn, board_id)
  await conn.send({"type": "joined", "boardId": board_id})


async def _handle_leave(conn: Connection, board_id: Any) -> None:
  if isinstance(board_id, str) and board_id:
    hub.leave(conn, board_id)
  await conn.send({"type": "left", "boardId": board_id})


async def _handle_relay(conn: Connection, kind: EventKind, message: dict[str, Any]) -> None:
  board_id = message.get("boardId")
  if not settings.relay_client_events:
    await _error(conn, "Client events are not relayed", event=kind.value)
    return
  if not board_id or conn.board_id != board_id:
    await _error(conn, "Join the board before emitting events", event=kind.value)
    return
  # Membership can change while the socket stays subscribed.
  try:
    async with SessionLocal() as db:
      await require_board_access(db, conn.user_id, board_id)
  except BoardError as e:
    hub.leave(conn, board_id)
    await _error(conn, public_error(e)[1], event=kind.value, boardId=board_id)
    return
  payload = {k: v for k, v in message.items() if k not in ("type", "boardId")}
  await hub.publish(BoardEvent(kind=kind, board_id=board_id, payload=payload, relayed=True), exclude=conn.id)


async def _dispatch(conn: Connection, raw: str) -> None:
  try:
    message = json.loads(raw)
  except ValueError:
    await _error(conn, "Invalid JSON")
    return
  if not isinstance(message, dict):
    await _error(conn, "Message must be an object")
    return

  msg_type = message.get("type")
  if msg_type == "ping":
    await conn.send({"type": "pong"})
    return
  kind = parse_kind(msg_type)
  if kind is None:
    await _error(conn, f"Unknown message type: {msg_type}")
    return
  if kind == EventKind.JOIN_BOARD:
    await _handle_join(conn, message.get("boardId"))
  elif kind == EventKind.LEAVE_BOARD:
    await _handle_leave(conn, message.get("boardId"))
  elif kind not in CONTROL:
    await _handle_relay(conn, kind, message)


@router.websocket("/ws")
async def board_socket(websocket: WebSocket) -> None:
  conn = hub.open(websocket)
  try:
    async with SessionLocal() as db:
      user = await authenticate_token(db, _handshake_token(websocket))
  except BoardError as e:
    hub.reject(conn)
    logger.info("Socket handshake rejected", extra={"connection_id": conn.id, "reason": e.message})
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return

  await hub.accept(conn, user.id)
  try:
    await conn.send({"type": "connected", "connectionId": conn.id})
    while conn.state == ConnectionState.CONNECTED:
      message = await websocket.receive()
      if message["type"] == "websocket.disconnect":
        break
      raw = message.get("text")
      if raw is None:
        await _error(conn, "Binary frames are not supported")
        continue
      await _dispatch(conn, raw)
  except WebSocketDisconnect:
    pass
  finally:
    hub.disconnect(conn)


@router.get("/ws/stats")
async def socket_stats() -> dict[str, int]:
  return hub.stats()
