from __future__ import annotations

import asyncio
import enum
import json
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Protocol

from collabboard.config import settings
from collabboard.metrics import runtime_metrics
from collabboard.realtime.events import BoardEvent, EventKind

logger = logging.getLogger(__name__)


class SocketLike(Protocol):
  async def accept(self) -> None: ...

  async def send_text(self, data: str) -> None: ...


class ConnectionState(str, enum.Enum):
  DISCONNECTED = "disconnected"
  CONNECTING = "connecting"
  CONNECTED = "connected"


@dataclass(eq=False)
class Connection:
  websocket: SocketLike
  id: str = field(default_factory=lambda: "sock_" + secrets.token_urlsafe(9))
  user_id: str | None = None
  state: ConnectionState = ConnectionState.CONNECTING
  board_id: str | None = None

  async def send(self, frame: dict[str, Any]) -> None:
    await self.websocket.send_text(json.dumps(frame, default=str))


class BoardHub:
  """
  Topic registry for board sockets.

  Notes:
  - One topic per board id; a connection sits in zero or one topic.
  - Only the socket lifecycle (accept / join / leave / disconnect) mutates the
    registry. Request handlers only call ``publish``.
  - Delivery is best effort, with no queue or replay. Sends run
    concurrently and each is bounded by ``send_timeout``; a socket that fails
    or stalls is dropped.
  - A ``member-removed`` event unsubscribes the removed user's sockets from
    that board before anything else is sent, then tells them with a ``left``
    frame.
  """

  def __init__(self, send_timeout: float = 2.0) -> None:
    self.send_timeout = send_timeout
    self._connections: dict[str, Connection] = {}
    self._topics: dict[str, set[str]] = {}

  def open(self, websocket: SocketLike) -> Connection:
    return Connection(websocket=websocket)

  async def accept(self, conn: Connection, user_id: str) -> None:
    if conn.state != ConnectionState.CONNECTING:
      raise RuntimeError(f"cannot accept connection in state {conn.state.value}")
    await conn.websocket.accept()
    conn.user_id = user_id
    conn.state = ConnectionState.CONNECTED
    self._connections[conn.id] = conn
    logger.info("Socket connected", extra={"connection_id": conn.id, "user_id": user_id, "total_connections": len(self._connections)})

  def reject(self, conn: Connection) -> None:
    conn.state = ConnectionState.DISCONNECTED

  def join(self, conn: Connection, board_id: str) -> bool:
    """Subscribe ``conn`` to ``board_id``. Returns False when already subscribed."""
    if conn.state != ConnectionState.CONNECTED:
      raise RuntimeError("join requires a connected socket")
    if conn.board_id == board_id:
      return False
    if conn.board_id is not None:
      self._discard(conn, conn.board_id)
    self._topics.setdefault(board_id, set()).add(conn.id)
    conn.board_id = board_id
    logger.info("Socket joined board", extra={"connection_id": conn.id, "user_id": conn.user_id, "board_id": board_id})
    return True

  def leave(self, conn: Connection, board_id: str) -> bool:
    if conn.board_id != board_id:
      return False
    self._discard(conn, board_id)
    conn.board_id = None
    logger.info("Socket left board", extra={"connection_id": conn.id, "user_id": conn.user_id, "board_id": board_id})
    return True

  def disconnect(self, conn: Connection) -> None:
    if conn.board_id is not None:
      self._discard(conn, conn.board_id)
      conn.board_id = None
    if self._connections.pop(conn.id, None) is not None:
      logger.info("Socket disconnected", extra={"connection_id": conn.id, "total_connections": len(self._connections)})
    conn.state = ConnectionState.DISCONNECTED

  def _discard(self, conn: Connection, board_id: str) -> None:
    members = self._topics.get(board_id)
    if not members:
      return
    members.discard(conn.id)
    if not members:
      del self._topics[board_id]

  async def publish(self, event: BoardEvent, *, exclude: str | None = None) -> int:
    """Fan ``event`` out to its board topic. Returns the number of sockets reached."""
    ids = list(self._topics.get(event.board_id, ()))
    if not ids:
      return 0
    frame = event.frame()
    targets: list[Connection] = []
    for cid in ids:
      if exclude is not None and cid == exclude and not event.includes_origin:
        continue
      conn = self._connections.get(cid)
      if conn is not None:
        targets.append(conn)
    evicted: list[Connection] = []
    if event.kind == EventKind.MEMBER_REMOVED and not event.relayed:
      removed = event.payload.get("userId")
      evicted = [conn for conn in targets if conn.user_id is not None and conn.user_id == removed]
      for conn in evicted:
        self.leave(conn, event.board_id)
    results = await asyncio.gather(*(self._deliver(conn, frame, event.kind) for conn in targets))

    delivered = 0
    failed: list[Connection] = []
    for conn, ok in zip(targets, results):
      if ok:
        delivered += 1
      else:
        failed.append(conn)
    for conn in failed:
      self.disconnect(conn)

    for conn in evicted:
      if conn in failed:
        continue
      if not await self._deliver(conn, {"type": "left", "boardId": event.board_id, "reason": "removed"}, event.kind):
        self.disconnect(conn)

    runtime_metrics.observe_publish(event.kind.value, delivered=delivered, failed=len(failed))
    return delivered

  async def _deliver(self, conn: Connection, frame: dict[str, Any], kind: EventKind) -> bool:
    try:
      await asyncio.wait_for(conn.send(frame), timeout=self.send_timeout)
      return True
    except asyncio.TimeoutError:
      logger.warning("Socket send timed out", extra={"connection_id": conn.id, "event": kind.value, "timeout": self.send_timeout})
    except Exception as e:
      logger.warning("Failed to send event to socket", extra={"connection_id": conn.id, "event": kind.value, "error": str(e)})
    return False

  def subscriber_count(self, board_id: str) -> int:
    return len(self._topics.get(board_id, ()))

  def stats(self) -> dict[str, int]:
    return {"connections": len(self._connections), "topics": len(self._topics)}


hub = BoardHub(send_timeout=settings.realtime_send_timeout_seconds)


async def broadcast(kind: EventKind, board_id: str, payload: dict[str, Any], *, origin: str | None = None) -> None:
  """Publish after a committed mutation. Never raises into the request."""
  try:
    await hub.publish(BoardEvent(kind=kind, board_id=board_id, payload=payload), exclude=origin)
  except Exception:
    logger.exception("Broadcast failed", extra={"event": kind.value, "board_id": board_id})
