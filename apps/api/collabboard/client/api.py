from __future__ import annotations

from typing import Any

import httpx


class ApiError(Exception):
  def __init__(self, status_code: int, message: str) -> None:
    self.status_code = status_code
    self.message = message
    super().__init__(f"{status_code}: {message}")


class BoardApi:
  """Async REST client for the board endpoints."""

  def __init__(
    self,
    base_url: str,
    token: str,
    *,
    socket_id: str | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = 10.0,
  ) -> None:
    self.token = token
    self.socket_id = socket_id
    self._owns_client = client is None
    self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()

  def _headers(self) -> dict[str, str]:
    h = {"Authorization": f"Bearer {self.token}"}
    if self.socket_id:
      h["X-Socket-Id"] = self.socket_id
    return h

  async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
    try:
      res = await self._client.request(method, path, headers=self._headers(), **kwargs)
    except httpx.HTTPError as e:
      raise ApiError(0, str(e)) from e
    if res.status_code >= 400:
      message = res.text
      try:
        body = res.json()
        if isinstance(body, dict) and body.get("error"):
          message = str(body["error"])
      except ValueError:
        pass
      raise ApiError(res.status_code, message)
    return res.json() if res.content else None

  async def search_users(self, q: str, *, limit: int = 10) -> list[dict[str, Any]]:
    return await self._request("GET", "/auth/users/search", params={"q": q, "limit": limit})

  async def get_board(self, board_id: str) -> dict[str, Any]:
    return await self._request("GET", f"/boards/{board_id}")

  async def list_activities(self, board_id: str, *, page: int = 1, limit: int = 20) -> dict[str, Any]:
    return await self._request("GET", f"/boards/{board_id}/activities", params={"page": page, "limit": limit})

  async def create_list(self, board_id: str, title: str) -> dict[str, Any]:
    return await self._request("POST", "/lists", json={"title": title, "boardId": board_id})

  async def delete_list(self, list_id: str) -> dict[str, Any]:
    return await self._request("DELETE", f"/lists/{list_id}")

  async def reorder_lists(self, positions: list[dict[str, Any]]) -> dict[str, Any]:
    return await self._request("PUT", "/lists/reorder/positions", json={"listPositions": positions})

  async def create_task(self, list_id: str, title: str, **fields: Any) -> dict[str, Any]:
    return await self._request("POST", "/tasks", json={"title": title, "listId": list_id, **fields})

  async def update_task(self, task_id: str, **fields: Any) -> dict[str, Any]:
    return await self._request("PUT", f"/tasks/{task_id}", json=fields)

  async def move_task(self, task_id: str, list_id: str, position: int) -> dict[str, Any]:
    return await self._request("PUT", f"/tasks/{task_id}/move", json={"listId": list_id, "position": position})

  async def delete_task(self, task_id: str) -> dict[str, Any]:
    return await self._request("DELETE", f"/tasks/{task_id}")

  async def reorder_tasks(self, positions: list[dict[str, Any]]) -> dict[str, Any]:
    return await self._request("PUT", "/tasks/reorder/positions", json={"taskPositions": positions})
