from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from collabboard.config import settings

logger = logging.getLogger(__name__)


class BoardError(Exception):
  status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
  default_message = "Internal server error"

  def __init__(self, message: str | None = None) -> None:
    self.message = message or self.default_message
    super().__init__(self.message)


class Unauthenticated(BoardError):
  status_code = status.HTTP_401_UNAUTHORIZED
  default_message = "Not authenticated"


class Forbidden(BoardError):
  status_code = status.HTTP_403_FORBIDDEN
  default_message = "Access denied"


class AccessDenied(Forbidden):
  """The caller has no role on the board at all."""


class NotFound(BoardError):
  status_code = status.HTTP_404_NOT_FOUND
  default_message = "Not found"


class ValidationFailed(BoardError):
  status_code = status.HTTP_400_BAD_REQUEST
  default_message = "Invalid request"


class Conflict(BoardError):
  status_code = status.HTTP_409_CONFLICT
  default_message = "Conflict"


class Internal(BoardError):
  pass


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
  return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _first_validation_message(exc: RequestValidationError) -> str:
  errors = exc.errors()
  if not errors:
    return "Invalid request"
  first = errors[0]
  loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
  msg = str(first.get("msg") or "Invalid value")
  return f"{loc}: {msg}" if loc else msg


def public_error(exc: BoardError) -> tuple[int, str]:
  """Status and message shown to the caller for ``exc``."""
  if isinstance(exc, AccessDenied) and settings.hide_forbidden_as_not_found:
    return status.HTTP_404_NOT_FOUND, "Board not found"
  return exc.status_code, exc.message


def install_error_handlers(app: FastAPI) -> None:
  @app.exception_handler(BoardError)
  async def _board_error_handler(_: Request, exc: BoardError) -> JSONResponse:
    if isinstance(exc, Internal):
      logger.error("Internal error", extra={"error": exc.message})
    return error_response(*public_error(exc))

  @app.exception_handler(HTTPException)
  async def _http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
      message = str(detail.get("message") or detail)
    else:
      message = str(detail)
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

  @app.exception_handler(RequestValidationError)
  async def _validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, _first_validation_message(exc))

  @app.exception_handler(Exception)
  async def _unexpected_error_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"error": str(exc)})
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
