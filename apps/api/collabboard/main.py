from __future__ import annotations

import logging
from time import monotonic

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from collabboard.config import configure_logging, settings
from collabboard.db import init_db
from collabboard.errors import install_error_handlers
from collabboard.metrics import runtime_metrics
from collabboard.realtime.hub import hub
from collabboard.routers.auth import router as auth_router
from collabboard.routers.boards import router as boards_router
from collabboard.routers.lists import router as lists_router
from collabboard.routers.realtime import router as realtime_router
from collabboard.routers.tasks import router as tasks_router

logger = logging.getLogger(__name__)

app = FastAPI(title="CollabBoard API", version=settings.app_version)

install_error_handlers(app)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(boards_router)
app.include_router(lists_router)
app.include_router(tasks_router)
app.include_router(realtime_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  response = await call_next(request)
  elapsed_ms = (monotonic() - start) * 1000.0
  runtime_metrics.observe_request(response.status_code, elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  return response


@app.get("/health")
async def health() -> dict:
  return {
    "ok": True,
    "uptimeSeconds": runtime_metrics.uptime_seconds(),
    "realtime": hub.stats(),
  }


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.get("/metrics/runtime")
async def runtime() -> dict:
  return runtime_metrics.snapshot()


@app.on_event("startup")
async def _startup() -> None:
  configure_logging()
  if settings.app_secret.strip().lower() in {"", "dev-secret-change-me"}:
    logger.warning("APP_SECRET is unset or a placeholder; token hashes are not safe outside development")
  await init_db()
  logger.info("API started", extra={"version": settings.app_version, "database": settings.database_url.split("://", 1)[0]})
