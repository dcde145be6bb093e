from __future__ import annotations

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "sqlite+aiosqlite:///./collabboard.db"
  app_secret: str = "dev-secret-change-me"
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  log_level: str = "INFO"

  token_ttl_days: int = 7

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_register_ip_per_minute: int = 20

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,testserver"
  redis_url: str | None = None

  activity_page_size_default: int = 20
  activity_page_size_max: int = 100
  search_page_size_max: int = 100
  user_search_limit_default: int = 10
  user_search_limit_max: int = 20

  # Render a non-member's Forbidden as "Board not found" so board ids are not disclosed.
  hide_forbidden_as_not_found: bool = False
  # Relay board events re-emitted by clients over their socket.
  relay_client_events: bool = True
  # A socket that cannot take a frame within this many seconds is dropped.
  realtime_send_timeout_seconds: float = 2.0

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def is_sqlite(self) -> bool:
    return self.database_url.startswith("sqlite")


settings = Settings()


def configure_logging() -> None:
  level = getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO)
  logging.basicConfig(
    level=level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )
  logging.getLogger("collabboard").setLevel(level)
