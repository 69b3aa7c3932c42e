"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from actionboost.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_PREFIX = "ACTIONBOOST_"
_TASK_PROVIDERS = {"inline", "local-http"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the ActionBoost analysis service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int
  pg_dsn: str | None
  pg_connect_timeout: int
  openai_api_key: str | None
  openai_base_url: str | None
  generation_model: str
  generation_timeout_seconds: float
  tavily_api_key: str | None
  scrapingdog_api_key: str | None
  screenshot_service_url: str | None
  screenshot_api_key: str | None
  screenshot_max_bytes: int
  source_guard_resolve_dns: bool
  session_secret: str | None
  task_service_provider: str
  base_url: str | None
  task_secret: str | None
  trusted_proxy_hops: int
  ip_rate_limit: int
  ip_rate_window_seconds: int
  max_free_refinements: int
  stale_job_seconds: int
  watchdog_interval_seconds: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _env(name: str, default: str | None = None) -> str | None:
  return os.getenv(f"{_PREFIX}{name}", default)


def _optional_str(name: str) -> str | None:
  raw = _env(name)
  if raw is None:
    return None
  stripped = raw.strip()
  return stripped or None


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""
  if raw is None:
    return False
  return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(name: str, default: int, *, minimum: int = 1) -> int:
  """Read an integer setting, enforcing ``minimum``."""
  raw = _env(name, str(default))
  try:
    value = int(str(raw).strip())
  except ValueError as exc:
    raise ValueError(f"{_PREFIX}{name} must be an integer.") from exc
  if value < minimum:
    qualifier = "a positive integer" if minimum == 1 else f">= {minimum}"
    raise ValueError(f"{_PREFIX}{name} must be {qualifier}.")
  return value


def _parse_float(name: str, default: float) -> float:
  raw = _env(name, str(default))
  try:
    value = float(str(raw).strip())
  except ValueError as exc:
    raise ValueError(f"{_PREFIX}{name} must be a number.") from exc
  if value <= 0:
    raise ValueError(f"{_PREFIX}{name} must be positive.")
  return value


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
  if not origins:
    raise ValueError(f"{_PREFIX}ALLOWED_ORIGINS must include at least one origin.")
  if "*" in origins:
    raise ValueError(f"{_PREFIX}ALLOWED_ORIGINS must not include wildcard origins.")
  return tuple(origins)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""
  environment = (_env("ENV", "development") or "development").lower()
  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(_env("DEBUG"))

  task_service_provider = (_env("TASK_SERVICE_PROVIDER", "inline") or "inline").strip().lower()
  if task_service_provider not in _TASK_PROVIDERS:
    raise ValueError(f"{_PREFIX}TASK_SERVICE_PROVIDER must be one of {sorted(_TASK_PROVIDERS)}.")

  # Signing secrets shorter than 32 chars are refused at first use, not here, so tooling can import settings.
  session_secret = _optional_str("SESSION_SECRET")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(_env("ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=_parse_int("LOG_MAX_BYTES", 5 * 1024 * 1024),
    log_backup_count=_parse_int("LOG_BACKUP_COUNT", 10, minimum=0),
    log_http_4xx=_parse_bool(_env("LOG_HTTP_4XX")),
    log_http_bodies=_parse_bool(_env("LOG_HTTP_BODIES")),
    log_http_body_bytes=_parse_int("LOG_HTTP_BODY_BYTES", 2048),
    pg_dsn=_optional_str("PG_DSN"),
    pg_connect_timeout=_parse_int("PG_CONNECT_TIMEOUT", 10),
    openai_api_key=_optional_str("OPENAI_API_KEY"),
    openai_base_url=_optional_str("OPENAI_BASE_URL"),
    generation_model=_optional_str("GENERATION_MODEL") or "gpt-4.1-mini",
    generation_timeout_seconds=_parse_float("GENERATION_TIMEOUT_SECONDS", 120.0),
    tavily_api_key=_optional_str("TAVILY_API_KEY"),
    scrapingdog_api_key=_optional_str("SCRAPINGDOG_API_KEY"),
    screenshot_service_url=_optional_str("SCREENSHOT_SERVICE_URL"),
    screenshot_api_key=_optional_str("SCREENSHOT_API_KEY"),
    screenshot_max_bytes=_parse_int("SCREENSHOT_MAX_BYTES", 4 * 1024 * 1024),
    source_guard_resolve_dns=_parse_bool(_env("SOURCE_GUARD_RESOLVE_DNS")),
    session_secret=session_secret,
    task_service_provider=task_service_provider,
    base_url=_optional_str("BASE_URL"),
    task_secret=_optional_str("TASK_SECRET"),
    # Number of reverse proxies in front of the app that append to X-Forwarded-For; 0 ignores the header.
    trusted_proxy_hops=_parse_int("TRUSTED_PROXY_HOPS", 0, minimum=0),
    ip_rate_limit=_parse_int("IP_RATE_LIMIT", 5),
    ip_rate_window_seconds=_parse_int("IP_RATE_WINDOW_SECONDS", 24 * 60 * 60),
    max_free_refinements=_parse_int("MAX_FREE_REFINEMENTS", 2, minimum=0),
    stale_job_seconds=_parse_int("STALE_JOB_SECONDS", 15 * 60),
    watchdog_interval_seconds=_parse_int("WATCHDOG_INTERVAL_SECONDS", 0, minimum=0),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load only the settings needed to open a database connection."""
  return DatabaseSettings(debug=_parse_bool(_env("DEBUG")), pg_dsn=_optional_str("PG_DSN"), pg_connect_timeout=_parse_int("PG_CONNECT_TIMEOUT", 10))
