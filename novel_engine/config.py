"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
  """Typed settings for the novel generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  openai_api_key: str | None
  openai_base_url: str | None
  analysis_model: str
  outline_model: str
  synopsis_model: str
  chapter_model: str
  summary_model: str
  max_concurrent_jobs: int
  max_chapter_attempts: int
  backoff_base_seconds: float
  pacing_delay_seconds: float
  recent_chapter_window: int
  cost_alert_threshold: float
  jobs_auto_process: bool
  max_premise_upload_bytes: int
  recent_jobs_limit: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("NOVEL_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("NOVEL_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("NOVEL_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("NOVEL_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("NOVEL_DEBUG"))

  log_max_bytes = _positive_int("NOVEL_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("NOVEL_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("NOVEL_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("NOVEL_LOG_HTTP_4XX"))

  # Admission and retry limits for the generation engine.
  max_concurrent_jobs = _positive_int("NOVEL_MAX_CONCURRENT_JOBS", "3")
  max_chapter_attempts = _positive_int("NOVEL_MAX_CHAPTER_ATTEMPTS", "3")
  backoff_base_seconds = _non_negative_float("NOVEL_BACKOFF_BASE_SECONDS", "1.0")
  pacing_delay_seconds = _non_negative_float("NOVEL_PACING_DELAY_SECONDS", "0.1")
  recent_chapter_window = _positive_int("NOVEL_RECENT_CHAPTER_WINDOW", "10")
  cost_alert_threshold = _non_negative_float("NOVEL_COST_ALERT_THRESHOLD", "25.00")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("NOVEL_ALLOWED_ORIGINS", "http://localhost:3000")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=_optional_str(os.getenv("NOVEL_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=_positive_int("NOVEL_PG_CONNECT_TIMEOUT", "5"),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_base_url=_optional_str(os.getenv("NOVEL_OPENAI_BASE_URL")),
    analysis_model=os.getenv("NOVEL_ANALYSIS_MODEL", "gpt-4o-mini"),
    outline_model=os.getenv("NOVEL_OUTLINE_MODEL", "gpt-4o-mini"),
    synopsis_model=os.getenv("NOVEL_SYNOPSIS_MODEL", "gpt-4o-mini"),
    chapter_model=os.getenv("NOVEL_CHAPTER_MODEL", "gpt-4o"),
    summary_model=os.getenv("NOVEL_SUMMARY_MODEL", "gpt-4o-mini"),
    max_concurrent_jobs=max_concurrent_jobs,
    max_chapter_attempts=max_chapter_attempts,
    backoff_base_seconds=backoff_base_seconds,
    pacing_delay_seconds=pacing_delay_seconds,
    recent_chapter_window=recent_chapter_window,
    cost_alert_threshold=cost_alert_threshold,
    jobs_auto_process=_parse_bool(os.getenv("NOVEL_JOBS_AUTO_PROCESS"), default=True),
    max_premise_upload_bytes=_positive_int("NOVEL_MAX_PREMISE_UPLOAD_BYTES", str(5 * 1024 * 1024)),
    recent_jobs_limit=_positive_int("NOVEL_RECENT_JOBS_LIMIT", "10"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("NOVEL_DEBUG"))
  pg_connect_timeout = _positive_int("NOVEL_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = _optional_str(os.getenv("NOVEL_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
