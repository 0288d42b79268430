import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from novel_engine.core.database import create_tables
from novel_engine.core.logging import _initialize_logging
from novel_engine.services.engine import shutdown_job_worker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and storage on startup; stop running jobs on shutdown."""
  from novel_engine.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("novel_engine.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  if settings.pg_dsn:
    # Storage must be reachable before jobs can be admitted.
    logger.info("Ensuring job tables exist; NOVEL_PG_DSN=%s", _redact_dsn(settings.pg_dsn))
    await create_tables()
  else:
    logger.warning("Running without Postgres; jobs will not survive a restart.")

  yield

  await shutdown_job_worker()
  logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
