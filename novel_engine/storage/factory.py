"""Repository selection for the configured environment."""

from __future__ import annotations

import logging

from novel_engine.config import Settings
from novel_engine.storage.jobs_repo import JobsRepository
from novel_engine.storage.memory_jobs_repo import InMemoryJobsRepository

logger = logging.getLogger(__name__)

_memory_repo: InMemoryJobsRepository | None = None


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return Postgres when a DSN is configured, else the process-local store."""
  global _memory_repo
  if settings.pg_dsn:
    from novel_engine.storage.postgres_jobs_repo import PostgresJobsRepository

    return PostgresJobsRepository()

  if _memory_repo is None:
    logger.warning("NOVEL_PG_DSN is not set; jobs are kept in process memory only.")
    _memory_repo = InMemoryJobsRepository()
  return _memory_repo
