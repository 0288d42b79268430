"""Versioned read-modify-write access to job documents."""

from __future__ import annotations

import logging
from collections.abc import Callable

from novel_engine.core.errors import JobCanceledError, JobNotFoundError, StaleJobError
from novel_engine.jobs.models import NovelJob
from novel_engine.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 5


class JobStore:
  """Apply changes to a job through the repository's version check.

  ``mutate`` re-reads the job, applies the change to the fresh copy and saves
  it against the version it read. A lost race re-reads and re-applies, so
  every change must be expressed relative to the state it is given. When
  ``honor_cancel`` is set a cancelled job is never written and
  ``JobCanceledError`` is raised instead.
  """

  def __init__(self, repo: JobsRepository) -> None:
    self._repo = repo

  @property
  def repo(self) -> JobsRepository:
    return self._repo

  async def load(self, job_id: str) -> NovelJob:
    job = await self._repo.get_job(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    return job

  async def mutate(self, job_id: str, change: Callable[[NovelJob], object], *, honor_cancel: bool = True) -> NovelJob:
    attempt = 0
    while True:
      attempt += 1
      job = await self.load(job_id)
      if honor_cancel and job.is_cancelled:
        raise JobCanceledError(f"Job {job_id} was cancelled")
      change(job)
      try:
        return await self._repo.save_job(job, expected_version=job.version)
      except StaleJobError as exc:
        if attempt >= MAX_CONFLICT_RETRIES:
          raise
        logger.debug("Concurrent write on job %s (attempt %d): %s", job_id, attempt, exc)
