"""Concurrency cap for new novel jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from novel_engine.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admitted:
  active_count: int
  max_jobs: int


@dataclass(frozen=True)
class Rejected:
  active_count: int
  max_jobs: int


AdmissionDecision = Admitted | Rejected


class AdmissionController:
  """Admit a new job only while fewer than ``max_jobs`` jobs are running.

  The count and the later insert are separate store calls, so two requests
  racing at ``max_jobs - 1`` can both be admitted. The cap is a soft limit.
  """

  def __init__(self, repo: JobsRepository, max_jobs: int) -> None:
    if max_jobs < 1:
      raise ValueError("max_jobs must be at least 1")
    self._repo = repo
    self._max_jobs = max_jobs

  @property
  def max_jobs(self) -> int:
    return self._max_jobs

  async def try_admit(self) -> AdmissionDecision:
    active = await self._repo.count_active()
    if active >= self._max_jobs:
      logger.warning("Admission rejected: %d active jobs (max %d)", active, self._max_jobs)
      return Rejected(active_count=active, max_jobs=self._max_jobs)
    return Admitted(active_count=active, max_jobs=self._max_jobs)
