"""Process-local jobs repository used for development and tests."""

from __future__ import annotations

from novel_engine.core.errors import StaleJobError
from novel_engine.jobs.models import ACTIVE_STATUSES, NovelJob, utc_now
from novel_engine.storage.jobs_repo import JobsRepository


class InMemoryJobsRepository(JobsRepository):
  """Keep job documents in a dict; every read and write hands out copies."""

  def __init__(self) -> None:
    self._jobs: dict[str, NovelJob] = {}

  async def create_job(self, job: NovelJob) -> None:
    if job.job_id in self._jobs:
      raise ValueError(f"Job {job.job_id} already exists")
    self._jobs[job.job_id] = job.model_copy(deep=True)

  async def get_job(self, job_id: str) -> NovelJob | None:
    stored = self._jobs.get(job_id)
    if stored is None:
      return None
    return stored.model_copy(deep=True)

  async def save_job(self, job: NovelJob, *, expected_version: int) -> NovelJob:
    stored = self._jobs.get(job.job_id)
    actual_version = stored.version if stored is not None else None
    if actual_version != expected_version:
      raise StaleJobError(job.job_id, expected_version, actual_version)

    # Re-validate so an illegal status/phase pair never reaches storage.
    updated = NovelJob.model_validate(job.model_dump() | {"version": expected_version + 1, "updated_at": utc_now()})
    self._jobs[job.job_id] = updated
    return updated.model_copy(deep=True)

  async def list_jobs(self, limit: int) -> list[NovelJob]:
    ordered = sorted(self._jobs.values(), key=lambda job: job.created_at, reverse=True)
    return [job.model_copy(deep=True) for job in ordered[:limit]]

  async def count_active(self) -> int:
    return sum(1 for job in self._jobs.values() if job.status in ACTIVE_STATUSES)

  async def delete_job(self, job_id: str) -> bool:
    return self._jobs.pop(job_id, None) is not None
