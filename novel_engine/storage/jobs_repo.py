"""Storage interfaces for novel jobs."""

from __future__ import annotations

from typing import Protocol

from novel_engine.jobs.models import NovelJob


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Writes are read-modify-write of the whole job document guarded by the
  job's ``version``: ``save_job`` succeeds only when the stored version still
  equals ``expected_version`` and raises ``StaleJobError`` otherwise.
  """

  async def create_job(self, job: NovelJob) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> NovelJob | None:
    """Fetch a job by identifier."""

  async def save_job(self, job: NovelJob, *, expected_version: int) -> NovelJob:
    """Replace the stored document and return it with the bumped version."""

  async def list_jobs(self, limit: int) -> list[NovelJob]:
    """Return the most recently created jobs, newest first."""

  async def count_active(self) -> int:
    """Count jobs in planning, outlining or writing."""

  async def delete_job(self, job_id: str) -> bool:
    """Delete a job and report whether it existed."""
