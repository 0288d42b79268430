from __future__ import annotations

import pytest

from novel_engine.core.errors import JobCanceledError, JobNotFoundError, StaleJobError
from novel_engine.jobs.models import NovelJob
from novel_engine.jobs.store import MAX_CONFLICT_RETRIES, JobStore
from novel_engine.storage.memory_jobs_repo import InMemoryJobsRepository


class ContendedJobsRepo(InMemoryJobsRepository):
  """Simulate another writer landing just before each of the next ``conflicts`` saves."""

  def __init__(self, conflicts: int) -> None:
    super().__init__()
    self.conflicts = conflicts
    self.save_attempts = 0

  async def save_job(self, job: NovelJob, *, expected_version: int) -> NovelJob:
    self.save_attempts += 1
    if self.conflicts > 0:
      self.conflicts -= 1
      current = await self.get_job(job.job_id)
      current.progress.chapters_failed += 1
      await super().save_job(current, expected_version=current.version)
    return await super().save_job(job, expected_version=expected_version)


@pytest.mark.anyio
async def test_save_rejects_stale_version(repo, seed_job) -> None:
  job = await seed_job()
  saved = await repo.save_job(job, expected_version=0)
  assert saved.version == 1

  with pytest.raises(StaleJobError) as excinfo:
    await repo.save_job(job, expected_version=0)
  assert excinfo.value.actual_version == 1


@pytest.mark.anyio
async def test_mutate_reapplies_change_after_conflict(novel_request) -> None:
  repo = ContendedJobsRepo(conflicts=2)
  await repo.create_job(NovelJob(job_id="job-1", request=novel_request, status="writing", current_phase="chapter_writing"))

  def _bump(job: NovelJob) -> None:
    job.progress.chapters_completed += 1

  saved = await JobStore(repo).mutate("job-1", _bump)

  assert repo.save_attempts == 3
  # Both concurrent writes survive and our change is applied exactly once.
  assert saved.progress.chapters_failed == 2
  assert saved.progress.chapters_completed == 1
  assert saved.version == 3


@pytest.mark.anyio
async def test_mutate_gives_up_after_repeated_conflicts(novel_request) -> None:
  repo = ContendedJobsRepo(conflicts=MAX_CONFLICT_RETRIES)
  await repo.create_job(NovelJob(job_id="job-1", request=novel_request, status="writing", current_phase="chapter_writing"))

  with pytest.raises(StaleJobError):
    await JobStore(repo).mutate("job-1", lambda job: None)
  assert repo.save_attempts == MAX_CONFLICT_RETRIES


@pytest.mark.anyio
async def test_mutate_refuses_to_write_a_cancelled_job(store, seed_job) -> None:
  await seed_job(status="failed", current_phase="cancelled")

  with pytest.raises(JobCanceledError):
    await store.mutate("job-1", lambda job: None)

  saved = await store.mutate("job-1", lambda job: None, honor_cancel=False)
  assert saved.version == 1


@pytest.mark.anyio
async def test_load_unknown_job(store) -> None:
  with pytest.raises(JobNotFoundError):
    await store.load("missing")


@pytest.mark.anyio
async def test_repository_hands_out_copies(repo, seed_job) -> None:
  await seed_job()

  loaded = await repo.get_job("job-1")
  loaded.progress.chapters_completed = 99

  fresh = await repo.get_job("job-1")
  assert fresh.progress.chapters_completed == 0


@pytest.mark.anyio
async def test_count_active_and_delete(repo, seed_job) -> None:
  await seed_job("job-1")
  await seed_job("job-2", status="completed", current_phase="completed")
  await seed_job("job-3", status="failed", current_phase="chapter_writing")
  await seed_job("job-4", status="writing", current_phase="chapter_writing")

  assert await repo.count_active() == 2
  assert await repo.delete_job("job-4") is True
  assert await repo.delete_job("job-4") is False
  assert await repo.count_active() == 1
  assert len(await repo.list_jobs(limit=2)) == 2
