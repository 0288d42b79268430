from __future__ import annotations

import asyncio

import pytest

from novel_engine.jobs.worker import JobWorker


@pytest.mark.anyio
async def test_start_runs_job_to_completion(orchestrator, seed_job) -> None:
  await seed_job()
  worker = JobWorker(orchestrator)

  assert worker.start("job-1") is True
  assert worker.is_running("job-1")
  assert [run.kind for run in worker.active_runs()] == ["run"]

  job = await worker.wait("job-1")

  assert job is not None and job.status == "completed"
  await asyncio.sleep(0)
  assert not worker.is_running("job-1")
  assert worker.active_runs() == ()


@pytest.mark.anyio
async def test_second_start_for_same_job_is_ignored(orchestrator, seed_job, provider) -> None:
  await seed_job()
  worker = JobWorker(orchestrator)

  assert worker.start("job-1") is True
  assert worker.start("job-1") is False
  assert worker.resume("job-1", 1) is False

  await worker.wait("job-1")
  # A single owner means every chapter was generated exactly once.
  assert [provider.chapter_number(call) for call in provider.chapter_calls()] == [1, 2, 3, 4, 5]


@pytest.mark.anyio
async def test_resume_runs_through_worker(orchestrator, seed_job, provider) -> None:
  await seed_job()
  provider.failing_chapters = {2}
  worker = JobWorker(orchestrator)
  worker.start("job-1")
  first = await worker.wait("job-1")
  assert first is not None and first.progress.failed_chapter_numbers == [2]
  await asyncio.sleep(0)

  provider.failing_chapters = set()
  assert worker.resume("job-1", 2) is True
  assert worker.active_runs()[0].start_chapter_number == 2
  job = await worker.wait("job-1")

  assert job is not None
  assert job.progress.chapters_completed == 5
  assert job.progress.has_failures is False


@pytest.mark.anyio
async def test_shutdown_cancels_running_tasks(orchestrator, seed_job, provider, store) -> None:
  await seed_job()
  reached = asyncio.Event()

  async def _hang(number: int) -> None:
    reached.set()
    await asyncio.Event().wait()

  provider.before_chapter = _hang
  worker = JobWorker(orchestrator)
  worker.start("job-1")
  await reached.wait()

  await worker.shutdown()

  assert not worker.is_running("job-1")
  # Durable state is left as it was so a later retry can pick it up.
  job = await store.load("job-1")
  assert job.status == "writing"
  assert job.chapter(1).status == "generating"


@pytest.mark.anyio
async def test_wait_without_task_returns_none(orchestrator) -> None:
  assert await JobWorker(orchestrator).wait("missing") is None
