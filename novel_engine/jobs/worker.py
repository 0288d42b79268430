"""Single-owner background execution of novel jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from novel_engine.jobs.models import NovelJob, utc_now
from novel_engine.writing.orchestrator import NovelOrchestrator

RunKind = Literal["run", "resume"]


@dataclass(frozen=True)
class RunContext:
  """Read-only description of a job run owned by this worker."""

  job_id: str
  kind: RunKind
  started_at: datetime
  start_chapter_number: int | None = None


class JobWorker:
  """Own at most one task per job id.

  Starting a job that already has a live task is a no-op, so the job
  document never has two engine writers in this process.
  """

  def __init__(self, orchestrator: NovelOrchestrator) -> None:
    self._orchestrator = orchestrator
    self._tasks: dict[str, asyncio.Task[NovelJob]] = {}
    self._contexts: dict[str, RunContext] = {}
    self._logger = logging.getLogger(__name__)

  def start(self, job_id: str) -> bool:
    """Run a pending job from premise analysis."""
    context = RunContext(job_id=job_id, kind="run", started_at=utc_now())
    return self._spawn(context, lambda: self._orchestrator.run(job_id))

  def resume(self, job_id: str, start_chapter_number: int) -> bool:
    """Regenerate unfinished chapters from ``start_chapter_number`` onwards."""
    context = RunContext(job_id=job_id, kind="resume", started_at=utc_now(), start_chapter_number=start_chapter_number)
    return self._spawn(context, lambda: self._orchestrator.resume_from(job_id, start_chapter_number))

  def is_running(self, job_id: str) -> bool:
    task = self._tasks.get(job_id)
    return task is not None and not task.done()

  def active_runs(self) -> tuple[RunContext, ...]:
    return tuple(self._contexts.values())

  async def wait(self, job_id: str) -> NovelJob | None:
    """Wait for the job's current task, if any, and return its result."""
    task = self._tasks.get(job_id)
    if task is None:
      return None
    return await task

  async def shutdown(self) -> None:
    """Cancel every running task; durable state lets a later retry resume."""
    tasks = list(self._tasks.values())
    for task in tasks:
      task.cancel()
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)
    self._logger.info("Job worker stopped %d running jobs", len(tasks))

  def _spawn(self, context: RunContext, factory: Callable[[], Awaitable[NovelJob]]) -> bool:
    if self.is_running(context.job_id):
      self._logger.info("Job %s already has a running task; ignoring %s request", context.job_id, context.kind)
      return False

    async def _execute() -> NovelJob:
      return await factory()

    task = asyncio.create_task(_execute(), name=f"novel-job-{context.job_id}")
    self._tasks[context.job_id] = task
    self._contexts[context.job_id] = context
    task.add_done_callback(lambda finished: self._on_done(context.job_id, finished))
    self._logger.info("Started %s task for job %s", context.kind, context.job_id)
    return True

  def _on_done(self, job_id: str, task: asyncio.Task[NovelJob]) -> None:
    if self._tasks.get(job_id) is task:
      self._tasks.pop(job_id, None)
      self._contexts.pop(job_id, None)
    if task.cancelled():
      self._logger.warning("Task for job %s was cancelled", job_id)
      return
    exc = task.exception()
    if exc is not None:
      self._logger.error("Task for job %s crashed", job_id, exc_info=exc)
