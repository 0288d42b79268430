"""Process-wide wiring of the generation engine."""

from __future__ import annotations

import logging

from novel_engine.ai.providers.openai_chat import build_provider
from novel_engine.config import Settings
from novel_engine.jobs.worker import JobWorker
from novel_engine.notifications.events import EventSink, LoggingEventSink
from novel_engine.storage.factory import _get_jobs_repo
from novel_engine.writing.orchestrator import NovelOrchestrator

logger = logging.getLogger(__name__)

_JOB_WORKER: JobWorker | None = None


def _get_event_sink(settings: Settings) -> EventSink:
  """Return the sink that receives job events."""
  _ = settings
  return LoggingEventSink()


def _get_job_worker(settings: Settings) -> JobWorker:
  """Build the worker once; every job in the process shares it."""
  global _JOB_WORKER
  if _JOB_WORKER is None:
    orchestrator = NovelOrchestrator.build(settings, repo=_get_jobs_repo(settings), provider=build_provider(settings), sink=_get_event_sink(settings))
    _JOB_WORKER = JobWorker(orchestrator)
    logger.info("Job worker initialized (chapter_model=%s, max_attempts=%d)", settings.chapter_model, settings.max_chapter_attempts)
  return _JOB_WORKER


async def shutdown_job_worker() -> None:
  """Stop running jobs when the application shuts down."""
  global _JOB_WORKER
  if _JOB_WORKER is None:
    return
  await _JOB_WORKER.shutdown()
  _JOB_WORKER = None
