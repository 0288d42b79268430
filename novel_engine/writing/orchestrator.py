"""Phase state machine driving a novel job from premise to finished manuscript."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from novel_engine.ai.backoff import Sleeper, retry_with_backoff
from novel_engine.ai.json_parser import parse_json_with_fallback
from novel_engine.ai.pipeline.contracts import OutlinePayload, PremiseAnalysisPayload, parse_payload
from novel_engine.ai.prompts import render_analysis_prompt, render_outline_prompt, render_synopsis_prompt
from novel_engine.ai.providers.base import CompletionRequest, CompletionResponse, TextProvider
from novel_engine.config import Settings
from novel_engine.core.errors import JobCanceledError, JobStateError, NovelEngineError, ProviderError
from novel_engine.jobs import progress
from novel_engine.jobs.models import RESUMABLE_CHAPTER_STATUSES, JobError, JobPhase, JobStatus, NovelJob, utc_now
from novel_engine.jobs.store import JobStore
from novel_engine.notifications.events import EventSink, EventType, JobEvent, publish_safely
from novel_engine.schema.genres import get_genre_guideline
from novel_engine.storage.jobs_repo import JobsRepository
from novel_engine.telemetry.cost import TelemetryAggregator
from novel_engine.writing.chapters import ChapterFailure, ChapterRetryController
from novel_engine.writing.consistency import ConsistencyExtractor
from novel_engine.writing.memory import ChapterSummarizer, StoryMemoryBuilder

logger = logging.getLogger(__name__)

ANALYSIS_TEMPERATURE = 0.3
ANALYSIS_MAX_TOKENS = 4000
OUTLINE_TEMPERATURE = 0.4
SYNOPSIS_TEMPERATURE = 0.3
SYNOPSIS_MAX_TOKENS = 1500
LARGE_OUTLINE_CHAPTERS = 40
STARTABLE_STATUSES = frozenset({"pending", "planning"})


def outline_max_tokens(target_chapters: int) -> int:
  return min(16000, max(8000, target_chapters * 300))


def fallback_synopsis(premise: str) -> str:
  return f"Novel based on premise: {premise}"


class NovelOrchestrator:
  """Run analysis, outline and chapter writing for one job at a time.

  Each forward transition is persisted before the phase's work starts and
  then announced to the event sink. Any unhandled error marks the job failed
  with the phase it happened in; completed outline and chapter data stay.
  """

  def __init__(
    self,
    *,
    store: JobStore,
    provider: TextProvider,
    sink: EventSink,
    telemetry: TelemetryAggregator,
    chapters: ChapterRetryController,
    analysis_model: str,
    outline_model: str,
    synopsis_model: str,
    max_attempts: int = 3,
    backoff_base_seconds: float = 1.0,
    pacing_delay_seconds: float = 0.1,
    sleep: Sleeper = asyncio.sleep,
  ) -> None:
    self._store = store
    self._provider = provider
    self._sink = sink
    self._telemetry = telemetry
    self._chapters = chapters
    self._analysis_model = analysis_model
    self._outline_model = outline_model
    self._synopsis_model = synopsis_model
    self._max_attempts = max_attempts
    self._backoff_base_seconds = backoff_base_seconds
    self._pacing_delay_seconds = pacing_delay_seconds
    self._sleep = sleep

  @classmethod
  def build(cls, settings: Settings, *, repo: JobsRepository, provider: TextProvider, sink: EventSink, sleep: Sleeper = asyncio.sleep) -> NovelOrchestrator:
    """Wire the engine components from settings."""
    store = JobStore(repo)
    telemetry = TelemetryAggregator(cost_alert_threshold=settings.cost_alert_threshold)
    summarizer = ChapterSummarizer(provider, settings.summary_model)
    memory = StoryMemoryBuilder(summarizer, recent_window=settings.recent_chapter_window)
    chapters = ChapterRetryController(
      store,
      provider,
      memory,
      summarizer,
      ConsistencyExtractor(),
      telemetry,
      model=settings.chapter_model,
      max_attempts=settings.max_chapter_attempts,
      backoff_base_seconds=settings.backoff_base_seconds,
      sleep=sleep,
    )
    return cls(
      store=store,
      provider=provider,
      sink=sink,
      telemetry=telemetry,
      chapters=chapters,
      analysis_model=settings.analysis_model,
      outline_model=settings.outline_model,
      synopsis_model=settings.synopsis_model,
      max_attempts=settings.max_chapter_attempts,
      backoff_base_seconds=settings.backoff_base_seconds,
      pacing_delay_seconds=settings.pacing_delay_seconds,
      sleep=sleep,
    )

  async def run(self, job_id: str) -> NovelJob:
    """Drive a pending job through every phase to a terminal status."""
    job = await self._store.load(job_id)
    # Admitted jobs are created in planning so the concurrency cap counts them at once.
    if job.status not in STARTABLE_STATUSES or job.started_at is not None:
      raise JobStateError(f"Job {job_id} is {job.status}; it cannot be started again")

    phase: JobPhase = "premise_analysis"
    try:
      job = await self._transition(job_id, "planning", "premise_analysis", "Analyzing premise and story structure...")
      await self._analyze_premise(job)

      phase = "outline_generation"
      job = await self._transition(job_id, "outlining", "outline_generation", "Creating detailed chapter outline...")
      await self._generate_outline(job)

      phase = "chapter_writing"
      job = await self._transition(job_id, "writing", "chapter_writing", "Starting chapter generation...")
      if not job.outline:
        raise NovelEngineError(f"No outline found for job {job_id}")
      job = await self._store.mutate(job_id, progress.initialize_chapter_slots)
      await self._write_chapters(job_id, [spec.chapter_number for spec in job.outline])
      return await self._finalize(job_id)
    except JobCanceledError:
      logger.info("Job %s was cancelled during %s; stopping", job_id, phase)
      return await self._store.load(job_id)
    except Exception as exc:
      return await self._fail(job_id, exc, phase)

  async def resume_from(self, job_id: str, start_chapter_number: int) -> NovelJob:
    """Regenerate failed or unfinished chapters numbered ``start_chapter_number`` and above."""
    job = await self._store.load(job_id)
    if not job.outline:
      raise JobStateError(f"Job {job_id} has no outline to resume from")
    if job.is_active:
      raise JobStateError(f"Job {job_id} is already running")

    try:
      # An explicit retry reopens a cancelled job.
      job = await self._transition(job_id, "writing", "chapter_writing", f"Retrying chapters from {start_chapter_number}...", honor_cancel=False, reset=True)
      if not job.chapters:
        job = await self._store.mutate(job_id, progress.initialize_chapter_slots)

      selected = [chapter.chapter_number for chapter in job.chapters if chapter.chapter_number >= start_chapter_number and chapter.status in RESUMABLE_CHAPTER_STATUSES]
      logger.info("Resuming job %s from chapter %s: %s", job_id, start_chapter_number, selected)
      await self._write_chapters(job_id, selected)
      return await self._finalize(job_id)
    except JobCanceledError:
      logger.info("Job %s was cancelled during resume; stopping", job_id)
      return await self._store.load(job_id)
    except Exception as exc:
      return await self._fail(job_id, exc, "chapter_writing")

  async def _transition(self, job_id: str, status: JobStatus, phase: JobPhase, message: str, *, honor_cancel: bool = True, reset: bool = False) -> NovelJob:
    previous: dict[str, Any] = {}

    def _apply(job: NovelJob) -> None:
      previous["status"] = job.status
      now = utc_now()
      job.status = status
      job.current_phase = phase
      job.progress.last_activity = now
      if job.started_at is None:
        job.started_at = now
      if reset:
        job.error = None
        job.completed_at = None

    job = await self._store.mutate(job_id, _apply, honor_cancel=honor_cancel)
    logger.info("Job %s entered %s/%s", job_id, status, phase)
    await self._emit(job_id, "phase_transition", message, {"from": previous.get("status"), "to": status, "phase": phase})
    return job

  async def _complete(self, request: CompletionRequest, parse: Callable[[str], Any], label: str) -> tuple[Any, CompletionResponse, int]:
    """Call the provider and parse its output, retrying retryable failures."""

    async def _once() -> tuple[Any, CompletionResponse, int]:
      started = time.monotonic()
      response = await self._provider.complete(request)
      duration_ms = int((time.monotonic() - started) * 1000)
      return parse(response.text), response, duration_ms

    return await retry_with_backoff(_once, max_attempts=self._max_attempts, base_seconds=self._backoff_base_seconds, label=label, sleep=self._sleep)

  async def _analyze_premise(self, job: NovelJob) -> None:
    guideline = get_genre_guideline(job.request.genre, job.request.subgenre)
    request = CompletionRequest(model=self._analysis_model, prompt=render_analysis_prompt(job, guideline), temperature=ANALYSIS_TEMPERATURE, max_tokens=ANALYSIS_MAX_TOKENS)

    def _parse(text: str) -> Any:
      return parse_payload(PremiseAnalysisPayload, parse_json_with_fallback(text)).to_analysis()

    analysis, response, duration_ms = await self._complete(request, _parse, f"Premise analysis for job {job.job_id}")

    def _apply(current: NovelJob) -> None:
      current.analysis = analysis
      self._telemetry.record_call(current.model_usage, "premise_analysis", request.model, response.prompt_tokens, response.completion_tokens, duration_ms=duration_ms)

    saved = await self._store.mutate(job.job_id, _apply)
    logger.info("Completed premise analysis for job %s (%d themes)", job.job_id, len(analysis.themes))
    await self._emit_cost(saved)

  async def _generate_outline(self, job: NovelJob) -> None:
    target = job.request.target_chapters
    if target > LARGE_OUTLINE_CHAPTERS:
      logger.warning("Large outline requested for job %s: %d chapters", job.job_id, target)
    request = CompletionRequest(model=self._outline_model, prompt=render_outline_prompt(job), temperature=OUTLINE_TEMPERATURE, max_tokens=outline_max_tokens(target))

    def _parse(text: str) -> Any:
      payload = parse_payload(OutlinePayload, parse_json_with_fallback(text))
      return payload.to_chapter_specs(target_chapters=target, target_word_count=job.request.target_word_count)

    specs, response, duration_ms = await self._complete(request, _parse, f"Outline generation for job {job.job_id}")

    def _apply_outline(current: NovelJob) -> None:
      current.outline = specs
      current.progress.outline_complete = True
      self._telemetry.record_call(current.model_usage, "outline_generation", request.model, response.prompt_tokens, response.completion_tokens, duration_ms=duration_ms)

    job = await self._store.mutate(job.job_id, _apply_outline)
    await self._generate_synopsis(job)
    await self._emit(job.job_id, "progress_update", "Outline completed. Starting chapter generation...", {"outlineComplete": True, "chapters": len(specs)})

  async def _generate_synopsis(self, job: NovelJob) -> None:
    request = CompletionRequest(model=self._synopsis_model, prompt=render_synopsis_prompt(job), temperature=SYNOPSIS_TEMPERATURE, max_tokens=SYNOPSIS_MAX_TOKENS)
    response: CompletionResponse | None = None
    try:
      response = await self._provider.complete(request)
      synopsis = response.text.strip() or fallback_synopsis(job.request.premise)
    except ProviderError as exc:
      logger.warning("Failed to generate synopsis for job %s: %s", job.job_id, exc)
      synopsis = fallback_synopsis(job.request.premise)

    def _apply(current: NovelJob) -> None:
      current.synopsis = synopsis
      if response is not None:
        self._telemetry.record_call(current.model_usage, "outline_generation", request.model, response.prompt_tokens, response.completion_tokens)

    saved = await self._store.mutate(job.job_id, _apply)
    await self._emit_cost(saved)

  async def _write_chapters(self, job_id: str, chapter_numbers: list[int]) -> None:
    """Generate chapters strictly in order; one chapter's failure never stops the loop."""
    started_at = utc_now()
    total = len(chapter_numbers)
    for index, chapter_number in enumerate(chapter_numbers):
      job = await self._store.load(job_id)
      if job.is_cancelled:
        raise JobCanceledError(f"Job {job_id} was cancelled")

      spec = job.outline[chapter_number - 1]
      await self._emit(job_id, "generation_progress", f"Generating chapter {chapter_number} of {job.request.target_chapters}...", {"chapterNumber": chapter_number})
      outcome = await self._chapters.generate(job_id, chapter_number, spec)

      done = index + 1
      estimate = progress.estimate_completion(started_at=started_at, chapters_done=done, chapters_total=total)

      def _apply(current: NovelJob) -> None:
        current.progress.estimated_completion = estimate
        current.progress.last_activity = utc_now()

      job = await self._store.mutate(job_id, _apply)
      counters = {
        "chaptersCompleted": job.progress.chapters_completed,
        "chaptersFailed": job.progress.chapters_failed,
        "totalChapters": job.request.target_chapters,
        "failedChapterNumbers": job.progress.failed_chapter_numbers,
      }
      if isinstance(outcome, ChapterFailure):
        message = f"{outcome.as_error()}. {job.progress.chapters_failed} chapters failed."
      else:
        message = f"Chapter {chapter_number} completed. {job.progress.chapters_completed}/{job.request.target_chapters} chapters done."
      await self._emit(job_id, "progress_update", message, counters)
      await self._emit_cost(job)

      if done < total:
        await self._sleep(self._pacing_delay_seconds)

  async def _finalize(self, job_id: str) -> NovelJob:
    def _apply(job: NovelJob) -> None:
      status, error = progress.final_outcome(job)
      job.quality_metrics = self._telemetry.finalize(job)
      job.status = status
      job.current_phase = "completed" if status == "completed" else "chapter_writing"
      job.error = error
      job.completed_at = utc_now()
      job.progress.estimated_completion = None
      job.progress.last_activity = job.completed_at

    job = await self._store.mutate(job_id, _apply)
    if not progress.slot_accounting_holds(job):
      logger.error("Chapter accounting mismatch for job %s: %s", job_id, job.progress.model_dump())
    self._telemetry.check_cost_alert(job)

    metrics = job.quality_metrics.model_dump(mode="json") if job.quality_metrics else {}
    await self._emit(job_id, "quality_update", None, metrics)
    if job.status == "completed":
      message = "Novel generation completed successfully!" if job.error is None else f"Novel completed with {job.progress.chapters_completed}/{job.request.target_chapters} chapters. {job.progress.chapters_failed} chapters failed and can be retried."
      await self._emit(job_id, "job_completed", message, {"status": job.status, "hasFailures": job.progress.has_failures})
    else:
      await self._emit(job_id, "job_failed", job.error.message if job.error else None, {"status": job.status, "phase": job.current_phase})
    logger.info("Job %s finished status=%s completed=%d failed=%d", job_id, job.status, job.progress.chapters_completed, job.progress.chapters_failed)
    return job

  async def _fail(self, job_id: str, exc: Exception, phase: JobPhase) -> NovelJob:
    logger.error("Generation failed for job %s during %s: %s", job_id, phase, exc, exc_info=True)
    message = str(exc) or type(exc).__name__

    def _apply(job: NovelJob) -> None:
      job.status = "failed"
      job.current_phase = phase
      job.error = JobError(kind="fatal", message=message, phase=phase)
      job.progress.last_activity = utc_now()
      job.progress.estimated_completion = None

    try:
      job = await self._store.mutate(job_id, _apply)
    except JobCanceledError:
      return await self._store.load(job_id)
    await self._emit(job_id, "job_failed", f"Generation failed: {message}", {"status": "failed", "phase": phase})
    return job

  async def _emit_cost(self, job: NovelJob) -> None:
    usage = job.model_usage
    await self._emit(job.job_id, "cost_update", None, {"totalCost": usage.total_cost, "totalTokens": usage.total_tokens})

  async def _emit(self, job_id: str, event_type: EventType, message: str | None, payload: dict[str, Any]) -> None:
    await publish_safely(self._sink, JobEvent(job_id=job_id, event_type=event_type, message=message, payload=payload))
