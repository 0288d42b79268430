"""Bounded-retry generation of a single chapter."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from novel_engine.ai.backoff import Sleeper, compute_backoff_delay
from novel_engine.ai.prompts import render_chapter_prompt
from novel_engine.ai.providers.base import CompletionRequest, TextProvider
from novel_engine.core.errors import GenerationError, GenreConfigurationError, JobCanceledError, ProviderError, ResponseFormatError, StaleJobError
from novel_engine.jobs import progress
from novel_engine.jobs.models import ChapterRecord, ChapterSpec, NovelJob
from novel_engine.jobs.store import JobStore
from novel_engine.schema.genres import get_genre_guideline
from novel_engine.telemetry.cost import TelemetryAggregator
from novel_engine.writing.consistency import ConsistencyExtractor
from novel_engine.writing.memory import ChapterSummarizer, GeneratedSummary, StoryMemoryBuilder

logger = logging.getLogger(__name__)

CHAPTER_TEMPERATURE = 0.7
MIN_CHAPTER_TOKENS = 4000
MAX_CHAPTER_TOKENS = 16000
TOKENS_PER_WORD = 1.6


@dataclass(frozen=True)
class ChapterSuccess:
  record: ChapterRecord


@dataclass(frozen=True)
class ChapterFailure:
  chapter_number: int
  reason: str
  attempts: int

  def as_error(self) -> GenerationError:
    return GenerationError(self.chapter_number, self.reason, self.attempts)


ChapterOutcome = ChapterSuccess | ChapterFailure


def chapter_max_tokens(word_target: int) -> int:
  return min(MAX_CHAPTER_TOKENS, max(MIN_CHAPTER_TOKENS, round(word_target * TOKENS_PER_WORD)))


class ChapterRetryController:
  """Generate one chapter with at most ``max_attempts`` provider calls.

  Every attempt is persisted as ``generating`` before the provider is called,
  so attempt history survives a restart. Terminal outcomes are written
  together with the job's progress counters.
  """

  def __init__(
    self,
    store: JobStore,
    provider: TextProvider,
    memory: StoryMemoryBuilder,
    summarizer: ChapterSummarizer,
    consistency: ConsistencyExtractor,
    telemetry: TelemetryAggregator,
    *,
    model: str,
    max_attempts: int = 3,
    backoff_base_seconds: float = 1.0,
    sleep: Sleeper = asyncio.sleep,
  ) -> None:
    self._store = store
    self._provider = provider
    self._memory = memory
    self._summarizer = summarizer
    self._consistency = consistency
    self._telemetry = telemetry
    self._model = model
    self._max_attempts = max_attempts
    self._backoff_base_seconds = backoff_base_seconds
    self._sleep = sleep

  async def generate(self, job_id: str, chapter_number: int, spec: ChapterSpec) -> ChapterOutcome:
    reason = "No attempts were made"
    attempts = 0
    for attempt in range(1, self._max_attempts + 1):
      job = await self._store.mutate(job_id, lambda current: progress.mark_chapter_generating(current, chapter_number))
      attempts = job.chapter(chapter_number).attempts
      try:
        record = await self._attempt(job, spec)
      except (JobCanceledError, StaleJobError, GenreConfigurationError):
        raise
      except Exception as exc:
        reason = str(exc) or type(exc).__name__
        logger.warning("Chapter %s attempt %d/%d failed for job %s: %s", chapter_number, attempt, self._max_attempts, job_id, reason)
        await self._store.mutate(job_id, lambda current: progress.record_attempt_failure(current, chapter_number, reason))
        if isinstance(exc, ProviderError) and not exc.retryable:
          break
        if attempt < self._max_attempts:
          await self._sleep(compute_backoff_delay(attempt, self._backoff_base_seconds))
        continue

      await self._summarize(job_id, record)
      return ChapterSuccess(record=record)

    await self._store.mutate(job_id, lambda current: progress.mark_chapter_failed(current, chapter_number, reason))
    failure = ChapterFailure(chapter_number=chapter_number, reason=reason, attempts=attempts)
    logger.error("Job %s: %s", job_id, failure.as_error())
    return failure

  async def _attempt(self, job: NovelJob, spec: ChapterSpec) -> ChapterRecord:
    chapter_number = spec.chapter_number
    guideline = get_genre_guideline(job.request.genre, job.request.subgenre)

    context = await self._memory.build(job, chapter_number)
    if context.new_summaries:
      await self._persist_summaries(job.job_id, context.new_summaries)

    prior_texts = [chapter.content or "" for chapter in job.completed_chapters() if chapter.chapter_number < chapter_number]
    elements = self._consistency.extract(prior_texts)
    prompt = render_chapter_prompt(job, spec, story_memory=context.render(), consistency_hint=self._consistency.hint(elements), guideline=guideline)

    started = time.monotonic()
    response = await self._provider.complete(CompletionRequest(model=self._model, prompt=prompt, temperature=CHAPTER_TEMPERATURE, max_tokens=chapter_max_tokens(spec.word_target)))
    duration_ms = int((time.monotonic() - started) * 1000)

    content = response.text.strip()
    if not content:
      raise ResponseFormatError(f"Provider returned empty content for chapter {chapter_number}")

    report = self._consistency.validate(content, elements)
    if report.warnings:
      logger.info("Continuity warnings for job %s chapter %s: %s", job.job_id, chapter_number, "; ".join(report.warnings))

    def _complete(current: NovelJob) -> None:
      cost = self._telemetry.record_call(current.model_usage, "chapter_generation", self._model, response.prompt_tokens, response.completion_tokens, duration_ms=duration_ms)
      progress.mark_chapter_completed(current, chapter_number, content=content, tokens_used=response.total_tokens, cost=cost, continuity_warnings=list(report.warnings))

    saved = await self._store.mutate(job.job_id, _complete)
    return saved.chapter(chapter_number)

  async def _summarize(self, job_id: str, record: ChapterRecord) -> None:
    """Store a summary for a freshly completed chapter, the fixed fallback line included."""
    summary = await self._summarizer.summarize(record.chapter_number, record.title, record.content or "")
    await self._persist_summaries(job_id, (summary,))

  async def _persist_summaries(self, job_id: str, summaries: tuple[GeneratedSummary, ...]) -> None:
    def _apply(current: NovelJob) -> None:
      for summary in summaries:
        chapter = current.chapter(summary.chapter_number)
        # First stored summary wins.
        if chapter.status == "completed" and not chapter.summary:
          chapter.summary = summary.text
          if summary.prompt_tokens or summary.completion_tokens:
            self._telemetry.record_call(current.model_usage, "chapter_generation", summary.model, summary.prompt_tokens, summary.completion_tokens)

    await self._store.mutate(job_id, _apply)
