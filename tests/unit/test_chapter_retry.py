from __future__ import annotations

import pytest

from novel_engine.core.errors import ProviderServerError, RateLimitError
from novel_engine.jobs import progress
from novel_engine.jobs.models import ChapterSpec, NovelJob
from novel_engine.writing.chapters import ChapterFailure, ChapterRetryController, ChapterSuccess, chapter_max_tokens
from novel_engine.writing.consistency import ConsistencyExtractor
from novel_engine.writing.memory import ChapterSummarizer, StoryMemoryBuilder, fallback_summary
from tests.fakes import CHAPTER_MODEL, SUMMARY_MODEL, no_sleep


def _outline(chapters: int = 3) -> list[ChapterSpec]:
  return [ChapterSpec(chapter_number=number, title=f"Chapter {number} Title", summary="Beat.", word_target=2000) for number in range(1, chapters + 1)]


@pytest.fixture
def controller(store, provider, telemetry) -> ChapterRetryController:
  summarizer = ChapterSummarizer(provider, SUMMARY_MODEL)
  return ChapterRetryController(store, provider, StoryMemoryBuilder(summarizer), summarizer, ConsistencyExtractor(), telemetry, model=CHAPTER_MODEL, max_attempts=3, backoff_base_seconds=1.0, sleep=no_sleep)


@pytest.fixture
async def writing_job(seed_job, novel_request) -> NovelJob:
  request = novel_request.model_copy(update={"target_chapters": 3, "target_word_count": 6000})
  job = NovelJob(job_id="job-1", request=request, status="writing", current_phase="chapter_writing", outline=_outline())
  progress.initialize_chapter_slots(job)
  return await seed_job(**job.model_dump(exclude={"job_id"}))


def test_chapter_token_budget_is_clamped() -> None:
  assert chapter_max_tokens(500) == 4000
  assert chapter_max_tokens(5000) == 8000
  assert chapter_max_tokens(20000) == 16000


@pytest.mark.anyio
async def test_success_persists_content_summary_and_cost(controller, writing_job, store, provider) -> None:
  outcome = await controller.generate("job-1", 1, writing_job.outline[0])

  assert isinstance(outcome, ChapterSuccess)
  job = await store.load("job-1")
  chapter = job.chapter(1)
  assert chapter.status == "completed"
  assert chapter.attempts == 1
  assert chapter.word_count > 0
  assert chapter.tokens_used == 150
  assert chapter.cost > 0
  assert chapter.summary == "Summary of chapter 1."
  assert job.model_usage.chapter_generation.cost == pytest.approx(chapter.cost * 2)
  assert provider.chapter_calls()[0].max_tokens == chapter_max_tokens(2000)


@pytest.mark.anyio
async def test_each_attempt_is_persisted_before_the_call(controller, writing_job, store, provider) -> None:
  seen: list[tuple[str, int]] = []

  async def _observe(number: int) -> None:
    current = await store.load("job-1")
    seen.append((current.chapter(number).status, current.chapter(number).attempts))

  provider.before_chapter = _observe
  provider.failing_chapters = {2}

  outcome = await controller.generate("job-1", 2, writing_job.outline[1])

  assert isinstance(outcome, ChapterFailure)
  assert outcome.attempts == 3
  assert outcome.as_error().chapter_number == 2
  assert seen == [("generating", 1), ("generating", 2), ("generating", 3)]
  job = await store.load("job-1")
  assert job.chapter(2).status == "failed"
  assert job.progress.failed_chapter_numbers == [2]


@pytest.mark.anyio
async def test_empty_output_counts_as_a_failed_attempt(controller, writing_job, store, provider) -> None:
  provider.chapter_replies = {1: ["   ", "Real prose arrives on the second try."]}

  outcome = await controller.generate("job-1", 1, writing_job.outline[0])

  assert isinstance(outcome, ChapterSuccess)
  job = await store.load("job-1")
  assert job.chapter(1).attempts == 2
  assert job.chapter(1).content == "Real prose arrives on the second try."


@pytest.mark.anyio
async def test_backoff_between_attempts(store, provider, telemetry, writing_job) -> None:
  delays: list[float] = []

  async def _sleep(seconds: float) -> None:
    delays.append(seconds)

  summarizer = ChapterSummarizer(provider, SUMMARY_MODEL)
  controller = ChapterRetryController(store, provider, StoryMemoryBuilder(summarizer), summarizer, ConsistencyExtractor(), telemetry, model=CHAPTER_MODEL, max_attempts=3, backoff_base_seconds=1.0, sleep=_sleep)
  provider.failing_chapters = {1}
  provider.failure = ProviderServerError("gateway timeout", status_code=504)

  await controller.generate("job-1", 1, writing_job.outline[0])

  # No sleep after the final attempt.
  assert delays == [2.0, 4.0]


@pytest.mark.anyio
async def test_fallback_summary_is_persisted_without_cost(controller, writing_job, store, provider) -> None:
  provider.summary_error = RateLimitError("quota exceeded", status_code=429)

  await controller.generate("job-1", 1, writing_job.outline[0])
  await controller.generate("job-1", 2, writing_job.outline[1])

  job = await store.load("job-1")
  assert job.chapter(1).summary == fallback_summary(1, "Chapter 1 Title")
  assert job.chapter(2).summary == fallback_summary(2, "Chapter 2 Title")
  # One summary call per chapter; chapter 2's context reused the stored fallback.
  assert len(provider.calls_for(SUMMARY_MODEL)) == 2
  assert job.model_usage.chapter_generation.cost == pytest.approx(job.chapter(1).cost + job.chapter(2).cost)
