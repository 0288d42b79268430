"""Chapter slot bookkeeping and progress arithmetic for novel jobs."""

from __future__ import annotations

from datetime import datetime, timedelta

from novel_engine.jobs.models import ChapterRecord, JobError, NovelJob, utc_now

PHASE_PERCENTAGES = {"premise_analysis": 10, "outline_generation": 25}
WRITING_BASE_PERCENT = 25
WRITING_SPAN_PERCENT = 70


def initialize_chapter_slots(job: NovelJob) -> None:
  """Create one pending record per outline entry, in outline order."""
  job.chapters = [ChapterRecord(chapter_number=spec.chapter_number, title=spec.title) for spec in job.outline]
  job.progress.chapters_completed = 0
  job.progress.chapters_failed = 0
  job.progress.failed_chapter_numbers = []
  job.progress.has_failures = False


def mark_chapter_generating(job: NovelJob, chapter_number: int, *, now: datetime | None = None) -> ChapterRecord:
  chapter = job.chapter(chapter_number)
  if chapter.status == "completed":
    raise ValueError(f"Chapter {chapter_number} is already completed")
  chapter.status = "generating"
  chapter.attempts += 1
  chapter.last_attempt_at = now or utc_now()
  job.progress.last_activity = chapter.last_attempt_at
  return chapter


def record_attempt_failure(job: NovelJob, chapter_number: int, reason: str) -> None:
  chapter = job.chapter(chapter_number)
  chapter.failure_reason = reason
  job.progress.last_activity = utc_now()


def mark_chapter_completed(job: NovelJob, chapter_number: int, *, content: str, tokens_used: int, cost: float, continuity_warnings: list[str], now: datetime | None = None) -> ChapterRecord:
  """Store a chapter's content and move it out of the pending/failed counts."""
  chapter = job.chapter(chapter_number)
  if chapter.status == "completed":
    raise ValueError(f"Chapter {chapter_number} is already completed")

  timestamp = now or utc_now()
  chapter.status = "completed"
  chapter.content = content
  chapter.word_count = count_words(content)
  chapter.tokens_used = tokens_used
  chapter.cost = cost
  chapter.summary = None
  chapter.failure_reason = None
  chapter.generated_at = timestamp
  chapter.continuity_warnings = continuity_warnings

  progress = job.progress
  progress.chapters_completed += 1
  # A retried chapter stays counted as failed until it succeeds.
  if chapter_number in progress.failed_chapter_numbers:
    progress.failed_chapter_numbers = [number for number in progress.failed_chapter_numbers if number != chapter_number]
    progress.chapters_failed -= 1
  progress.has_failures = progress.chapters_failed > 0
  progress.last_activity = timestamp
  return chapter


def mark_chapter_failed(job: NovelJob, chapter_number: int, reason: str, *, now: datetime | None = None) -> ChapterRecord:
  """Move a chapter to terminal failed; counts it once however often it fails."""
  chapter = job.chapter(chapter_number)
  timestamp = now or utc_now()
  chapter.status = "failed"
  chapter.failure_reason = reason
  chapter.last_attempt_at = timestamp

  progress = job.progress
  if chapter_number not in progress.failed_chapter_numbers:
    progress.failed_chapter_numbers = sorted([*progress.failed_chapter_numbers, chapter_number])
    progress.chapters_failed += 1
  progress.has_failures = True
  progress.last_activity = timestamp
  return chapter


def slot_accounting_holds(job: NovelJob) -> bool:
  """Check completed + failed + outstanding slots add up to the target chapter count.

  A generating slot already listed as failed (a chapter being retried) is
  counted under failed only.
  """
  if not job.chapters:
    return True
  failed_numbers = set(job.progress.failed_chapter_numbers)
  outstanding = sum(1 for chapter in job.chapters if chapter.status in {"pending", "generating"} and chapter.chapter_number not in failed_numbers)
  return len(job.chapters) == len(job.outline) and job.progress.chapters_completed + job.progress.chapters_failed + outstanding == job.request.target_chapters


def estimate_completion(*, started_at: datetime, chapters_done: int, chapters_total: int, now: datetime | None = None) -> datetime | None:
  """Project completion from the average time per chapter so far."""
  if chapters_done <= 0:
    return None
  current = now or utc_now()
  per_chapter: timedelta = (current - started_at) / chapters_done
  remaining = max(chapters_total - chapters_done, 0)
  return current + per_chapter * remaining


def count_words(text: str) -> int:
  return len(text.split())


def progress_percentage(job: NovelJob) -> int:
  if job.status == "completed":
    return 100
  if job.current_phase == "chapter_writing":
    return round(WRITING_BASE_PERCENT + job.progress.chapters_completed / job.request.target_chapters * WRITING_SPAN_PERCENT)
  return PHASE_PERCENTAGES.get(job.current_phase, 0)


def final_outcome(job: NovelJob) -> tuple[str, JobError | None]:
  """Decide the terminal status after writing: zero successes fail, partial success completes with an error."""
  completed = job.progress.chapters_completed
  failed = job.progress.chapters_failed
  target = job.request.target_chapters
  if completed == 0:
    message = f"All chapter generation failed. {failed} chapters could not be generated."
    return "failed", JobError(kind="fatal", message=message, phase="chapter_writing")
  if completed >= target:
    return "completed", None
  numbers = ", ".join(str(number) for number in job.progress.failed_chapter_numbers)
  message = f"Novel completed with {failed} failed chapters. Chapters {numbers} need to be regenerated."
  return "completed", JobError(kind="partial", message=message, phase="chapter_writing")
