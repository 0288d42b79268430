import logging
import re

from fastapi import BackgroundTasks

from novel_engine.api.models import (
  ChapterRetryRequest,
  ChapterRetryResponse,
  CompletionStatsView,
  DownloadChapterView,
  FailedChapterView,
  FailureStatsView,
  FailureSummaryView,
  JobErrorView,
  NovelCreateRequest,
  NovelCreateResponse,
  NovelDeleteResponse,
  NovelDownloadResponse,
  NovelFailuresResponse,
  NovelListItem,
  NovelListResponse,
  NovelStatusResponse,
  OutlineEntryView,
  ProgressView,
  QualityMetricsView,
)
from novel_engine.config import Settings
from novel_engine.core.errors import CapacityError, JobStateError, JobValidationError
from novel_engine.jobs.admission import AdmissionController, Rejected
from novel_engine.jobs.models import CANCELLED_MESSAGE, ChapterRecord, JobError, NovelJob, NovelRequest, utc_now
from novel_engine.jobs.progress import progress_percentage
from novel_engine.jobs.store import JobStore
from novel_engine.schema.genres import GENRE_GUIDELINES, is_known_pair
from novel_engine.services.engine import _get_job_worker
from novel_engine.storage.factory import _get_jobs_repo
from novel_engine.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

TITLE_PATTERN = re.compile(r"^[A-Za-z0-9\s\-_.,:!?'\"()]+$")
MAX_TITLE_CHARS = 200
MIN_PREMISE_CHARS = 50
MAX_PREMISE_CHARS = 30000
MIN_TARGET_WORDS = 10000
MAX_TARGET_WORDS = 500000
MIN_TARGET_CHAPTERS = 3
MAX_TARGET_CHAPTERS = 100
MIN_WORDS_PER_CHAPTER = 500
MAX_WORDS_PER_CHAPTER = 10000
RETRY_MINUTES_PER_CHAPTER = 3


def _validate_novel_request(request: NovelCreateRequest) -> NovelRequest:
  """Apply the business rules for a new novel and return the normalized request."""
  errors: list[str] = []

  title = request.title.strip().replace("<", "").replace(">", "").strip()
  if not 1 <= len(title) <= MAX_TITLE_CHARS:
    errors.append(f"Title must be 1-{MAX_TITLE_CHARS} characters")
  elif not TITLE_PATTERN.match(title):
    errors.append("Title contains invalid characters")

  premise = request.premise.strip()
  if not MIN_PREMISE_CHARS <= len(premise) <= MAX_PREMISE_CHARS:
    errors.append("Premise must be 50-30,000 characters (approximately 5,000 words)")

  if request.genre not in GENRE_GUIDELINES:
    errors.append("Invalid genre selected")
  elif not is_known_pair(request.genre, request.subgenre):
    errors.append("Invalid subgenre for selected genre")

  words = request.target_word_count
  chapters = request.target_chapters
  if not MIN_TARGET_WORDS <= words <= MAX_TARGET_WORDS:
    errors.append("Target word count must be between 10,000 and 500,000")
  if not MIN_TARGET_CHAPTERS <= chapters <= MAX_TARGET_CHAPTERS:
    errors.append("Target chapters must be between 3 and 100")
  elif words / chapters < MIN_WORDS_PER_CHAPTER:
    errors.append("Average chapter length would be too short (minimum 500 words per chapter)")
  elif words / chapters > MAX_WORDS_PER_CHAPTER:
    errors.append("Average chapter length would be too long (maximum 10,000 words per chapter)")

  if errors:
    logger.warning("Novel request rejected: %s", errors)
    raise JobValidationError("Validation failed: " + "; ".join(errors))

  return NovelRequest(title=title, premise=premise, genre=request.genre, subgenre=request.subgenre, target_word_count=words, target_chapters=chapters, human_like_writing=request.human_like_writing)


def _estimated_minutes(target_word_count: int) -> str:
  return f"{round(target_word_count / 1000 * 2)} minutes"


def _progress_view(job: NovelJob) -> ProgressView:
  return ProgressView.model_validate(job.progress.model_dump() | {"percentage": progress_percentage(job)})


def _failed_chapter_view(chapter: ChapterRecord) -> FailedChapterView:
  return FailedChapterView(chapter_number=chapter.chapter_number, title=chapter.title, status=chapter.status, attempts=chapter.attempts, failure_reason=chapter.failure_reason, last_attempt_at=chapter.last_attempt_at)


def _completion_rate(completed: int, total: int) -> int:
  if total <= 0:
    return 0
  return round(completed / total * 100)


async def _load(job_id: str, settings: Settings) -> NovelJob:
  return await JobStore(_get_jobs_repo(settings)).load(job_id)


async def create_novel(request: NovelCreateRequest, settings: Settings, background_tasks: BackgroundTasks) -> NovelCreateResponse:
  """Validate, admit and persist a new novel job, then start it in the background."""
  novel_request = _validate_novel_request(request)
  repo = _get_jobs_repo(settings)

  decision = await AdmissionController(repo, settings.max_concurrent_jobs).try_admit()
  if isinstance(decision, Rejected):
    raise CapacityError(decision.active_count, decision.max_jobs)

  # Created in planning so the job counts against the cap before its task starts.
  job = NovelJob(job_id=generate_job_id(), request=novel_request, status="planning", current_phase="premise_analysis")
  await repo.create_job(job)
  logger.info("Created novel job %s (%s/%s, %d chapters)", job.job_id, novel_request.genre, novel_request.subgenre, novel_request.target_chapters)

  trigger_job_processing(background_tasks, job.job_id, settings)
  return NovelCreateResponse(job_id=job.job_id, message="Novel generation started", estimated_time=_estimated_minutes(novel_request.target_word_count))


async def get_novel_status(job_id: str, settings: Settings) -> NovelStatusResponse:
  job = await _load(job_id, settings)
  request = job.request

  failures = None
  if job.progress.has_failures:
    failures = FailureSummaryView(failed_count=job.progress.chapters_failed, failed_chapters=list(job.progress.failed_chapter_numbers), can_retry=not job.is_active)

  return NovelStatusResponse(
    job_id=job.job_id,
    status=job.status,
    current_phase=job.current_phase,
    progress=_progress_view(job),
    title=request.title,
    genre=request.genre,
    subgenre=request.subgenre,
    target_word_count=request.target_word_count,
    target_chapters=request.target_chapters,
    created_at=job.created_at,
    outline=[OutlineEntryView.model_validate(spec.model_dump()) for spec in job.outline] or None,
    error=JobErrorView.model_validate(job.error.model_dump()) if job.error else None,
    quality_metrics=QualityMetricsView.model_validate(job.quality_metrics.model_dump()) if job.status == "completed" and job.quality_metrics else None,
    failures=failures,
  )


async def list_novels(settings: Settings) -> NovelListResponse:
  jobs = await _get_jobs_repo(settings).list_jobs(settings.recent_jobs_limit)
  items = [
    NovelListItem(job_id=job.job_id, title=job.request.title, status=job.status, current_phase=job.current_phase, progress=job.progress.chapters_completed, total_chapters=job.request.target_chapters, created_at=job.created_at)
    for job in jobs
  ]
  return NovelListResponse(jobs=items)


async def download_novel(job_id: str, settings: Settings) -> NovelDownloadResponse:
  """Return the manuscript of a completed job, partial or not."""
  job = await _load(job_id, settings)
  if job.status != "completed":
    raise JobStateError(f"Novel generation is not yet complete (status: {job.status})")
  if not job.chapters:
    raise JobStateError("No chapters were generated")

  completed = job.completed_chapters()
  failed = job.failed_chapters()
  request = job.request
  return NovelDownloadResponse(
    job_id=job.job_id,
    title=request.title,
    genre=request.genre,
    subgenre=request.subgenre,
    premise=request.premise,
    synopsis=job.synopsis,
    chapters=[DownloadChapterView(number=chapter.chapter_number, title=chapter.title, content=chapter.content or "", word_count=chapter.word_count) for chapter in completed],
    failed_chapters=[_failed_chapter_view(chapter) for chapter in failed],
    word_count=job.total_word_count(),
    target_word_count=request.target_word_count,
    completed_at=job.completed_at,
    quality_metrics=QualityMetricsView.model_validate(job.quality_metrics.model_dump()) if job.quality_metrics else None,
    has_failures=job.progress.has_failures,
    completion_stats=CompletionStatsView(completed=len(completed), failed=len(failed), total=request.target_chapters, completion_rate=_completion_rate(len(completed), request.target_chapters)),
  )


async def cancel_or_delete_novel(job_id: str, settings: Settings) -> NovelDeleteResponse:
  """Cancel a running job, or delete a job that is no longer running."""
  store = JobStore(_get_jobs_repo(settings))
  job = await store.load(job_id)

  if job.is_active:
    outcome = {"cancelled": False}

    def _cancel(current: NovelJob) -> None:
      outcome["cancelled"] = current.is_active
      if not current.is_active:
        return
      current.status = "failed"
      current.current_phase = "cancelled"
      current.error = JobError(kind="cancelled", message=CANCELLED_MESSAGE, phase="cancelled")
      current.progress.last_activity = utc_now()
      current.progress.estimated_completion = None

    await store.mutate(job_id, _cancel, honor_cancel=False)
    if not outcome["cancelled"]:
      raise JobStateError("Job finished before it could be cancelled")
    logger.info("Cancelled active job %s", job_id)
    return NovelDeleteResponse(message="Job cancelled successfully", status="cancelled")

  await store.repo.delete_job(job_id)
  logger.info("Deleted job %s", job_id)
  return NovelDeleteResponse(message="Job deleted successfully", status="deleted")


async def retry_failed_chapters(job_id: str, payload: ChapterRetryRequest, settings: Settings, background_tasks: BackgroundTasks) -> ChapterRetryResponse:
  """Start regenerating failed chapters (or a cancelled job's unfinished ones) from the lowest selected number."""
  job = await _load(job_id, settings)

  retryable = job.retryable_chapters()
  if not retryable:
    raise JobStateError("This job has no failed chapters to retry")
  if job.is_active:
    raise JobStateError("Cannot retry chapters while job is still processing")

  selected = retryable
  if payload.chapter_numbers:
    wanted = set(payload.chapter_numbers)
    selected = [chapter for chapter in retryable if chapter.chapter_number in wanted]
    if not selected:
      raise JobStateError("None of the specified chapters are in failed status")

  numbers = [chapter.chapter_number for chapter in selected]
  start_chapter_number = min(numbers)
  trigger_chapter_retry(background_tasks, job_id, start_chapter_number, settings)
  logger.info("Queued chapter retry for job %s, chapters: %s", job_id, numbers)
  return ChapterRetryResponse(message="Chapter retry started", chapters_to_retry=len(numbers), chapter_numbers=numbers, estimated_time=f"{len(numbers) * RETRY_MINUTES_PER_CHAPTER} minutes")


async def get_novel_failures(job_id: str, settings: Settings) -> NovelFailuresResponse:
  job = await _load(job_id, settings)
  failed = job.failed_chapters()
  completed = job.completed_chapters()
  total = len(job.chapters)
  summary = FailureStatsView(total_chapters=total, completed=len(completed), failed=len(failed), can_retry=bool(job.retryable_chapters()) and not job.is_active, completion_rate=_completion_rate(len(completed), total))
  return NovelFailuresResponse(job_id=job.job_id, title=job.request.title, failed_chapters=[_failed_chapter_view(chapter) for chapter in failed], summary=summary)


def trigger_job_processing(background_tasks: BackgroundTasks, job_id: str, settings: Settings) -> None:
  """Hand a new job to the worker once the response has been sent."""
  if not settings.jobs_auto_process:
    return

  async def _start() -> None:
    _get_job_worker(settings).start(job_id)

  background_tasks.add_task(_start)


def trigger_chapter_retry(background_tasks: BackgroundTasks, job_id: str, start_chapter_number: int, settings: Settings) -> None:
  """Hand a retry to the worker once the response has been sent."""
  if not settings.jobs_auto_process:
    return

  async def _resume() -> None:
    _get_job_worker(settings).resume(job_id, start_chapter_number)

  background_tasks.add_task(_resume)
