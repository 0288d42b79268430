"""Read-only views over a job for dashboards and operators."""

from __future__ import annotations

from novel_engine.api.models import (
  ChapterSummaryView,
  ContinuityAlertsResponse,
  ContinuityAlertView,
  CostBreakdownView,
  CostTrackingResponse,
  CostTrackingView,
  GenerationProgressView,
  MonitoringResponse,
  OutlineEntryView,
  PremiseAnalysisView,
  QualityMetricsResponse,
  QualityMetricsView,
  StoryBibleResponse,
  StoryBibleView,
)
from novel_engine.config import Settings
from novel_engine.jobs.models import NovelJob
from novel_engine.jobs.progress import progress_percentage
from novel_engine.jobs.store import JobStore
from novel_engine.services.engine import _get_job_worker
from novel_engine.storage.factory import _get_jobs_repo


def _story_bible(job: NovelJob) -> StoryBibleView:
  summaries = [ChapterSummaryView(chapter_number=chapter.chapter_number, title=chapter.title, summary=chapter.summary) for chapter in job.completed_chapters() if chapter.summary]
  return StoryBibleView(
    analysis=PremiseAnalysisView.model_validate(job.analysis.model_dump()) if job.analysis else None,
    synopsis=job.synopsis,
    outline=[OutlineEntryView.model_validate(spec.model_dump()) for spec in job.outline],
    chapter_summaries=summaries,
  )


def _continuity_alerts(job: NovelJob) -> list[ContinuityAlertView]:
  return [ContinuityAlertView(chapter_number=chapter.chapter_number, message=warning) for chapter in job.chapters for warning in chapter.continuity_warnings]


def _quality_metrics(job: NovelJob) -> QualityMetricsView | None:
  if job.quality_metrics is None:
    return None
  return QualityMetricsView.model_validate(job.quality_metrics.model_dump())


def _cost_tracking(job: NovelJob) -> CostTrackingView:
  """Totals so far plus a projection from the average cost of finished chapters."""
  usage = job.model_usage
  completed = job.completed_chapters()
  remaining_chapters = sum(1 for chapter in job.chapters if chapter.status != "completed") if job.chapters else job.request.target_chapters
  average_chapter_cost = sum(chapter.cost for chapter in completed) / len(completed) if completed else 0.0
  return CostTrackingView(
    total_cost=usage.total_cost,
    tokens_used=usage.total_tokens,
    estimated_remaining=round(average_chapter_cost * remaining_chapters, 6),
    breakdown=CostBreakdownView(analysis=usage.premise_analysis.cost, outline=usage.outline_generation.cost, chapters=usage.chapter_generation.cost),
  )


async def _load(job_id: str, settings: Settings) -> NovelJob:
  return await JobStore(_get_jobs_repo(settings)).load(job_id)


async def get_story_bible(job_id: str, settings: Settings) -> StoryBibleResponse:
  job = await _load(job_id, settings)
  return StoryBibleResponse(job_id=job.job_id, story_bible=_story_bible(job), last_updated=job.updated_at)


async def get_continuity_alerts(job_id: str, settings: Settings) -> ContinuityAlertsResponse:
  job = await _load(job_id, settings)
  alerts = _continuity_alerts(job)
  return ContinuityAlertsResponse(job_id=job.job_id, alerts=alerts, total_count=len(alerts), last_checked=job.updated_at)


async def get_quality_metrics(job_id: str, settings: Settings) -> QualityMetricsResponse:
  job = await _load(job_id, settings)
  return QualityMetricsResponse(job_id=job.job_id, metrics=_quality_metrics(job), last_updated=job.updated_at)


async def get_cost_tracking(job_id: str, settings: Settings) -> CostTrackingResponse:
  job = await _load(job_id, settings)
  return CostTrackingResponse(job_id=job.job_id, cost_tracking=_cost_tracking(job), last_updated=job.updated_at)


async def get_monitoring(job_id: str, settings: Settings) -> MonitoringResponse:
  """Aggregate every monitoring view in one response."""
  job = await _load(job_id, settings)
  worker = _get_job_worker(settings)
  run = next((context for context in worker.active_runs() if context.job_id == job.job_id), None)
  progress = GenerationProgressView(
    percentage=progress_percentage(job),
    chapters_completed=job.progress.chapters_completed,
    total_chapters=job.request.target_chapters,
    estimated_completion=job.progress.estimated_completion,
    last_activity=job.progress.last_activity,
    active_run=worker.is_running(job.job_id),
    run_kind=run.kind if run else None,
    run_start_chapter=run.start_chapter_number if run else None,
  )
  return MonitoringResponse(
    job_id=job.job_id,
    status=job.status,
    current_phase=job.current_phase,
    last_updated=job.updated_at,
    story_bible=_story_bible(job),
    continuity_alerts=_continuity_alerts(job),
    quality_metrics=_quality_metrics(job),
    cost_tracking=_cost_tracking(job),
    generation_progress=progress,
  )
