from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, field_validator
from pydantic.alias_generators import to_camel

from novel_engine.jobs.models import ChapterStatus, ErrorKind, JobPhase, JobStatus


class ApiModel(BaseModel):
  """Base for HTTP payloads: camelCase on the wire, snake_case in Python."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NovelCreateRequest(ApiModel):
  """Request payload for starting a novel generation job.

  Only shapes are checked here; ranges and genre membership are business
  rules enforced by the service so they surface as 400 responses.
  """

  title: StrictStr = Field(description="Novel title.", examples=["The Lantern Road"])
  premise: StrictStr = Field(description="Story premise, 50 to 30,000 characters.")
  genre: StrictStr = Field(examples=["fantasy"])
  subgenre: StrictStr = Field(examples=["epic_fantasy"])
  target_word_count: StrictInt = Field(description="Total words across all chapters (10,000 to 500,000).")
  target_chapters: StrictInt = Field(description="Number of chapters (3 to 100).")
  human_like_writing: StrictBool = Field(default=True, description="Ask for varied, natural prose in chapter prompts.")
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class NovelCreateResponse(ApiModel):
  job_id: StrictStr
  message: StrictStr
  estimated_time: StrictStr


class ChapterRetryRequest(ApiModel):
  """Request payload for retrying failed chapters."""

  chapter_numbers: list[StrictInt] | None = Field(default=None, description="Failed chapters to retry (defaults to all failed chapters).")
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

  @field_validator("chapter_numbers")
  @classmethod
  def _positive_numbers(cls, value: list[int] | None) -> list[int] | None:
    if value is None:
      return None
    if any(number < 1 for number in value):
      raise ValueError("Chapter numbers must be 1 or greater.")
    return sorted(set(value))


class ChapterRetryResponse(ApiModel):
  message: StrictStr
  chapters_to_retry: StrictInt
  chapter_numbers: list[int]
  estimated_time: StrictStr


class JobErrorView(ApiModel):
  kind: ErrorKind
  message: StrictStr
  phase: JobPhase
  timestamp: datetime


class OutlineEntryView(ApiModel):
  chapter_number: StrictInt
  title: StrictStr
  summary: StrictStr
  key_events: list[str]
  character_focus: list[str]
  plot_advancement: StrictStr
  word_target: StrictInt
  genre_elements: list[str]


class QualityMetricsView(ApiModel):
  average_chapter_length: StrictInt
  total_word_count: StrictInt
  target_accuracy: StrictInt
  completion_rate: StrictInt
  has_failures: StrictBool
  failed_chapters: list[int]


class ProgressView(ApiModel):
  outline_complete: StrictBool
  chapters_completed: StrictInt
  chapters_failed: StrictInt
  failed_chapter_numbers: list[int]
  has_failures: StrictBool
  last_activity: datetime
  estimated_completion: datetime | None = None
  percentage: StrictInt


class FailureSummaryView(ApiModel):
  has_failures: StrictBool = True
  failed_count: StrictInt
  failed_chapters: list[int]
  can_retry: StrictBool


class NovelStatusResponse(ApiModel):
  """Status payload for a novel job."""

  job_id: StrictStr
  status: JobStatus
  current_phase: JobPhase
  progress: ProgressView
  title: StrictStr
  genre: StrictStr
  subgenre: StrictStr
  target_word_count: StrictInt
  target_chapters: StrictInt
  created_at: datetime
  outline: list[OutlineEntryView] | None = None
  error: JobErrorView | None = None
  quality_metrics: QualityMetricsView | None = None
  failures: FailureSummaryView | None = None


class NovelListItem(ApiModel):
  job_id: StrictStr
  title: StrictStr
  status: JobStatus
  current_phase: JobPhase
  progress: StrictInt = Field(description="Chapters completed so far.")
  total_chapters: StrictInt
  created_at: datetime


class NovelListResponse(ApiModel):
  jobs: list[NovelListItem]


class DownloadChapterView(ApiModel):
  number: StrictInt
  title: StrictStr
  content: StrictStr
  word_count: StrictInt


class FailedChapterView(ApiModel):
  chapter_number: StrictInt
  title: StrictStr
  status: ChapterStatus
  attempts: StrictInt
  failure_reason: StrictStr | None = None
  last_attempt_at: datetime | None = None


class CompletionStatsView(ApiModel):
  completed: StrictInt
  failed: StrictInt
  total: StrictInt
  completion_rate: StrictInt


class NovelDownloadResponse(ApiModel):
  """Finished manuscript with whatever chapters succeeded."""

  job_id: StrictStr
  title: StrictStr
  genre: StrictStr
  subgenre: StrictStr
  premise: StrictStr
  synopsis: StrictStr | None = None
  chapters: list[DownloadChapterView]
  failed_chapters: list[FailedChapterView]
  word_count: StrictInt
  target_word_count: StrictInt
  completed_at: datetime | None = None
  quality_metrics: QualityMetricsView | None = None
  has_failures: StrictBool
  completion_stats: CompletionStatsView


class NovelDeleteResponse(ApiModel):
  message: StrictStr
  status: Literal["cancelled", "deleted"]


class FailureStatsView(ApiModel):
  total_chapters: StrictInt
  completed: StrictInt
  failed: StrictInt
  can_retry: StrictBool
  completion_rate: StrictInt


class NovelFailuresResponse(ApiModel):
  job_id: StrictStr
  title: StrictStr
  failed_chapters: list[FailedChapterView]
  summary: FailureStatsView


class PremiseUploadResponse(ApiModel):
  premise: StrictStr
  word_count: StrictInt
  character_count: StrictInt


class SubgenreView(ApiModel):
  name: StrictStr
  display_name: StrictStr
  description: StrictStr


class GenreView(ApiModel):
  name: StrictStr
  display_name: StrictStr
  subgenres: list[SubgenreView]


class GenreListResponse(ApiModel):
  genres: list[GenreView]


class PremiseCharacterView(ApiModel):
  type: StrictStr
  conflicts: StrictStr
  speech_pattern: StrictStr


class PremiseSubplotView(ApiModel):
  main: StrictStr
  resolution: StrictStr


class PremiseAnalysisView(ApiModel):
  themes: list[str]
  characters: list[PremiseCharacterView]
  plot_structure: StrictStr
  key_beats: list[str]
  subplots: list[PremiseSubplotView]
  tone: StrictStr
  style_notes: StrictStr


class ChapterSummaryView(ApiModel):
  chapter_number: StrictInt
  title: StrictStr
  summary: StrictStr


class StoryBibleView(ApiModel):
  analysis: PremiseAnalysisView | None = None
  synopsis: StrictStr | None = None
  outline: list[OutlineEntryView]
  chapter_summaries: list[ChapterSummaryView]


class StoryBibleResponse(ApiModel):
  job_id: StrictStr
  story_bible: StoryBibleView
  last_updated: datetime


class ContinuityAlertView(ApiModel):
  chapter_number: StrictInt
  message: StrictStr


class ContinuityAlertsResponse(ApiModel):
  job_id: StrictStr
  alerts: list[ContinuityAlertView]
  total_count: StrictInt
  last_checked: datetime


class QualityMetricsResponse(ApiModel):
  job_id: StrictStr
  metrics: QualityMetricsView | None = None
  last_updated: datetime


class CostBreakdownView(ApiModel):
  analysis: float
  outline: float
  chapters: float


class CostTrackingView(ApiModel):
  total_cost: float
  tokens_used: StrictInt
  estimated_remaining: float
  breakdown: CostBreakdownView


class CostTrackingResponse(ApiModel):
  job_id: StrictStr
  cost_tracking: CostTrackingView
  last_updated: datetime


class GenerationProgressView(ApiModel):
  percentage: StrictInt
  chapters_completed: StrictInt
  total_chapters: StrictInt
  estimated_completion: datetime | None = None
  last_activity: datetime
  active_run: StrictBool
  run_kind: StrictStr | None = None
  run_start_chapter: StrictInt | None = None


class MonitoringResponse(ApiModel):
  """Everything an operator dashboard needs for one job."""

  job_id: StrictStr
  status: JobStatus
  current_phase: JobPhase
  last_updated: datetime
  story_bible: StoryBibleView
  continuity_alerts: list[ContinuityAlertView]
  quality_metrics: QualityMetricsView | None = None
  cost_tracking: CostTrackingView
  generation_progress: GenerationProgressView
