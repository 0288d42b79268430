"""Domain models for novel generation jobs."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

JobStatus = Literal["pending", "planning", "outlining", "writing", "completed", "failed"]
JobPhase = Literal["premise_analysis", "outline_generation", "chapter_writing", "completed", "cancelled"]
ChapterStatus = Literal["pending", "generating", "completed", "failed"]
ErrorKind = Literal["fatal", "partial", "cancelled"]
UsagePhase = Literal["premise_analysis", "outline_generation", "chapter_generation"]

ACTIVE_STATUSES: frozenset[str] = frozenset({"planning", "outlining", "writing"})
CANCELLED_MESSAGE = "Job cancelled by user"
RESUMABLE_CHAPTER_STATUSES: frozenset[str] = frozenset({"failed", "pending", "generating"})

# Legal (status, phase) pairs; failed records the phase where the run stopped.
VALID_PHASES: dict[str, frozenset[str]] = {
  "pending": frozenset({"premise_analysis"}),
  "planning": frozenset({"premise_analysis"}),
  "outlining": frozenset({"outline_generation"}),
  "writing": frozenset({"chapter_writing"}),
  "completed": frozenset({"completed"}),
  "failed": frozenset({"premise_analysis", "outline_generation", "chapter_writing", "cancelled"}),
}


def utc_now() -> datetime:
  return datetime.now(UTC)


class JobError(BaseModel):
  """Single tagged error shape stored on a job."""

  model_config = ConfigDict(frozen=True)

  kind: ErrorKind
  message: str
  phase: JobPhase
  timestamp: datetime = Field(default_factory=utc_now)


class JobProgress(BaseModel):
  """Progress counters for a job."""

  outline_complete: bool = False
  chapters_completed: int = 0
  chapters_failed: int = 0
  failed_chapter_numbers: list[int] = Field(default_factory=list)
  has_failures: bool = False
  last_activity: datetime = Field(default_factory=utc_now)
  estimated_completion: datetime | None = None

  @field_validator("failed_chapter_numbers")
  @classmethod
  def _sorted_unique(cls, value: list[int]) -> list[int]:
    return sorted(set(value))


class ChapterSpec(BaseModel):
  """One outline entry after defaulting."""

  model_config = ConfigDict(frozen=True)

  chapter_number: int = Field(ge=1)
  title: str
  summary: str
  key_events: list[str] = Field(default_factory=list)
  character_focus: list[str] = Field(default_factory=list)
  plot_advancement: str = ""
  word_target: int = Field(ge=1)
  genre_elements: list[str] = Field(default_factory=list)


class ChapterRecord(BaseModel):
  """Generation slot for one outline entry."""

  chapter_number: int = Field(ge=1)
  title: str
  status: ChapterStatus = "pending"
  content: str | None = None
  word_count: int = 0
  tokens_used: int = 0
  cost: float = 0.0
  attempts: int = 0
  summary: str | None = None
  failure_reason: str | None = None
  last_attempt_at: datetime | None = None
  generated_at: datetime | None = None
  continuity_warnings: list[str] = Field(default_factory=list)


class PhaseUsage(BaseModel):
  """Token, cost and duration totals for one phase."""

  model: str | None = None
  tokens_used: int = 0
  cost: float = 0.0
  duration_ms: int = 0


class ModelUsage(BaseModel):
  premise_analysis: PhaseUsage = Field(default_factory=PhaseUsage)
  outline_generation: PhaseUsage = Field(default_factory=PhaseUsage)
  chapter_generation: PhaseUsage = Field(default_factory=PhaseUsage)

  def for_phase(self, phase: UsagePhase) -> PhaseUsage:
    return getattr(self, phase)

  @property
  def total_cost(self) -> float:
    return round(self.premise_analysis.cost + self.outline_generation.cost + self.chapter_generation.cost, 6)

  @property
  def total_tokens(self) -> int:
    return self.premise_analysis.tokens_used + self.outline_generation.tokens_used + self.chapter_generation.tokens_used


class QualityMetrics(BaseModel):
  """Derived metrics computed after the writing phase."""

  model_config = ConfigDict(frozen=True)

  average_chapter_length: int
  total_word_count: int
  target_accuracy: int
  completion_rate: int
  has_failures: bool
  failed_chapters: list[int]


class PremiseCharacter(BaseModel):
  type: str = "Unnamed character"
  conflicts: str = ""
  speech_pattern: str = ""


class PremiseSubplot(BaseModel):
  main: str
  resolution: Literal["complete", "partial", "unresolved"] = "partial"


class PremiseAnalysis(BaseModel):
  """Validated premise analysis produced by the first phase."""

  themes: list[str] = Field(default_factory=list)
  characters: list[PremiseCharacter] = Field(default_factory=list)
  plot_structure: str = ""
  key_beats: list[str] = Field(default_factory=list)
  subplots: list[PremiseSubplot] = Field(default_factory=list)
  tone: str = ""
  style_notes: str = ""


class NovelRequest(BaseModel):
  """Immutable request facts captured at creation."""

  model_config = ConfigDict(frozen=True)

  title: str
  premise: str
  genre: str
  subgenre: str
  target_word_count: int
  target_chapters: int
  human_like_writing: bool = True


class NovelJob(BaseModel):
  """Aggregate root for one novel generation run."""

  job_id: str
  request: NovelRequest
  status: JobStatus = "pending"
  current_phase: JobPhase = "premise_analysis"
  progress: JobProgress = Field(default_factory=JobProgress)
  analysis: PremiseAnalysis | None = None
  outline: list[ChapterSpec] = Field(default_factory=list)
  chapters: list[ChapterRecord] = Field(default_factory=list)
  synopsis: str | None = None
  model_usage: ModelUsage = Field(default_factory=ModelUsage)
  quality_metrics: QualityMetrics | None = None
  error: JobError | None = None
  version: int = 0
  created_at: datetime = Field(default_factory=utc_now)
  updated_at: datetime = Field(default_factory=utc_now)
  started_at: datetime | None = None
  completed_at: datetime | None = None

  @model_validator(mode="after")
  def _check_status_phase(self) -> NovelJob:
    if self.current_phase not in VALID_PHASES[self.status]:
      raise ValueError(f"Invalid status/phase pair: {self.status}/{self.current_phase}")
    return self

  @property
  def is_active(self) -> bool:
    return self.status in ACTIVE_STATUSES

  @property
  def is_cancelled(self) -> bool:
    return self.status == "failed" and self.current_phase == "cancelled"

  def chapter(self, chapter_number: int) -> ChapterRecord:
    """Return the slot for a chapter number (1-based, index-aligned with the outline)."""
    index = chapter_number - 1
    if index < 0 or index >= len(self.chapters):
      raise IndexError(f"Chapter {chapter_number} has no slot")
    return self.chapters[index]

  def completed_chapters(self) -> list[ChapterRecord]:
    return [chapter for chapter in self.chapters if chapter.status == "completed"]

  def failed_chapters(self) -> list[ChapterRecord]:
    return [chapter for chapter in self.chapters if chapter.status == "failed"]

  def retryable_chapters(self) -> list[ChapterRecord]:
    """Failed chapters, plus the unfinished ones once the job was cancelled."""
    if self.is_cancelled:
      return [chapter for chapter in self.chapters if chapter.status in RESUMABLE_CHAPTER_STATUSES]
    return self.failed_chapters()

  def total_word_count(self) -> int:
    return sum(chapter.word_count for chapter in self.completed_chapters())
