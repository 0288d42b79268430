"""Schemas for structured provider output, validated once at ingestion."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from novel_engine.core.errors import ResponseFormatError
from novel_engine.jobs.models import ChapterSpec, PremiseAnalysis, PremiseCharacter, PremiseSubplot

logger = logging.getLogger(__name__)

MAX_CHAPTER_WORD_TARGET = 8000
DEFAULT_KEY_EVENTS = ["Chapter events to be determined"]


class _ProviderPayload(BaseModel):
  """Provider JSON uses camelCase keys and may carry extra fields."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _string_list(value: Any) -> list[str]:
  if value is None:
    return []
  if isinstance(value, str):
    return [value]
  if isinstance(value, list):
    return [str(item) for item in value if item is not None and str(item).strip()]
  return []


class CharacterPayload(_ProviderPayload):
  type: str = "Unnamed character"
  conflicts: str = ""
  speech_pattern: str = ""


class SubplotPayload(_ProviderPayload):
  main: str
  resolution: str = "partial"


class PremiseAnalysisPayload(_ProviderPayload):
  """Premise analysis as returned by the model."""

  themes: list[str] = Field(default_factory=list)
  characters: list[CharacterPayload] = Field(default_factory=list)
  plot_structure: str = ""
  key_beats: list[str] = Field(default_factory=list)
  subplots: list[SubplotPayload] = Field(default_factory=list)
  tone: str = ""
  style_notes: str = ""

  @field_validator("themes", "key_beats", mode="before")
  @classmethod
  def _coerce_lists(cls, value: Any) -> list[str]:
    return _string_list(value)

  @field_validator("characters", mode="before")
  @classmethod
  def _coerce_characters(cls, value: Any) -> list[Any]:
    # Some responses list characters as bare strings.
    if not isinstance(value, list):
      return []
    return [{"type": item} if isinstance(item, str) else item for item in value if isinstance(item, str | dict)]

  @field_validator("subplots", mode="before")
  @classmethod
  def _coerce_subplots(cls, value: Any) -> list[Any]:
    if not isinstance(value, list):
      return []
    return [{"main": item} if isinstance(item, str) else item for item in value if isinstance(item, str | dict)]

  def to_analysis(self) -> PremiseAnalysis:
    subplots = []
    for subplot in self.subplots:
      resolution = subplot.resolution if subplot.resolution in {"complete", "partial", "unresolved"} else "partial"
      subplots.append(PremiseSubplot(main=subplot.main, resolution=resolution))
    characters = [PremiseCharacter(type=item.type, conflicts=item.conflicts, speech_pattern=item.speech_pattern) for item in self.characters]
    return PremiseAnalysis(themes=self.themes, characters=characters, plot_structure=self.plot_structure, key_beats=self.key_beats, subplots=subplots, tone=self.tone, style_notes=self.style_notes)


class OutlineEntryPayload(_ProviderPayload):
  """One outline entry as returned by the model; anything may be missing."""

  chapter_number: int | None = None
  title: str | None = None
  summary: str | None = None
  key_events: list[str] | None = None
  character_focus: list[str] = Field(default_factory=list)
  plot_advancement: str = ""
  word_target: int | None = None
  genre_elements: list[str] = Field(default_factory=list)

  @field_validator("character_focus", "genre_elements", mode="before")
  @classmethod
  def _coerce_lists(cls, value: Any) -> list[str]:
    return _string_list(value)

  @field_validator("key_events", mode="before")
  @classmethod
  def _coerce_key_events(cls, value: Any) -> list[str] | None:
    if not isinstance(value, list):
      return None
    return _string_list(value) or None

  @field_validator("word_target", mode="before")
  @classmethod
  def _coerce_word_target(cls, value: Any) -> int | None:
    try:
      parsed = int(value)
    except (TypeError, ValueError):
      return None
    return parsed if parsed > 0 else None


class OutlinePayload(_ProviderPayload):
  outline: list[OutlineEntryPayload]

  def to_chapter_specs(self, *, target_chapters: int, target_word_count: int) -> list[ChapterSpec]:
    """Apply defaults and reject outlines that cannot fill every chapter slot."""
    if len(self.outline) < target_chapters:
      raise ResponseFormatError(f"Outline has {len(self.outline)} chapters, expected {target_chapters}")
    if len(self.outline) > target_chapters:
      logger.warning("Outline returned %d chapters; keeping the first %d", len(self.outline), target_chapters)

    default_word_target = round(target_word_count / target_chapters)
    specs: list[ChapterSpec] = []
    # Chapter numbers follow outline position so slots stay index-aligned.
    for index, entry in enumerate(self.outline[:target_chapters]):
      chapter_number = index + 1
      if not (entry.title and entry.title.strip()) or not (entry.summary and entry.summary.strip()):
        raise ResponseFormatError(f"Chapter outline for chapter {chapter_number} is incomplete (missing title or summary)")
      word_target = min(entry.word_target or default_word_target, MAX_CHAPTER_WORD_TARGET)
      specs.append(
        ChapterSpec(
          chapter_number=chapter_number,
          title=entry.title.strip(),
          summary=entry.summary.strip(),
          key_events=entry.key_events or list(DEFAULT_KEY_EVENTS),
          character_focus=entry.character_focus,
          plot_advancement=entry.plot_advancement,
          word_target=word_target,
          genre_elements=entry.genre_elements,
        )
      )
    return specs


def parse_payload(model: type[_ProviderPayload], data: Any) -> Any:
  """Validate parsed JSON against a payload schema, as a ResponseFormatError on mismatch."""
  try:
    return model.model_validate(data)
  except ValidationError as exc:
    raise ResponseFormatError(f"Provider payload failed validation for {model.__name__}: {exc.error_count()} errors") from exc
