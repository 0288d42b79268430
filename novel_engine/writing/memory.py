"""Bounded story memory assembled for each chapter generation call."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from novel_engine.ai.prompts import render_summary_prompt
from novel_engine.ai.providers.base import CompletionRequest, TextProvider
from novel_engine.core.errors import ProviderError
from novel_engine.jobs.models import NovelJob

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 200


@dataclass(frozen=True)
class GeneratedSummary:
  """A chapter summary that should be persisted; fallbacks carry no usage."""

  chapter_number: int
  text: str
  model: str
  prompt_tokens: int = 0
  completion_tokens: int = 0
  is_fallback: bool = False


class ChapterSummarizer:
  """Produce a 2-3 sentence chapter summary, falling back to a fixed line."""

  def __init__(self, provider: TextProvider, model: str) -> None:
    self._provider = provider
    self._model = model

  async def summarize(self, chapter_number: int, title: str, content: str) -> GeneratedSummary:
    request = CompletionRequest(model=self._model, prompt=render_summary_prompt(chapter_number, title, content), temperature=SUMMARY_TEMPERATURE, max_tokens=SUMMARY_MAX_TOKENS)
    try:
      response = await self._provider.complete(request)
    except ProviderError as exc:
      logger.warning("Failed to generate summary for chapter %s: %s", chapter_number, exc)
      return GeneratedSummary(chapter_number=chapter_number, text=fallback_summary(chapter_number, title), model=self._model, is_fallback=True)

    text = response.text.strip()
    if not text:
      return GeneratedSummary(chapter_number=chapter_number, text=fallback_summary(chapter_number, title), model=self._model, prompt_tokens=response.prompt_tokens, completion_tokens=response.completion_tokens, is_fallback=True)
    return GeneratedSummary(chapter_number=chapter_number, text=text, model=self._model, prompt_tokens=response.prompt_tokens, completion_tokens=response.completion_tokens)


def fallback_summary(chapter_number: int, title: str) -> str:
  return f"Chapter {chapter_number}: {title} - Content generated successfully"


@dataclass(frozen=True)
class ContextBlock:
  """Synopsis, per-chapter summaries, a recency window of full text and a position trailer."""

  chapter_number: int
  target_chapters: int
  synopsis: str | None
  summaries: tuple[tuple[int, str, str], ...] = ()
  recent_chapters: tuple[tuple[int, str, str], ...] = ()
  new_summaries: tuple[GeneratedSummary, ...] = field(default=(), compare=False)

  @property
  def is_first_chapter(self) -> bool:
    return not self.summaries

  def render(self) -> str:
    parts: list[str] = []
    if self.synopsis:
      parts.append(f"STORY SYNOPSIS:\n{self.synopsis}")

    if self.is_first_chapter:
      parts.append("STORY PROGRESS: This is the first chapter")
      return "\n\n".join(parts) + "\n"

    summary_lines = "\n".join(f"Ch{number}: {title} - {summary}" for number, title, summary in self.summaries)
    parts.append(f"CHAPTER SUMMARIES (ALL PREVIOUS CHAPTERS):\n{summary_lines}")

    if self.recent_chapters:
      window = "\n".join(f"\n--- CHAPTER {number}: {title} ---\n{content}" for number, title, content in self.recent_chapters)
      parts.append(f"RECENT CHAPTERS (FULL TEXT - LAST {len(self.recent_chapters)}):{window}")

    parts.append(f"CURRENT PROGRESS: Writing Chapter {self.chapter_number} of {self.target_chapters} total")
    return "\n\n".join(parts) + "\n"


class StoryMemoryBuilder:
  """Build the context for one chapter from the job's completed predecessors.

  Missing summaries are generated on demand and written onto the passed job
  so the caller can persist them; a chapter whose summary is persisted is
  never summarized again, including one that fell back to the fixed line.
  """

  def __init__(self, summarizer: ChapterSummarizer, *, recent_window: int = 10) -> None:
    self._summarizer = summarizer
    self._recent_window = recent_window

  async def build(self, job: NovelJob, chapter_number: int) -> ContextBlock:
    prior = [chapter for chapter in job.chapters if chapter.status == "completed" and chapter.content and chapter.chapter_number < chapter_number]

    summaries: list[tuple[int, str, str]] = []
    generated: list[GeneratedSummary] = []
    for chapter in prior:
      summary = chapter.summary
      if not summary:
        generated_summary = await self._summarizer.summarize(chapter.chapter_number, chapter.title, chapter.content or "")
        chapter.summary = generated_summary.text
        summary = generated_summary.text
        generated.append(generated_summary)
      summaries.append((chapter.chapter_number, chapter.title, summary))

    recent = tuple((chapter.chapter_number, chapter.title, chapter.content or "") for chapter in prior[-self._recent_window :])
    return ContextBlock(chapter_number=chapter_number, target_chapters=job.request.target_chapters, synopsis=job.synopsis, summaries=tuple(summaries), recent_chapters=recent, new_summaries=tuple(generated))
