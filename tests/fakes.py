"""Test doubles shared by unit and integration tests."""

from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable

from novel_engine.ai.providers.base import CompletionRequest, CompletionResponse
from novel_engine.core.errors import ProviderError, ProviderServerError

ANALYSIS_MODEL = "test-analysis"
OUTLINE_MODEL = "test-outline"
SYNOPSIS_MODEL = "test-synopsis"
CHAPTER_MODEL = "test-chapter"
SUMMARY_MODEL = "test-summary"
TEST_PRICING = {model: (0.001, 0.002) for model in (ANALYSIS_MODEL, OUTLINE_MODEL, SYNOPSIS_MODEL, CHAPTER_MODEL, SUMMARY_MODEL)}

PREMISE = "A disgraced cartographer must chart a shifting desert to find her missing brother before the sandstorms bury the last oasis city."

ANALYSIS_PAYLOAD = {
  "themes": ["loyalty", "memory"],
  "characters": [{"type": "reluctant guide", "conflicts": "guilt over a lost map", "speechPattern": "clipped"}],
  "plotStructure": "three-act",
  "keyBeats": ["departure", "betrayal", "return"],
  "subplots": [{"main": "a rival mapmaker", "resolution": "partial"}],
  "tone": "tense",
  "styleNotes": "sensory desert detail",
}

_CHAPTER_PROMPT = re.compile(r"^Write Chapter (\d+) of")
_SUMMARY_PROMPT = re.compile(r"CHAPTER (\d+): ")


def outline_payload(chapters: int) -> dict:
  return {"outline": [{"chapterNumber": number, "title": f"Chapter {number} Title", "summary": f"Events of chapter {number}.", "keyEvents": [f"event {number}"], "wordTarget": 2000} for number in range(1, chapters + 1)]}


def chapter_text(number: int) -> str:
  return f"Chapter {number} opens at dawn. " + "The road bent north and the wind kept time. " * 40


class ScriptedProvider:
  """Answer each call by model name; chapters listed in ``failing_chapters`` raise ``failure``."""

  def __init__(self, chapters: int = 5) -> None:
    self.calls: list[CompletionRequest] = []
    self.analysis_text = json.dumps(ANALYSIS_PAYLOAD)
    self.outline_text = json.dumps(outline_payload(chapters))
    self.synopsis_error: ProviderError | None = None
    self.summary_error: ProviderError | None = None
    self.failing_chapters: set[int] = set()
    self.failure: ProviderError = ProviderServerError("upstream unavailable", status_code=503)
    self.before_chapter: Callable[[int], Awaitable[None]] | None = None
    # Queued replies per chapter number, used before falling back to chapter_text.
    self.chapter_replies: dict[int, list[str]] = {}

  async def complete(self, request: CompletionRequest) -> CompletionResponse:
    self.calls.append(request)
    if request.model == ANALYSIS_MODEL:
      return self._reply(self.analysis_text)
    if request.model == OUTLINE_MODEL:
      return self._reply(self.outline_text)
    if request.model == SYNOPSIS_MODEL:
      if self.synopsis_error is not None:
        raise self.synopsis_error
      return self._reply("A cartographer crosses the desert, loses her brother twice and redraws the map of home.")
    if request.model == SUMMARY_MODEL:
      if self.summary_error is not None:
        raise self.summary_error
      match = _SUMMARY_PROMPT.search(request.prompt)
      return self._reply(f"Summary of chapter {match.group(1) if match else '?'}.")

    number = self.chapter_number(request)
    if self.before_chapter is not None:
      await self.before_chapter(number)
    if number in self.failing_chapters:
      raise self.failure
    queued = self.chapter_replies.get(number)
    if queued:
      return self._reply(queued.pop(0))
    return self._reply(chapter_text(number))

  @staticmethod
  def chapter_number(request: CompletionRequest) -> int:
    match = _CHAPTER_PROMPT.match(request.prompt)
    assert match is not None, "not a chapter prompt"
    return int(match.group(1))

  def chapter_calls(self, number: int | None = None) -> list[CompletionRequest]:
    calls = [call for call in self.calls if call.model == CHAPTER_MODEL]
    if number is None:
      return calls
    return [call for call in calls if self.chapter_number(call) == number]

  def calls_for(self, model: str) -> list[CompletionRequest]:
    return [call for call in self.calls if call.model == model]

  @staticmethod
  def _reply(text: str) -> CompletionResponse:
    return CompletionResponse(text=text, prompt_tokens=100, completion_tokens=50)


async def no_sleep(_seconds: float) -> None:
  return None

