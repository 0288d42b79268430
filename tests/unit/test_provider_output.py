from __future__ import annotations

import pytest

from novel_engine.ai.json_parser import parse_json_with_fallback
from novel_engine.ai.pipeline.contracts import DEFAULT_KEY_EVENTS, OutlinePayload, PremiseAnalysisPayload, parse_payload
from novel_engine.core.errors import ResponseFormatError


def test_parses_plain_json() -> None:
  assert parse_json_with_fallback('{"themes": ["hope"]}') == {"themes": ["hope"]}


def test_parses_fenced_json_with_trailing_comma() -> None:
  raw = 'Here is the outline:\n```json\n{"outline": [{"title": "One",},]}\n```\nLet me know!'

  assert parse_json_with_fallback(raw) == {"outline": [{"title": "One"}]}


def test_parses_json_embedded_in_prose() -> None:
  raw = 'Sure. {"tone": "dark {but} hopeful", "themes": []} Hope that helps.'

  assert parse_json_with_fallback(raw) == {"tone": "dark {but} hopeful", "themes": []}


@pytest.mark.parametrize("raw", [None, "", "   ", "no json here", '{"unterminated": '])
def test_rejects_unusable_output(raw: str | None) -> None:
  with pytest.raises(ResponseFormatError):
    parse_json_with_fallback(raw)


def test_outline_defaults_missing_fields() -> None:
  payload = parse_payload(
    OutlinePayload,
    {
      "outline": [
        {"chapterNumber": 7, "title": " Arrival ", "summary": "She lands.", "keyEvents": ["landing"], "wordTarget": 2500},
        {"title": "Search", "summary": "She looks.", "wordTarget": "not a number"},
        {"title": "Storm", "summary": "Sand rises.", "keyEvents": [], "wordTarget": 12000, "characterFocus": "Mara"},
      ]
    },
  )

  specs = payload.to_chapter_specs(target_chapters=3, target_word_count=9000)

  # Numbers follow outline position regardless of what the model wrote.
  assert [spec.chapter_number for spec in specs] == [1, 2, 3]
  assert specs[0].title == "Arrival"
  assert specs[0].word_target == 2500
  assert specs[1].word_target == 3000
  assert specs[1].key_events == DEFAULT_KEY_EVENTS
  assert specs[2].key_events == DEFAULT_KEY_EVENTS
  assert specs[2].word_target == 8000
  assert specs[2].character_focus == ["Mara"]


def test_outline_trims_extra_chapters() -> None:
  entries = [{"title": f"Chapter {number}", "summary": "Beat."} for number in range(1, 6)]

  specs = parse_payload(OutlinePayload, {"outline": entries}).to_chapter_specs(target_chapters=4, target_word_count=8000)

  assert [spec.title for spec in specs] == ["Chapter 1", "Chapter 2", "Chapter 3", "Chapter 4"]


def test_outline_rejects_short_or_incomplete_entries() -> None:
  short = parse_payload(OutlinePayload, {"outline": [{"title": "Only", "summary": "One."}]})
  with pytest.raises(ResponseFormatError, match="expected 3"):
    short.to_chapter_specs(target_chapters=3, target_word_count=9000)

  untitled = parse_payload(OutlinePayload, {"outline": [{"title": "One", "summary": "A."}, {"summary": "B."}, {"title": "Three", "summary": "C."}]})
  with pytest.raises(ResponseFormatError, match="chapter 2"):
    untitled.to_chapter_specs(target_chapters=3, target_word_count=9000)


def test_outline_without_outline_key_is_a_format_error() -> None:
  with pytest.raises(ResponseFormatError):
    parse_payload(OutlinePayload, {"chapters": []})


def test_premise_analysis_accepts_loose_shapes() -> None:
  payload = parse_payload(
    PremiseAnalysisPayload,
    {"themes": "survival", "characters": ["the guide", {"type": "the brother", "speechPattern": "formal"}], "subplots": [{"main": "a rival", "resolution": "maybe"}], "unexpected": True},
  )

  analysis = payload.to_analysis()

  assert analysis.themes == ["survival"]
  assert [character.type for character in analysis.characters] == ["the guide", "the brother"]
  assert analysis.characters[1].speech_pattern == "formal"
  assert analysis.subplots[0].resolution == "partial"
  assert analysis.tone == ""
