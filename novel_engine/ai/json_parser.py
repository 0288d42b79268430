"""Lenient JSON parsing helpers for LLM outputs."""

from __future__ import annotations

import json
import re
from typing import Any

from novel_engine.core.errors import ResponseFormatError

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_json_with_fallback(raw: str | None) -> Any:
  """Parse a JSON payload, recovering one embedded in surrounding prose."""
  if raw is None or raw.strip() == "":
    raise ResponseFormatError("Empty response from provider")

  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Models often wrap JSON in a markdown fence.
  fenced = _FENCE_RE.search(raw)
  source = fenced.group(1) if fenced else raw

  candidate = _extract_json_block(source)
  if candidate is None:
    raise ResponseFormatError("Provider response does not contain a JSON payload") from last_error

  for attempt in (candidate, _strip_trailing_commas(candidate)):
    try:
      return json.loads(attempt)
    except json.JSONDecodeError as exc:
      last_error = exc

  raise ResponseFormatError(f"Invalid JSON in response: {last_error.msg}") from last_error


def _extract_json_block(raw: str) -> str | None:
  """Locate the first balanced JSON object/array, honoring string escapes."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None


def _strip_trailing_commas(raw: str) -> str:
  """Remove trailing commas before closing brackets."""
  return _TRAILING_COMMA_RE.sub(r"\1", raw)
