"""Stateless lexical scan of recent chapters for recurring names, places and items."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

RECENT_UNIT_WINDOW = 3
MAX_HINT_CHARACTERS = 4
MAX_HINT_LOCATIONS = 3
MAX_HINT_OBJECTS = 2
MAX_WARNINGS = 2

FIRST_CHAPTER_HINT = "This is the first chapter - establish key characters and setting clearly."
EMPTY_HINT = "Maintain consistency with previous chapters."

COMMON_WORDS: frozenset[str] = frozenset(
  {
    "the", "and", "but", "for", "are", "was", "were", "been", "have", "has", "had",
    "will", "would", "could", "should", "can", "may", "might", "must", "shall",
    "this", "that", "these", "those", "what", "when", "where", "why", "how",
    "said", "says", "told", "asked", "came", "went", "took", "gave", "made",
    "with", "from", "they", "them", "their", "there", "then", "than", "some",
    "more", "very", "just", "like", "time", "only", "know", "think", "people",
  }
)  # fmt: skip

# Capitalised pronouns at sentence start would otherwise read as names.
PRONOUNS: frozenset[str] = frozenset({"she", "her", "his", "him", "you", "your", "our", "its", "who", "one", "everyone", "someone", "nobody"})

GENERIC_LOCATIONS: tuple[str, ...] = ("room", "place", "area", "spot", "side", "end", "way", "door", "window")
GENERIC_OBJECTS: tuple[str, ...] = ("thing", "way", "time", "day", "night", "moment", "second", "minute", "hour")
IMPORTANT_OBJECT_TYPES: tuple[str, ...] = (
  "weapon", "sword", "gun", "knife", "blade",
  "book", "letter", "document", "map", "key",
  "ring", "necklace", "crown", "gem", "stone",
  "ship", "car", "vehicle", "horse",
  "device", "machine", "computer", "phone",
  "crystal", "artifact", "relic",
)  # fmt: skip

_VERBS = r"(?:said|asked|replied|answered|whispered|shouted|muttered)"
_QUOTED_THEN_NAME = re.compile(r"[\"“][^\"”]*,?[\"”]\s*" + _VERBS + r"\s+([A-Z][a-z]+)")
_NAME_THEN_VERB = re.compile(r"\b([A-Z][a-z]+)\s+" + _VERBS + r"\b")
_POSSESSIVE = re.compile(r"\b([A-Z][a-z]+)['’]s\s")
_LOCATION_PATTERNS = (
  re.compile(r"\b(?i:at|in|to|from|near|inside|outside|within)\s+the\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)"),
  re.compile(r"\b(?i:entered|left|approached|reached)\s+the\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)"),
)
_OBJECT = re.compile(r"\bthe\s+([a-z]+(?:\s+[a-z]+)?)\b")


@dataclass(frozen=True)
class ConsistencyElements:
  """Entities found in the scanned units, lowercased, in first-seen order."""

  characters: tuple[str, ...] = ()
  locations: tuple[str, ...] = ()
  key_objects: tuple[str, ...] = ()
  source_units: int = 0


@dataclass(frozen=True)
class ConsistencyReport:
  is_valid: bool
  warnings: tuple[str, ...]


class _OrderedSet:
  def __init__(self) -> None:
    self._items: dict[str, None] = {}

  def add(self, item: str) -> None:
    self._items.setdefault(item, None)

  def as_tuple(self) -> tuple[str, ...]:
    return tuple(self._items)


def _is_name(candidate: str) -> bool:
  return len(candidate) > 2 and candidate not in COMMON_WORDS and candidate not in PRONOUNS


def _find_characters(text: str, found: _OrderedSet) -> None:
  for pattern in (_QUOTED_THEN_NAME, _NAME_THEN_VERB, _POSSESSIVE):
    for match in pattern.finditer(text):
      name = match.group(1).lower()
      if _is_name(name):
        found.add(name)


def _find_locations(text: str, found: _OrderedSet) -> None:
  for pattern in _LOCATION_PATTERNS:
    for match in pattern.finditer(text):
      location = match.group(1).lower()
      if len(location) > 3 and not any(generic in location for generic in GENERIC_LOCATIONS):
        found.add(location)


def _find_objects(text: str, found: _OrderedSet) -> None:
  for match in _OBJECT.finditer(text.lower()):
    item = match.group(1)
    if len(item) <= 3 or item in COMMON_WORDS:
      continue
    if any(generic in item for generic in GENERIC_OBJECTS):
      continue
    if any(kind in item for kind in IMPORTANT_OBJECT_TYPES):
      found.add(item)


def extract(units: Sequence[str]) -> ConsistencyElements:
  """Scan the last three unit texts; the same input always yields the same output."""
  recent = [text for text in units[-RECENT_UNIT_WINDOW:] if text]
  characters, locations, objects = _OrderedSet(), _OrderedSet(), _OrderedSet()
  for text in recent:
    _find_characters(text, characters)
    _find_locations(text, locations)
    _find_objects(text, objects)
  return ConsistencyElements(characters=characters.as_tuple(), locations=locations.as_tuple(), key_objects=objects.as_tuple(), source_units=len(recent))


def hint(elements: ConsistencyElements) -> str:
  """Render a short prompt section naming established entities."""
  if elements.source_units == 0:
    return FIRST_CHAPTER_HINT

  notes: list[str] = []
  if elements.characters:
    notes.append(f"Established characters: {', '.join(elements.characters[:MAX_HINT_CHARACTERS])}")
  if elements.locations:
    notes.append(f"Key locations: {', '.join(elements.locations[:MAX_HINT_LOCATIONS])}")
  if elements.key_objects:
    notes.append(f"Important items: {', '.join(elements.key_objects[:MAX_HINT_OBJECTS])}")

  if not notes:
    return EMPTY_HINT

  return "CONSISTENCY NOTES:\n- " + "\n- ".join(notes) + "\n\nMaintain consistency with established elements."


def is_potential_typo(first: str, second: str) -> bool:
  """Position-aligned near-match: lengths within 2 and 1-2 differing positions."""
  if first == second:
    return False
  if abs(len(first) - len(second)) > 2:
    return False
  # Require a name long enough that a one-letter drift is meaningful.
  if max(len(first), len(second)) <= 3:
    return False

  longest = max(len(first), len(second))
  differences = sum(1 for index in range(longest) if _char_at(first, index) != _char_at(second, index))
  return 0 < differences <= 2


def _char_at(value: str, index: int) -> str | None:
  return value[index] if index < len(value) else None


def validate(text: str, established: ConsistencyElements) -> ConsistencyReport:
  """Flag names in a new chapter that look like misspellings of established ones."""
  if established.source_units == 0:
    return ConsistencyReport(is_valid=True, warnings=())

  fresh = extract([text])
  warnings: list[str] = []
  for new_name in fresh.characters:
    for known_name in established.characters:
      if is_potential_typo(new_name, known_name):
        warnings.append(f'Possible name variation: "{new_name}" vs established "{known_name}"')

  return ConsistencyReport(is_valid=not warnings, warnings=tuple(warnings[:MAX_WARNINGS]))


class ConsistencyExtractor:
  """Facade used by the chapter pipeline; holds no state between calls."""

  def extract(self, units: Iterable[str]) -> ConsistencyElements:
    return extract(list(units))

  def hint(self, elements: ConsistencyElements) -> str:
    return hint(elements)

  def validate(self, text: str, elements: ConsistencyElements) -> ConsistencyReport:
    return validate(text, elements)

  def is_potential_typo(self, first: str, second: str) -> bool:
    return is_potential_typo(first, second)
