"""Static genre and subgenre guideline data used when building prompts."""

from __future__ import annotations

from typing import Any

from novel_engine.core.errors import GenreConfigurationError

GENRE_GUIDELINES: dict[str, dict[str, str]] = {
  "fantasy": {
    "epic_fantasy": "Build a large-scale world with its own history, politics and magic system. Track multiple viewpoint characters and let the stakes escalate from personal to world-changing.",
    "urban_fantasy": "Blend the magical with a recognisable modern city. Keep the hidden world's rules consistent and let everyday logistics collide with the supernatural.",
    "dark_fantasy": "Lean into moral ambiguity, costly magic and dread. Victories should leave scars and power should corrupt.",
  },
  "science_fiction": {
    "space_opera": "Sweeping interstellar conflict with vivid cultures and technologies. Balance large battles with intimate character stakes.",
    "cyberpunk": "High tech, low life. Corporations hold the power, bodies are modifiable and every ally has a price.",
    "hard_science_fiction": "Ground speculative elements in plausible science. Problems are solved through knowledge, constraint and trade-offs.",
  },
  "mystery": {
    "detective": "Play fair with the reader: plant clues early, vary red herrings and make the solution inevitable in hindsight.",
    "cozy_mystery": "A small community, an amateur sleuth and violence kept off the page. Warmth and wit matter as much as the puzzle.",
  },
  "thriller": {
    "psychological_thriller": "Unreliable perception, rising paranoia and tight point of view. Reveal information to destabilise rather than reassure.",
    "techno_thriller": "Fast pacing around technology, institutions and ticking clocks. Keep the technical detail accurate but brisk.",
  },
  "romance": {
    "contemporary_romance": "Centre the developing relationship, give both leads agency and real obstacles, and deliver an emotionally satisfying ending.",
    "historical_romance": "Respect period detail and social constraints while keeping the emotional arc at the centre.",
  },
  "horror": {
    "supernatural_horror": "Build dread slowly, keep the threat partly unseen and let the characters' choices make things worse.",
    "cosmic_horror": "Humanity is small against vast, indifferent forces. Knowledge is dangerous and sanity erodes.",
  },
  "literary_fiction": {
    "contemporary_literary": "Prioritise interiority, theme and language. Plot may be quiet but every scene should shift a character.",
  },
}


def display_name(key: str) -> str:
  return key.replace("_", " ")


def get_genre_guideline(genre: str, subgenre: str) -> str:
  """Return the guideline text for a genre/subgenre pair."""
  try:
    return GENRE_GUIDELINES[genre][subgenre]
  except KeyError as exc:
    raise GenreConfigurationError(f"Unsupported genre combination: {genre}/{subgenre}") from exc


def is_known_pair(genre: str, subgenre: str) -> bool:
  return subgenre in GENRE_GUIDELINES.get(genre, {})


def list_genres() -> list[dict[str, Any]]:
  """Describe genres and their subgenres for the catalog endpoint."""
  return [
    {
      "name": genre,
      "displayName": display_name(genre),
      "subgenres": [{"name": name, "displayName": display_name(name), "description": description} for name, description in subgenres.items()],
    }
    for genre, subgenres in GENRE_GUIDELINES.items()
  ]
