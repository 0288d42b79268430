"""Premise file uploads and the genre catalog."""

from __future__ import annotations

import logging
from pathlib import PurePath

from novel_engine.api.models import GenreListResponse, GenreView, PremiseUploadResponse
from novel_engine.config import Settings
from novel_engine.core.errors import JobValidationError
from novel_engine.schema.genres import list_genres

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".txt", ".md"})
ALLOWED_CONTENT_TYPES = frozenset({"text/plain", "text/markdown", "text/x-markdown"})
MIN_PREMISE_CHARS = 50
MAX_PREMISE_CHARS = 30000
MIN_PREMISE_WORDS = 10


def process_premise_upload(filename: str | None, content_type: str | None, data: bytes, settings: Settings) -> PremiseUploadResponse:
  """Validate an uploaded premise file and return its text."""
  if not filename:
    raise JobValidationError("No file uploaded")

  extension = PurePath(filename).suffix.lower()
  mime = (content_type or "").split(";", 1)[0].strip().lower()
  if extension not in ALLOWED_EXTENSIONS or mime not in ALLOWED_CONTENT_TYPES:
    raise JobValidationError("Only .txt and .md files are allowed")

  if len(data) > settings.max_premise_upload_bytes:
    limit_mb = settings.max_premise_upload_bytes / (1024 * 1024)
    raise JobValidationError(f"File size must be less than {limit_mb:g}MB")

  try:
    content = data.decode("utf-8")
  except UnicodeDecodeError as exc:
    raise JobValidationError("Premise file must be UTF-8 text") from exc

  if len(content) < MIN_PREMISE_CHARS:
    raise JobValidationError("Premise must be at least 50 characters long")
  if len(content) > MAX_PREMISE_CHARS:
    raise JobValidationError("Premise must be less than 30,000 characters (approximately 5,000 words)")

  word_count = len(content.split())
  if word_count < MIN_PREMISE_WORDS:
    raise JobValidationError("Premise must contain at least 10 words")

  logger.info("Accepted premise upload %s (%d words)", filename, word_count)
  return PremiseUploadResponse(premise=content.strip(), word_count=word_count, character_count=len(content))


def get_genre_catalog() -> GenreListResponse:
  return GenreListResponse(genres=[GenreView.model_validate(genre) for genre in list_genres()])
