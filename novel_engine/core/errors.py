"""Domain error taxonomy for the generation engine."""

from __future__ import annotations


class NovelEngineError(Exception):
  """Base class for all engine failures."""


class JobValidationError(NovelEngineError):
  """Raised when a request has a bad shape or out-of-range values."""


class JobStateError(NovelEngineError):
  """Raised when an operation is not allowed in the job's current state."""


class JobNotFoundError(NovelEngineError):
  """Raised when a job id is unknown to the store."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} not found")
    self.job_id = job_id


class CapacityError(NovelEngineError):
  """Raised when admission control rejects a new job."""

  def __init__(self, active_count: int, max_jobs: int) -> None:
    super().__init__(f"Server is at capacity. Active jobs: {active_count}, limit: {max_jobs}.")
    self.active_count = active_count
    self.max_jobs = max_jobs


class GenreConfigurationError(NovelEngineError):
  """Raised when a genre/subgenre pair has no template data."""


class StaleJobError(NovelEngineError):
  """Raised when a versioned write loses against a concurrent writer."""

  def __init__(self, job_id: str, expected_version: int, actual_version: int | None) -> None:
    super().__init__(f"Job {job_id} changed concurrently (expected version {expected_version}, found {actual_version})")
    self.job_id = job_id
    self.expected_version = expected_version
    self.actual_version = actual_version


class JobCanceledError(NovelEngineError):
  """Raised inside a run when the persisted job was cancelled by the user."""


class ProviderError(NovelEngineError):
  """Base class for generative provider failures."""

  retryable = False

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class RateLimitError(ProviderError):
  """Provider rejected the call because of rate limits or quota."""

  retryable = True


class ProviderServerError(ProviderError):
  """Transient provider outage, 5xx or connection failure."""

  retryable = True


class ContextLengthExceededError(ProviderError):
  """Prompt exceeded the model context window."""


class ProviderAuthError(ProviderError):
  """Provider rejected the credentials."""


class ResponseFormatError(NovelEngineError):
  """Provider output could not be parsed into the expected structure."""

  # Malformed output is usually a sampling fluke, so another attempt may succeed.
  retryable = True


class GenerationError(NovelEngineError):
  """A chapter exhausted its attempts."""

  def __init__(self, chapter_number: int, reason: str, attempts: int) -> None:
    super().__init__(f"Chapter {chapter_number} failed after {attempts} attempts: {reason}")
    self.chapter_number = chapter_number
    self.reason = reason
    self.attempts = attempts


def is_retryable(exc: BaseException) -> bool:
  """Return True when another attempt may succeed."""
  return bool(getattr(exc, "retryable", False))
