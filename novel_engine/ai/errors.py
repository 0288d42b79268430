"""Map OpenAI SDK exceptions onto the engine's provider error classes."""

from __future__ import annotations

import openai

from novel_engine.core.errors import ContextLengthExceededError, ProviderAuthError, ProviderError, ProviderServerError, RateLimitError

_CONTEXT_HINTS: tuple[str, ...] = ("context_length_exceeded", "maximum context length", "too many tokens")
_QUOTA_HINTS: tuple[str, ...] = ("rate limit", "quota", "too many requests")


def _match_hint(message: str, hints: tuple[str, ...]) -> bool:
  return any(hint in message for hint in hints)


def classify_provider_exception(exc: Exception) -> ProviderError:
  """Translate an SDK exception into a retryable or non-retryable provider error."""
  message = str(exc)
  lowered = message.lower()
  status_code = getattr(exc, "status_code", None)

  if isinstance(exc, openai.RateLimitError):
    return RateLimitError(message, status_code=status_code)
  if isinstance(exc, openai.AuthenticationError | openai.PermissionDeniedError):
    return ProviderAuthError(message, status_code=status_code)
  if isinstance(exc, openai.BadRequestError):
    if getattr(exc, "code", None) == "context_length_exceeded" or _match_hint(lowered, _CONTEXT_HINTS):
      return ContextLengthExceededError(message, status_code=status_code)
    return ProviderError(message, status_code=status_code)
  # APITimeoutError subclasses APIConnectionError.
  if isinstance(exc, openai.APIConnectionError):
    return ProviderServerError(message)
  if isinstance(exc, openai.APIStatusError):
    if exc.status_code == 429 or _match_hint(lowered, _QUOTA_HINTS):
      return RateLimitError(message, status_code=exc.status_code)
    if exc.status_code >= 500:
      return ProviderServerError(message, status_code=exc.status_code)
    return ProviderError(message, status_code=exc.status_code)
  return ProviderError(message, status_code=status_code)
