"""Provider contracts for text generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CompletionRequest:
  """Single prompt sent to a text model."""

  model: str
  prompt: str
  temperature: float
  max_tokens: int


@dataclass(frozen=True)
class CompletionResponse:
  """Generated text with token usage reported by the provider."""

  text: str
  prompt_tokens: int
  completion_tokens: int

  @property
  def total_tokens(self) -> int:
    return self.prompt_tokens + self.completion_tokens


class TextProvider(Protocol):
  """Generative text provider.

  Implementations raise ``ProviderError`` subclasses so callers can tell
  rate limits and outages (retryable) from context-length and auth
  failures (not retryable).
  """

  async def complete(self, request: CompletionRequest) -> CompletionResponse:
    """Generate text for one prompt."""
