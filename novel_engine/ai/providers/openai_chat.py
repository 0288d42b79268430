"""OpenAI chat completions provider."""

from __future__ import annotations

import logging

import openai
from openai import AsyncOpenAI

from novel_engine.ai.errors import classify_provider_exception
from novel_engine.ai.providers.base import CompletionRequest, CompletionResponse, TextProvider
from novel_engine.config import Settings
from novel_engine.core.errors import ProviderAuthError

logger = logging.getLogger(__name__)


class OpenAIProvider(TextProvider):
  """Text provider backed by the OpenAI SDK."""

  def __init__(self, api_key: str | None, base_url: str | None = None) -> None:
    # SDK retries are disabled; the engine owns retry and backoff.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0) if api_key else None

  async def complete(self, request: CompletionRequest) -> CompletionResponse:
    if self._client is None:
      raise ProviderAuthError("OPENAI_API_KEY environment variable is required")
    try:
      response = await self._client.chat.completions.create(model=request.model, messages=[{"role": "user", "content": request.prompt}], temperature=request.temperature, max_tokens=request.max_tokens)
    except openai.OpenAIError as exc:
      error = classify_provider_exception(exc)
      logger.warning("OpenAI call failed model=%s error_type=%s retryable=%s", request.model, type(error).__name__, error.retryable)
      raise error from exc

    content = response.choices[0].message.content or ""
    prompt_tokens = 0
    completion_tokens = 0
    if response.usage:
      prompt_tokens = response.usage.prompt_tokens
      completion_tokens = response.usage.completion_tokens
    logger.debug("OpenAI response model=%s prompt_tokens=%s completion_tokens=%s chars=%s", request.model, prompt_tokens, completion_tokens, len(content))
    return CompletionResponse(text=content, prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)


def build_provider(settings: Settings) -> TextProvider:
  return OpenAIProvider(settings.openai_api_key, settings.openai_base_url)
