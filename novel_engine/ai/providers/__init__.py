"""Provider implementations."""

from novel_engine.ai.providers.base import CompletionRequest, CompletionResponse, TextProvider
from novel_engine.ai.providers.openai_chat import OpenAIProvider, build_provider

__all__ = ["CompletionRequest", "CompletionResponse", "TextProvider", "OpenAIProvider", "build_provider"]
