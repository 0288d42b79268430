"""Retry logic with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from novel_engine.core.errors import is_retryable

T = TypeVar("T")
logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


def compute_backoff_delay(attempt: int, base_seconds: float) -> float:
  """Delay after the given 1-based attempt: base * 2**attempt (2s, 4s, 8s at base 1)."""
  return base_seconds * (2**attempt)


async def retry_with_backoff(func: Callable[[], Awaitable[T]], *, max_attempts: int, base_seconds: float, label: str, sleep: Sleeper = asyncio.sleep) -> T:
  """
  Await ``func`` until it succeeds, retrying only retryable errors.

  Non-retryable errors and the last attempt's error propagate unchanged.
  """
  for attempt in range(1, max_attempts + 1):
    try:
      return await func()
    except Exception as exc:
      if not is_retryable(exc) or attempt >= max_attempts:
        raise
      delay = compute_backoff_delay(attempt, base_seconds)
      logger.warning("%s attempt %d/%d failed (%s: %s). Retrying in %.1fs", label, attempt, max_attempts, type(exc).__name__, exc, delay)
      await sleep(delay)

  raise RuntimeError("retry_with_backoff requires max_attempts >= 1")
