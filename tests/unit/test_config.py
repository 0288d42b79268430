from __future__ import annotations

import pytest

from novel_engine.config import get_settings
from novel_engine.core.lifespan import _redact_dsn


def _fresh_settings():
  return get_settings.__wrapped__()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("NOVEL_MAX_CONCURRENT_JOBS", raising=False)
  monkeypatch.delenv("NOVEL_MAX_CHAPTER_ATTEMPTS", raising=False)

  settings = _fresh_settings()

  assert settings.allowed_origins == ("http://localhost",)
  assert settings.max_concurrent_jobs == 3
  assert settings.max_chapter_attempts == 3
  assert settings.jobs_auto_process is False
  assert settings.pg_dsn is None


def test_engine_limits_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("NOVEL_MAX_CONCURRENT_JOBS", "7")
  monkeypatch.setenv("NOVEL_BACKOFF_BASE_SECONDS", "0.5")
  monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://novel:secret@db:5432/novels")

  settings = _fresh_settings()

  assert settings.max_concurrent_jobs == 7
  assert settings.backoff_base_seconds == 0.5
  assert settings.pg_dsn == "postgresql+asyncpg://novel:secret@db:5432/novels"


@pytest.mark.parametrize(("name", "value"), [("NOVEL_ALLOWED_ORIGINS", "*"), ("NOVEL_ALLOWED_ORIGINS", " , "), ("NOVEL_MAX_CONCURRENT_JOBS", "0"), ("NOVEL_PACING_DELAY_SECONDS", "-1")])
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
  monkeypatch.setenv(name, value)

  with pytest.raises(ValueError):
    _fresh_settings()


def test_dsn_is_redacted() -> None:
  assert _redact_dsn("postgresql+asyncpg://novel:secret@db:5432/novels") == "postgresql+asyncpg://novel@db:5432/novels"
  assert _redact_dsn(None) == "<unset>"
  assert _redact_dsn("not a dsn") == "<invalid>"
