"""Shared fixtures: a scripted text provider, in-memory storage and an ASGI client."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable

# Ensure required settings are available before importing the app.
os.environ["NOVEL_ALLOWED_ORIGINS"] = "http://localhost"
os.environ["NOVEL_JOBS_AUTO_PROCESS"] = "0"
os.environ.pop("NOVEL_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from novel_engine.jobs.models import NovelJob, NovelRequest  # noqa: E402
from novel_engine.jobs.store import JobStore  # noqa: E402
from novel_engine.main import app  # noqa: E402
from novel_engine.notifications.events import InMemoryEventSink  # noqa: E402
from novel_engine.storage.memory_jobs_repo import InMemoryJobsRepository  # noqa: E402
from novel_engine.telemetry.cost import TelemetryAggregator  # noqa: E402
from novel_engine.writing.chapters import ChapterRetryController  # noqa: E402
from novel_engine.writing.consistency import ConsistencyExtractor  # noqa: E402
from novel_engine.writing.memory import ChapterSummarizer, StoryMemoryBuilder  # noqa: E402
from novel_engine.writing.orchestrator import NovelOrchestrator  # noqa: E402
from tests.fakes import ANALYSIS_MODEL, CHAPTER_MODEL, OUTLINE_MODEL, PREMISE, SUMMARY_MODEL, SYNOPSIS_MODEL, TEST_PRICING, ScriptedProvider, no_sleep  # noqa: E402


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def store(repo: InMemoryJobsRepository) -> JobStore:
  return JobStore(repo)


@pytest.fixture
def provider() -> ScriptedProvider:
  return ScriptedProvider()


@pytest.fixture
def sink() -> InMemoryEventSink:
  return InMemoryEventSink()


@pytest.fixture
def telemetry() -> TelemetryAggregator:
  return TelemetryAggregator(cost_alert_threshold=25.0, pricing_table=TEST_PRICING)


@pytest.fixture
def orchestrator(store: JobStore, provider: ScriptedProvider, sink: InMemoryEventSink, telemetry: TelemetryAggregator) -> NovelOrchestrator:
  summarizer = ChapterSummarizer(provider, SUMMARY_MODEL)
  memory = StoryMemoryBuilder(summarizer, recent_window=10)
  chapters = ChapterRetryController(store, provider, memory, summarizer, ConsistencyExtractor(), telemetry, model=CHAPTER_MODEL, max_attempts=3, backoff_base_seconds=0.0, sleep=no_sleep)
  return NovelOrchestrator(
    store=store,
    provider=provider,
    sink=sink,
    telemetry=telemetry,
    chapters=chapters,
    analysis_model=ANALYSIS_MODEL,
    outline_model=OUTLINE_MODEL,
    synopsis_model=SYNOPSIS_MODEL,
    max_attempts=3,
    backoff_base_seconds=0.0,
    pacing_delay_seconds=0.0,
    sleep=no_sleep,
  )


@pytest.fixture
def novel_request() -> NovelRequest:
  return NovelRequest(title="The Shifting Atlas", premise=PREMISE, genre="fantasy", subgenre="epic_fantasy", target_word_count=10000, target_chapters=5)


@pytest.fixture
def seed_job(repo: InMemoryJobsRepository, novel_request: NovelRequest) -> Callable[..., Awaitable[NovelJob]]:
  """Persist a job built from the default request; keyword arguments override NovelJob fields."""

  async def _seed(job_id: str = "job-1", **fields: object) -> NovelJob:
    job = NovelJob.model_validate({"job_id": job_id, "request": novel_request, "status": "planning", "current_phase": "premise_analysis"} | fields)
    await repo.create_job(job)
    return job

  return _seed


@pytest.fixture
async def async_client(repo: InMemoryJobsRepository, monkeypatch: pytest.MonkeyPatch):
  # Route every service at the test repository.
  monkeypatch.setattr("novel_engine.services.jobs._get_jobs_repo", lambda _settings: repo)
  monkeypatch.setattr("novel_engine.services.monitoring._get_jobs_repo", lambda _settings: repo)
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
