from __future__ import annotations

import logging

import pytest

from novel_engine.jobs import progress
from novel_engine.jobs.models import ChapterSpec, ModelUsage, NovelJob, NovelRequest
from novel_engine.telemetry.cost import TelemetryAggregator, calculate_call_cost
from tests.fakes import PREMISE


def test_call_cost_uses_rate_table() -> None:
  assert calculate_call_cost("gpt-4o", 1000, 1000) == pytest.approx(0.02)
  assert calculate_call_cost("gpt-4o-mini", 2000, 500) == pytest.approx(0.0006)
  assert calculate_call_cost("unknown-model", 5000, 5000) == 0.0
  assert calculate_call_cost("gpt-4o", -10, 0) == 0.0


def test_record_call_accumulates_per_phase() -> None:
  telemetry = TelemetryAggregator(cost_alert_threshold=25.0)
  usage = ModelUsage()

  first = telemetry.record_call(usage, "chapter_generation", "gpt-4o", 1000, 1000, duration_ms=1200)
  second = telemetry.record_call(usage, "chapter_generation", "gpt-4o", 1000, 0, duration_ms=800)
  telemetry.record_call(usage, "premise_analysis", "gpt-4o-mini", 1000, 1000)

  assert first == pytest.approx(0.02)
  assert second == pytest.approx(0.005)
  assert usage.chapter_generation.tokens_used == 3000
  assert usage.chapter_generation.cost == pytest.approx(0.025)
  assert usage.chapter_generation.duration_ms == 2000
  assert usage.chapter_generation.model == "gpt-4o"
  assert usage.outline_generation.tokens_used == 0
  assert usage.total_tokens == 5000
  assert usage.total_cost == pytest.approx(0.02575)


def test_finalize_computes_quality_metrics() -> None:
  request = NovelRequest(title="Atlas", premise=PREMISE, genre="fantasy", subgenre="epic_fantasy", target_word_count=100, target_chapters=4)
  outline = [ChapterSpec(chapter_number=number, title=f"Chapter {number}", summary="Beat.", word_target=25) for number in range(1, 5)]
  job = NovelJob(job_id="job-metrics", request=request, status="writing", current_phase="chapter_writing", outline=outline)
  progress.initialize_chapter_slots(job)
  for number, words in ((1, 20), (2, 30), (4, 40)):
    progress.mark_chapter_generating(job, number)
    progress.mark_chapter_completed(job, number, content=" ".join(["word"] * words), tokens_used=0, cost=0.0, continuity_warnings=[])
  progress.mark_chapter_generating(job, 3)
  progress.mark_chapter_failed(job, 3, "boom")

  metrics = TelemetryAggregator(cost_alert_threshold=25.0).finalize(job)

  assert metrics.total_word_count == 90
  assert metrics.average_chapter_length == 30
  assert metrics.target_accuracy == 90
  assert metrics.completion_rate == 75
  assert metrics.has_failures is True
  assert metrics.failed_chapters == [3]


def test_cost_alert_only_logs(caplog: pytest.LogCaptureFixture) -> None:
  request = NovelRequest(title="Atlas", premise=PREMISE, genre="fantasy", subgenre="epic_fantasy", target_word_count=10000, target_chapters=5)
  job = NovelJob(job_id="job-cost", request=request)
  telemetry = TelemetryAggregator(cost_alert_threshold=0.01)

  assert telemetry.check_cost_alert(job) is False

  telemetry.record_call(job.model_usage, "chapter_generation", "gpt-4o", 1000, 1000)
  with caplog.at_level(logging.WARNING, logger="novel_engine.telemetry.cost"):
    assert telemetry.check_cost_alert(job) is True
  assert "Cost alert: job job-cost" in caplog.text
