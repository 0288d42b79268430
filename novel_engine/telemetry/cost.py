"""Token, cost and quality accounting for generation jobs."""

from __future__ import annotations

import logging

from novel_engine.jobs.models import ModelUsage, NovelJob, QualityMetrics, UsagePhase

logger = logging.getLogger(__name__)

# USD per 1K tokens: (input, output).
PricingTable = dict[str, tuple[float, float]]

RATE_TABLE: PricingTable = {
  "gpt-4o": (0.005, 0.015),
  "gpt-4o-mini": (0.00015, 0.0006),
  "gpt-4-turbo": (0.01, 0.03),
  "gpt-3.5-turbo": (0.0005, 0.0015),
}


def calculate_call_cost(model: str, prompt_tokens: int, completion_tokens: int, pricing_table: PricingTable | None = None) -> float:
  """Estimate one call's cost; unknown models cost nothing."""
  pricing = RATE_TABLE if pricing_table is None else pricing_table
  price_in, price_out = pricing.get(model.strip(), (0.0, 0.0))
  in_tokens = max(int(prompt_tokens or 0), 0)
  out_tokens = max(int(completion_tokens or 0), 0)
  return round(in_tokens * price_in / 1000 + out_tokens * price_out / 1000, 6)


class TelemetryAggregator:
  """Accumulate usage per phase and derive quality metrics."""

  def __init__(self, *, cost_alert_threshold: float, pricing_table: PricingTable | None = None) -> None:
    self._cost_alert_threshold = cost_alert_threshold
    self._pricing = RATE_TABLE if pricing_table is None else pricing_table

  def record_call(self, usage: ModelUsage, phase: UsagePhase, model: str, prompt_tokens: int, completion_tokens: int, *, duration_ms: int = 0) -> float:
    """Add one call to the phase totals and return its cost."""
    cost = calculate_call_cost(model, prompt_tokens, completion_tokens, self._pricing)
    phase_usage = usage.for_phase(phase)
    # Counters only ever grow.
    phase_usage.model = model
    phase_usage.tokens_used += max(prompt_tokens, 0) + max(completion_tokens, 0)
    phase_usage.cost = round(phase_usage.cost + cost, 6)
    phase_usage.duration_ms += max(duration_ms, 0)
    return cost

  def finalize(self, job: NovelJob) -> QualityMetrics:
    """Compute quality metrics from the current chapter records."""
    request = job.request
    completed = job.completed_chapters()
    total_word_count = sum(chapter.word_count for chapter in completed)
    average = round(total_word_count / len(completed)) if completed else 0
    return QualityMetrics(
      average_chapter_length=average,
      total_word_count=total_word_count,
      target_accuracy=round(total_word_count / request.target_word_count * 100),
      completion_rate=round(job.progress.chapters_completed / request.target_chapters * 100),
      has_failures=job.progress.has_failures,
      failed_chapters=list(job.progress.failed_chapter_numbers),
    )

  def check_cost_alert(self, job: NovelJob) -> bool:
    """Log a warning when cumulative cost passes the alert threshold; never raises."""
    total_cost = job.model_usage.total_cost
    if total_cost > self._cost_alert_threshold:
      logger.warning("Cost alert: job %s exceeded threshold $%.2f with $%.4f", job.job_id, self._cost_alert_threshold, total_cost)
      return True
    return False
