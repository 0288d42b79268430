"""Job events pushed to observers and the sinks that receive them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol

from novel_engine.jobs.models import utc_now

logger = logging.getLogger(__name__)

EventType = Literal["phase_transition", "progress_update", "generation_progress", "cost_update", "quality_update", "job_completed", "job_failed"]


@dataclass(frozen=True)
class JobEvent:
  """Structured event emitted during generation."""

  job_id: str
  event_type: EventType
  message: str | None = None
  payload: dict[str, Any] = field(default_factory=dict)
  timestamp: datetime = field(default_factory=utc_now)

  def as_dict(self) -> dict[str, Any]:
    """Serialize the event for logging or transport."""
    return {"jobId": self.job_id, "type": self.event_type, "message": self.message, "payload": self.payload, "timestamp": self.timestamp.isoformat()}


class EventSink(Protocol):
  """Fire-and-forget delivery contract for job events."""

  async def publish(self, event: JobEvent) -> None:
    """Deliver one event."""


class LoggingEventSink(EventSink):
  """Write events to the application log."""

  async def publish(self, event: JobEvent) -> None:
    logger.info("Job event job_id=%s type=%s message=%s", event.job_id, event.event_type, event.message)


class InMemoryEventSink(EventSink):
  """Collect events in order; used for tests and local introspection."""

  def __init__(self) -> None:
    self.events: list[JobEvent] = []

  async def publish(self, event: JobEvent) -> None:
    self.events.append(event)

  def of_type(self, event_type: EventType) -> list[JobEvent]:
    return [event for event in self.events if event.event_type == event_type]


async def publish_safely(sink: EventSink, event: JobEvent) -> None:
  """Publish without letting sink failures reach the engine."""
  try:
    await sink.publish(event)
  except Exception:  # noqa: BLE001
    logger.warning("Event sink failed job_id=%s type=%s", event.job_id, event.event_type, exc_info=True)
