"""Unit tests for error response payloads."""

from __future__ import annotations

from novel_engine.core.exceptions import _error_payload, _sanitize_validation_errors


def test_error_payload_carries_request_id_only_when_known() -> None:
  assert _error_payload("Job missing not found", request_id="req-1") == {"detail": "Job missing not found", "requestId": "req-1"}
  assert _error_payload("Internal Server Error") == {"detail": "Internal Server Error"}


def test_sanitize_validation_errors_drops_raw_input() -> None:
  """Validation errors stay JSON-serializable and never echo the request body."""
  errors = [{"type": "value_error", "loc": ("body", "premise"), "msg": "Value error, Premise is too short.", "input": "short", "ctx": {"error": ValueError("Premise is too short."), "input": "short"}}]

  sanitized = _sanitize_validation_errors(errors)

  assert "input" not in sanitized[0]
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Premise is too short."
  assert sanitized[0]["loc"] == ["body", "premise"]
