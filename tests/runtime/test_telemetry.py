import logging

import pytest

from hearth.runtime.memory.telemetry import (
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
    TelemetryClient,
)


def test_span_records_duration_and_attributes():
    client = RecordingTelemetryClient()
    with client.span("memory.search", attributes={"limit": 5}) as span:
        span.set_attribute("result_count", 2)

    [(name, attrs)] = client.spans
    assert name == "memory.search"
    assert attrs["limit"] == 5
    assert attrs["result_count"] == 2
    assert attrs["success"] is True
    assert attrs["duration_ms"] >= 0
    assert "error" not in attrs


def test_span_records_failure_and_reraises():
    client = RecordingTelemetryClient()
    with pytest.raises(ValueError):
        with client.span("memory.compact"):
            raise ValueError("boom")

    [(_, attrs)] = client.spans
    assert attrs["success"] is False
    assert attrs["error"] == "ValueError"


def test_attributes_set_during_span_override_outcome_defaults():
    client = RecordingTelemetryClient()
    with client.span("transcript.repair") as span:
        span.set_attribute("success", False)
        span.set_attribute("duration_ms", -1)

    [(_, attrs)] = client.spans
    assert attrs["success"] is False
    assert attrs["duration_ms"] >= 0


def test_span_does_not_share_caller_attributes():
    client = RecordingTelemetryClient()
    seed = {"limit": 1}
    with client.span("memory.search", attributes=seed) as span:
        span.set_attribute("limit", 9)

    assert seed == {"limit": 1}
    assert client.names() == ["memory.search"]


def test_base_client_requires_a_sink():
    with pytest.raises(NotImplementedError):
        with TelemetryClient().span("memory.search"):
            pass


def test_noop_client_accepts_spans():
    with NoOpTelemetryClient().span("anything") as span:
        span.set_attribute("k", "v")


def test_logging_client_writes_span_context(caplog):
    caplog.set_level(logging.DEBUG, logger="hearth.runtime.memory.telemetry")
    with LoggingTelemetryClient().span("transcript.repair", attributes={"session_id": "s1"}):
        pass

    [record] = [r for r in caplog.records if r.getMessage() == "span transcript.repair"]
    assert record.levelno == logging.DEBUG
    assert record.context["session_id"] == "s1"
    assert record.context["success"] is True
    assert list(record.context) == sorted(record.context)
