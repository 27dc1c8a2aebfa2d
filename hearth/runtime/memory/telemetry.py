"""
Telemetry Collection - Timing spans for memory operations

WHAT: Span context managers recording duration and outcome of operations
WHERE: hearth/runtime/memory/telemetry.py - observability layer
WHO: MemoryService (search, compaction, indexing, repair)
TIME: Zero-overhead when disabled, one perf_counter pair when enabled

Boundary Notes:
- A span always records ``duration_ms`` and ``success``, even on exceptions
- Exceptions are never swallowed by a span
- Attributes set while the span runs win over the outcome defaults
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

SpanAttributes = Dict[str, Any]


@dataclass(slots=True)
class TelemetrySpan:
    """One timed operation; hands its attributes to ``client`` when it closes."""

    client: "TelemetryClient"
    name: str
    attributes: SpanAttributes = field(default_factory=dict)
    started: float = 0.0

    def __enter__(self) -> TelemetrySpan:
        self.started = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def outcome(self, exc: Optional[BaseException]) -> SpanAttributes:
        elapsed = (time.perf_counter() - self.started) * 1000.0
        outcome: SpanAttributes = {"success": exc is None}
        if exc is not None:
            outcome["error"] = type(exc).__name__
        return {**outcome, **self.attributes, "duration_ms": elapsed}

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        self.client.emit_span(self.name, self.outcome(exc))
        return False


class TelemetryClient:
    """Span factory; concrete clients decide where finished spans go."""

    def span(self, name: str, *, attributes: Optional[SpanAttributes] = None) -> TelemetrySpan:
        return TelemetrySpan(self, name, dict(attributes or {}))

    def emit_span(self, name: str, attributes: SpanAttributes) -> None:
        raise NotImplementedError


class NoOpTelemetryClient(TelemetryClient):
    def emit_span(self, name: str, attributes: SpanAttributes) -> None:
        return None


class RecordingTelemetryClient(TelemetryClient):
    """Keeps finished spans in memory, oldest first."""

    def __init__(self) -> None:
        self.spans: List[Tuple[str, SpanAttributes]] = []

    def emit_span(self, name: str, attributes: SpanAttributes) -> None:
        self.spans.append((name, attributes))

    def names(self) -> List[str]:
        return [name for name, _ in self.spans]


class LoggingTelemetryClient(TelemetryClient):
    """Writes each finished span as one log record; attributes go under ``context``."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self.level = level

    def emit_span(self, name: str, attributes: SpanAttributes) -> None:
        if logger.isEnabledFor(self.level):
            logger.log(self.level, f"span {name}", extra={"context": dict(sorted(attributes.items()))})


__all__ = [
    "LoggingTelemetryClient",
    "NoOpTelemetryClient",
    "RecordingTelemetryClient",
    "SpanAttributes",
    "TelemetryClient",
    "TelemetrySpan",
]
