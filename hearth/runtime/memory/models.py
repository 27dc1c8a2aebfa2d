"""
Memory Models - Type-safe records for transcripts, sessions and retrieval

WHAT: Pydantic models for transcript lines, derived sessions and search output
WHERE: hearth/runtime/memory/models.py - data layer
WHO: TranscriptStore, RetrievalPipeline, ContextCompactor and their callers
TIME: Line encode/decode <1ms

Transcript lines are compact JSON with camelCase keys so logs written by other
clients of the same workspace stay readable. Every model carries its own line
codec (``to_line`` / ``from_line``) so decoding is one explicit, fallible step
per line.

Boundary Notes:
- TranscriptEntry is frozen; entries are never mutated after append
- Session is derived from a log scan, never persisted on its own
- SearchResult is transient and never written anywhere
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedLineError

Role = Literal["user", "assistant", "tool"]

HEADER_PREFIX = "#"
TRANSCRIPT_VERSION = 1


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


def _dump_line(payload: Dict[str, Any]) -> str:
    # Matches JSON.stringify output: no whitespace, non-ASCII kept verbatim.
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


class ToolCall(BaseModel):
    """Tool invocation requested by the assistant."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: str


class ToolResult(BaseModel):
    """Outcome of a tool invocation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    call_id: str = Field(alias="callId")
    success: bool
    output: str


class TranscriptEntry(BaseModel):
    """
    One message in a session transcript.

    Field order is the serialized key order: ``id, timestamp, role, content,
    toolCall, toolResult``. Optional tool fields are omitted when absent.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    timestamp: int
    role: Role
    content: str
    tool_call: Optional[ToolCall] = Field(default=None, alias="toolCall")
    tool_result: Optional[ToolResult] = Field(default=None, alias="toolResult")

    def to_line(self) -> str:
        """Serialize to a single physical line (no trailing newline)."""
        return _dump_line(self.model_dump(by_alias=True, exclude_none=True))

    @classmethod
    def from_line(cls, line: str, line_number: int = 0) -> TranscriptEntry:
        """Decode one log line, raising MalformedLineError on any failure."""
        if line.startswith(HEADER_PREFIX):
            raise MalformedLineError(line_number, "header line where an entry was expected")
        try:
            return cls.model_validate_json(line)
        except ValidationError as exc:
            raise MalformedLineError(line_number, f"{exc.error_count()} validation error(s)") from exc


class TranscriptHeader(BaseModel):
    """Metadata written as the first, ``#``-prefixed line of every log."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    created_at: int = Field(alias="createdAt")
    version: int = TRANSCRIPT_VERSION

    def to_line(self) -> str:
        return HEADER_PREFIX + _dump_line(self.model_dump(by_alias=True))

    @classmethod
    def from_line(cls, line: str, line_number: int = 0) -> TranscriptHeader:
        if not line.startswith(HEADER_PREFIX):
            raise MalformedLineError(line_number, "missing header prefix")
        try:
            return cls.model_validate_json(line[len(HEADER_PREFIX):])
        except ValidationError as exc:
            raise MalformedLineError(line_number, f"{exc.error_count()} validation error(s)") from exc


class Session(BaseModel):
    """Session metadata reconstructed from a transcript log."""

    id: str
    created_at: int
    updated_at: int
    message_count: int = Field(ge=0)
    transcript_path: Path


class SearchResult(BaseModel):
    """A retrieved note with its final (decayed, re-ranked) score."""

    path: str
    content: str
    score: float
    timestamp: float


class CompactionResult(BaseModel):
    """Retained history plus the facts extracted from what was dropped."""

    retained_entries: List[TranscriptEntry] = Field(default_factory=list)
    extracted_facts: List[str] = Field(default_factory=list)
    note_path: Optional[str] = None

    @property
    def compacted(self) -> bool:
        return self.note_path is not None or bool(self.extracted_facts)


class RepairReport(BaseModel):
    """Outcome of a transcript repair."""

    repaired: bool
    recovered: int = Field(ge=0)
    discarded: int = Field(ge=0)


class BootstrapContent(BaseModel):
    """Persona and profile documents loaded into every prompt."""

    persona: str = ""
    profile: str = ""


__all__ = [
    "Role",
    "HEADER_PREFIX",
    "TRANSCRIPT_VERSION",
    "now_ms",
    "ToolCall",
    "ToolResult",
    "TranscriptEntry",
    "TranscriptHeader",
    "Session",
    "SearchResult",
    "CompactionResult",
    "RepairReport",
    "BootstrapContent",
]
