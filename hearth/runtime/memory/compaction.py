"""
Context Compaction - Keep recent turns, distill and persist older ones

WHAT: Token-budgeted history shrinking with heuristic fact extraction
WHERE: hearth/runtime/memory/compaction.py - context management layer
WHO: MemoryService.compact / session_compact
TIME: O(total characters) per call

When a history exceeds its token budget the newest entries that fit within
``retention_ratio`` of the budget are kept verbatim. Older entries are scanned
for fact-like sentences (lexical cues for definitions, preferences and
generalized statements). Every fact is written to a note before anything is
returned, then a single summary entry carrying the leading facts is prepended
to the retained entries.

Boundary Notes:
- Within budget the call is a no-op: same entries, no facts, no note
- If the note cannot be written the call fails and nothing is shrunk
- The summary is trimmed to keep the retained estimate within budget, first by
  whole facts, then by cutting the first fact short; trimmed text is still in
  the note
"""

from __future__ import annotations

import logging
import math
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Pattern, Sequence

from ...config.memory import CompactionSettings
from .errors import InvalidParameterError, StorageError
from .models import CompactionResult, TranscriptEntry, now_ms
from .workspace import FILE_MODE

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "[Context Summary: "
SUMMARY_SUFFIX = "]"

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

# Receives the complete fact list; returns where the facts were persisted.
FactSink = Callable[[Sequence[str]], str]


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    return math.ceil(len(text) / chars_per_token)


def build_cue_pattern(cue_words: Iterable[str]) -> Pattern[str]:
    alternatives = "|".join(r"\s+".join(re.escape(part) for part in w.split()) for w in cue_words)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


def find_fact_sentences(
    entries: Iterable[TranscriptEntry],
    *,
    cue_pattern: Pattern[str],
    min_sentence_chars: int = 10,
) -> List[str]:
    """Every cue-matching sentence from non-tool entries, in history order."""

    facts: List[str] = []
    for entry in entries:
        if entry.role == "tool":
            continue
        for sentence in _SENTENCE_SPLIT_RE.split(entry.content):
            trimmed = sentence.strip()
            if len(trimmed) <= min_sentence_chars:
                continue
            if cue_pattern.search(trimmed):
                facts.append(trimmed)
    return facts


def truncate_fact(fact: str, max_chars: int) -> str:
    return fact if len(fact) <= max_chars else fact[:max_chars] + "..."


def render_summary(facts: Sequence[str]) -> str:
    return SUMMARY_PREFIX + "; ".join(facts) + SUMMARY_SUFFIX


def fit_summary(facts: Sequence[str], max_tokens: int, chars_per_token: int = 4) -> Optional[str]:
    """Longest summary of leading facts within ``max_tokens``.

    Whole facts are dropped from the tail first. If not even one fits, the
    first fact is cut short with ``...``. None when the bare frame does not fit.
    """

    kept = list(facts)
    while kept:
        text = render_summary(kept)
        if estimate_tokens(text, chars_per_token) <= max_tokens:
            return text
        kept.pop()
    if not facts:
        return None
    room = max_tokens * chars_per_token - len(SUMMARY_PREFIX) - len(SUMMARY_SUFFIX)
    if room < 0:
        return None
    body = facts[0][: room - 3] + "..." if room > 3 else ""
    return render_summary([body])


def render_fact_note(facts: Sequence[str], extracted_at: datetime) -> str:
    lines = [
        "# Extracted Facts",
        "",
        f"Extracted at: {extracted_at.isoformat()}",
        "",
    ]
    lines.extend(f"- {fact}" for fact in facts)
    return "\n".join(lines) + "\n"


class FactNoteWriter:
    """Writes fact lists as new markdown notes; each write is fsynced."""

    def __init__(self, notes_dir: str | Path) -> None:
        self.notes_dir = Path(notes_dir)

    def write(self, facts: Sequence[str], *, extracted_at: Optional[datetime] = None) -> Path:
        when = extracted_at or datetime.now(timezone.utc)
        stamp = int(when.timestamp() * 1000)
        path = self.notes_dir / f"facts-{stamp}-{uuid.uuid4().hex[:8]}.md"
        data = render_fact_note(facts, when).encode("utf-8")
        try:
            self.notes_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
            try:
                os.write(fd, data)
                os.fsync(fd)
            finally:
                os.close(fd)
        except OSError as exc:
            raise StorageError(f"Failed to flush facts to {path}: {exc}") from exc
        logger.debug(f"Flushed {len(facts)} facts to {path}")
        return path


class ContextCompactor:
    """Shrinks a history to a token budget without losing its facts."""

    def __init__(self, sink: FactSink, settings: CompactionSettings | None = None) -> None:
        self.settings = settings or CompactionSettings()
        self._sink = sink
        self._cue_pattern = build_cue_pattern(self.settings.cue_words)

    def estimate(self, entry: TranscriptEntry) -> int:
        return estimate_tokens(entry.content, self.settings.chars_per_token)

    def extract_facts(self, entries: Iterable[TranscriptEntry]) -> List[str]:
        return find_fact_sentences(
            entries,
            cue_pattern=self._cue_pattern,
            min_sentence_chars=self.settings.min_sentence_chars,
        )

    def compact(self, history: Sequence[TranscriptEntry], token_budget: Optional[int] = None) -> CompactionResult:
        cfg = self.settings
        budget = cfg.max_context_tokens if token_budget is None else token_budget
        if budget < 0:
            raise InvalidParameterError(f"token_budget must be >= 0, got {budget}")

        costs = [self.estimate(e) for e in history]
        total = sum(costs)
        if total <= budget:
            return CompactionResult(retained_entries=list(history))

        logger.info(
            "Compacting context",
            extra={"context": {"current_tokens": total, "limit": budget, "message_count": len(history)}},
        )

        recent_limit = math.floor(budget * cfg.retention_ratio)
        recent_tokens = 0
        split = len(history)
        for i in range(len(history) - 1, -1, -1):
            if recent_tokens + costs[i] > recent_limit:
                break
            recent_tokens += costs[i]
            split = i
        older, recent = list(history[:split]), list(history[split:])

        all_facts = self.extract_facts(older)
        extracted = [truncate_fact(f, cfg.max_fact_chars) for f in all_facts[: cfg.max_facts]]

        note_path: Optional[str] = None
        if all_facts:
            # durable before the caller can drop the older entries
            note_path = str(self._sink(all_facts))

        retained: List[TranscriptEntry] = []
        summary = fit_summary(extracted, budget - recent_tokens, cfg.chars_per_token)
        if summary is not None:
            retained.append(
                TranscriptEntry(
                    id=f"summary-{now_ms()}",
                    role="assistant",
                    content=summary,
                    timestamp=older[0].timestamp,
                )
            )
        retained.extend(recent)

        logger.info(
            "Context compacted",
            extra={
                "context": {
                    "original_messages": len(history),
                    "compacted_messages": len(retained),
                    "flushed_facts": len(all_facts),
                    "note": note_path,
                }
            },
        )
        return CompactionResult(retained_entries=retained, extracted_facts=extracted, note_path=note_path)


__all__ = [
    "SUMMARY_PREFIX",
    "ContextCompactor",
    "FactNoteWriter",
    "FactSink",
    "build_cue_pattern",
    "estimate_tokens",
    "find_fact_sentences",
    "fit_summary",
    "render_fact_note",
    "render_summary",
    "truncate_fact",
]
