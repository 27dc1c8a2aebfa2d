"""
Memory configuration schema.

This Pydantic model formalizes the tunables of the memory core: BM25
parameters, retrieval decay and diversity, the compaction policy and logging.
Values are validated on load; anything out of range is rejected before a
component is built from it.

The surrounding application owns the config file; this module only reads the
``memory`` section of it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_ROOT = Path("~/.hearth")

DEFAULT_CUE_WORDS: Tuple[str, ...] = (
    # definitions
    "is", "are", "was", "were", "means", "refers to",
    # preferences
    "prefer", "like", "want", "need", "should", "must",
    # generalized statements
    "always", "never", "usually", "typically", "important",
)


class BM25Settings(BaseModel):
    """BM25 saturation (k1) and length normalization (b)."""

    model_config = ConfigDict(frozen=True)

    k1: float = Field(default=1.2, gt=0.0)
    b: float = Field(default=0.75, ge=0.0, le=1.0)


class RetrievalSettings(BaseModel):
    """Temporal decay and MMR diversity re-ranking."""

    model_config = ConfigDict(frozen=True)

    half_life_days: float = Field(default=7.0, gt=0.0)
    mmr_lambda: float = Field(default=0.7, ge=0.0, le=1.0)
    similarity_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    candidate_multiplier: int = Field(default=2, ge=1)
    default_limit: int = Field(default=10, ge=0)
    decay_enabled: bool = True
    diversity_enabled: bool = True

    @property
    def half_life_ms(self) -> float:
        return self.half_life_days * 24 * 60 * 60 * 1000


class CompactionSettings(BaseModel):
    """Heuristic fact extraction and retention policy."""

    model_config = ConfigDict(frozen=True)

    max_context_tokens: int = Field(default=100_000, gt=0)
    chars_per_token: int = Field(default=4, ge=1)
    retention_ratio: float = Field(default=0.7, gt=0.0, le=1.0)
    max_facts: int = Field(default=10, ge=0)
    max_fact_chars: int = Field(default=100, ge=1)
    min_sentence_chars: int = Field(default=10, ge=0)
    cue_words: Tuple[str, ...] = DEFAULT_CUE_WORDS

    @field_validator("cue_words")
    @classmethod
    def _non_empty_cues(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        cues = tuple(w.strip() for w in value if w and w.strip())
        if not cues:
            raise ValueError("cue_words must contain at least one word")
        return cues


class LoggingSettings(BaseModel):
    """Structured log sink; ``path`` of None logs to stderr."""

    model_config = ConfigDict(frozen=True)

    level: Literal["debug", "info", "warn", "warning", "error"] = "info"
    path: Optional[Path] = None
    max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    backup_count: int = Field(default=5, ge=0)


class MemoryConfig(BaseModel):
    """Top-level configuration for MemoryService."""

    model_config = ConfigDict(frozen=True)

    workspace_root: Path = DEFAULT_WORKSPACE_ROOT
    bm25: BM25Settings = Field(default_factory=BM25Settings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    compaction: CompactionSettings = Field(default_factory=CompactionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("workspace_root")
    @classmethod
    def _expand_root(cls, value: Path) -> Path:
        return Path(value).expanduser()


def load_config(path: str | Path, *, section: str = "memory") -> MemoryConfig:
    """Load ``section`` of a JSON config file; a missing file yields defaults.

    Raises:
        pydantic.ValidationError: if any value is out of range
        json.JSONDecodeError: if the file is not valid JSON
    """
    p = Path(path).expanduser()
    if not p.exists():
        logger.debug(f"Config file {p} not found, using defaults")
        return MemoryConfig()
    with p.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    raw = data.get(section, {}) if isinstance(data, dict) else {}
    return MemoryConfig.model_validate(raw or {})


__all__ = [
    "DEFAULT_CUE_WORDS",
    "DEFAULT_WORKSPACE_ROOT",
    "BM25Settings",
    "RetrievalSettings",
    "CompactionSettings",
    "LoggingSettings",
    "MemoryConfig",
    "load_config",
]
