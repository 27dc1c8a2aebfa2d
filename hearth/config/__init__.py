"""Configuration schemas for hearth."""

from .memory import (  # noqa: F401
    DEFAULT_CUE_WORDS,
    BM25Settings,
    CompactionSettings,
    LoggingSettings,
    MemoryConfig,
    RetrievalSettings,
    load_config,
)

__all__ = [
    "DEFAULT_CUE_WORDS",
    "BM25Settings",
    "CompactionSettings",
    "LoggingSettings",
    "MemoryConfig",
    "RetrievalSettings",
    "load_config",
]
