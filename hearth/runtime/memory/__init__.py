"""
Memory Core - Bootstrap, keyword retrieval, compaction and transcripts

WHAT: Local library giving an assistant persistent memory across conversations
WHERE: hearth/runtime/memory/ - runtime subsystem
WHO: Gateway/agent layer via MemoryService
TIME: Search and compaction in-memory; transcript operations one file op each

Components:
- BootstrapLoader: persona (SOUL.md) and profile (USER.md) documents
- DocumentIndex: BM25 inverted index over markdown notes
- RetrievalPipeline: temporal decay and MMR diversity over BM25 hits
- ContextCompactor: token-budgeted history shrinking with fact flushing
- TranscriptStore: append-only JSONL session logs with repair
- MemoryService: the facade composing all of the above

Boundary Notes:
- Notes on disk are the source of truth; the index can always be rebuilt
- Transcript appends are fsynced before they return
"""

from .bm25 import DocumentIndex, IndexedDocument, IndexHit, tokenize  # noqa: F401
from .compaction import ContextCompactor, FactNoteWriter  # noqa: F401
from .errors import (  # noqa: F401
    InvalidParameterError,
    MalformedLineError,
    MemoryCoreError,
    SessionNotFoundError,
    StorageError,
)
from .models import (  # noqa: F401
    BootstrapContent,
    CompactionResult,
    RepairReport,
    SearchResult,
    Session,
    ToolCall,
    ToolResult,
    TranscriptEntry,
    TranscriptHeader,
)
from .persona_loader import BootstrapLoader  # noqa: F401
from .retrieval import RetrievalPipeline  # noqa: F401
from .service import MemoryService  # noqa: F401
from .telemetry import (  # noqa: F401
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
    TelemetryClient,
    TelemetrySpan,
)
from .transcript_store import TranscriptStore  # noqa: F401
from .workspace import Workspace  # noqa: F401

__all__ = [
    "BootstrapContent",
    "BootstrapLoader",
    "CompactionResult",
    "ContextCompactor",
    "DocumentIndex",
    "FactNoteWriter",
    "IndexHit",
    "IndexedDocument",
    "InvalidParameterError",
    "LoggingTelemetryClient",
    "MalformedLineError",
    "MemoryCoreError",
    "MemoryService",
    "NoOpTelemetryClient",
    "RecordingTelemetryClient",
    "RepairReport",
    "RetrievalPipeline",
    "SearchResult",
    "Session",
    "SessionNotFoundError",
    "StorageError",
    "TelemetryClient",
    "TelemetrySpan",
    "ToolCall",
    "ToolResult",
    "TranscriptEntry",
    "TranscriptHeader",
    "TranscriptStore",
    "Workspace",
    "tokenize",
]
