"""
Memory Service - Facade over bootstrap, retrieval, compaction and transcripts

WHAT: The single interface the gateway/agent layer consumes
WHERE: hearth/runtime/memory/service.py - top of the memory stack
WHO: Request handlers building prompts and persisting conversation turns
TIME: search/compaction are in-memory; session_* cost one file operation each

Per user turn a caller typically does::

    prompt = service.build_system_prompt(user_text)
    service.session_append(session_id, role="user", content=user_text)
    ...generate...
    service.session_append(session_id, role="assistant", content=reply)
    service.session_compact(session_id)   # when the transcript grows too large

Boundary Notes:
- Notes on disk are the source of truth; the index is rebuilt from them
- Facts flushed by compaction are indexed as soon as they hit disk
- Telemetry spans: memory.search, memory.compact, memory.index_workspace,
  transcript.repair
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ...config.memory import MemoryConfig
from .bm25 import DocumentIndex
from .compaction import ContextCompactor, FactNoteWriter
from .errors import StorageError
from .models import (
    CompactionResult,
    RepairReport,
    Role,
    SearchResult,
    Session,
    ToolCall,
    ToolResult,
    TranscriptEntry,
)
from .persona_loader import BootstrapLoader
from .prompting import compose_system_prompt
from .retrieval import RetrievalPipeline
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .transcript_store import TranscriptStore
from .workspace import Workspace

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"


class MemoryService:
    """Composes BootstrapLoader, DocumentIndex, RetrievalPipeline,
    ContextCompactor and TranscriptStore over one workspace."""

    def __init__(
        self,
        *,
        config: MemoryConfig | None = None,
        workspace: Workspace | None = None,
        telemetry: TelemetryClient | None = None,
        clock_ms: Optional[Callable[[], float]] = None,
    ) -> None:
        cfg = config or MemoryConfig()
        self.config = cfg
        self.workspace = workspace or Workspace.at(cfg.workspace_root)
        self.workspace.initialize()
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._clock_ms: Callable[[], float] = clock_ms or (lambda: time.time() * 1000.0)

        self.index = DocumentIndex(cfg.bm25)
        self.retrieval = RetrievalPipeline(self.index, cfg.retrieval, clock=self._clock_ms)
        self._note_writer = FactNoteWriter(self.workspace.memory_dir)
        self.compactor = ContextCompactor(self._flush_facts, cfg.compaction)
        self.bootstrap = BootstrapLoader(self.workspace.persona_path, self.workspace.profile_path)
        self.transcripts = TranscriptStore(
            self.workspace,
            clock=(lambda: int(clock_ms())) if clock_ms else None,
        )

    @property
    def telemetry(self) -> TelemetryClient:
        return self._telemetry

    # ---------------------- bootstrap ----------------------
    def load_bootstrap(self) -> str:
        """Persona and profile text, re-read from disk and cached."""

        return self.bootstrap.render(self.bootstrap.load())

    # ---------------------- indexing ----------------------
    def _note_files(self) -> List[Path]:
        root = self.workspace.memory_dir
        if not root.is_dir():
            return []
        found: List[Path] = []
        for dirpath, _dirnames, filenames in os.walk(root):
            for name in filenames:
                if name.endswith(NOTE_SUFFIX):
                    found.append(Path(dirpath) / name)
        return sorted(found)

    def index_workspace(self) -> int:
        """(Re)index every markdown note under the notes directory.

        Notes whose files have disappeared since the last pass are removed from
        the index. Unreadable or non-UTF-8 notes are skipped with a warning.

        Returns:
            Number of documents indexed in this pass.
        """

        with self._telemetry.span("memory.index_workspace") as span:
            memory_prefix = self.workspace.relative(self.workspace.memory_dir) + "/"
            seen: set[str] = set()
            indexed = 0
            for path in self._note_files():
                rel = self.workspace.relative(path)
                try:
                    content = path.read_text(encoding="utf-8")
                    mtime_ms = path.stat().st_mtime * 1000.0
                except (OSError, UnicodeDecodeError) as exc:
                    logger.warning(
                        "Failed to index file",
                        extra={"context": {"path": rel, "error": str(exc)}},
                    )
                    continue
                self.index.add_document(rel, rel, content, mtime_ms)
                seen.add(rel)
                indexed += 1

            stale = [
                doc_id for doc_id in self.index.document_ids()
                if doc_id.startswith(memory_prefix) and doc_id not in seen
            ]
            for doc_id in stale:
                self.index.remove_document(doc_id)

            span.set_attribute("indexed", indexed)
            span.set_attribute("removed", len(stale))
        logger.debug(
            "Indexed workspace files",
            extra={"context": {"count": indexed, "removed": len(stale)}},
        )
        return indexed

    def add_document(self, path: str, content: str) -> None:
        """Index ``content`` under a workspace-relative ``path``."""

        absolute = self.workspace.resolve(path)
        rel = self.workspace.relative(absolute)
        try:
            timestamp = absolute.stat().st_mtime * 1000.0
        except OSError:
            timestamp = float(self._clock_ms())
        self.index.add_document(rel, rel, content, timestamp)
        logger.debug("Added document to index", extra={"context": {"path": rel}})

    # ---------------------- retrieval ----------------------
    def search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        with self._telemetry.span("memory.search", attributes={"limit": limit}) as span:
            results = self.retrieval.search(query, limit)
            span.set_attribute("result_count", len(results))
        return results

    def build_system_prompt(self, query: str, limit: int = 5) -> str:
        """Bootstrap text followed by the notes most relevant to ``query``."""

        content = self.bootstrap.get()
        return compose_system_prompt(
            bootstrap=self.bootstrap.render(content),
            results=self.search(query, limit),
        )

    # ---------------------- compaction ----------------------
    def _flush_facts(self, facts: Sequence[str]) -> str:
        path = self._note_writer.write(facts)
        rel = self.workspace.relative(path)
        try:
            content = path.read_text(encoding="utf-8")
            timestamp = path.stat().st_mtime * 1000.0
        except OSError as exc:
            raise StorageError(f"Flushed note {rel} is unreadable: {exc}") from exc
        self.index.add_document(rel, rel, content, timestamp)
        return rel

    def compact(self, history: Sequence[TranscriptEntry], token_budget: Optional[int] = None) -> CompactionResult:
        """Shrink ``history`` to ``token_budget`` (default: max_context_tokens).

        Raises:
            InvalidParameterError: negative budget
            StorageError: the fact note could not be written
        """

        with self._telemetry.span("memory.compact", attributes={"entries": len(history)}) as span:
            result = self.compactor.compact(history, token_budget)
            span.set_attribute("retained", len(result.retained_entries))
            span.set_attribute("facts", len(result.extracted_facts))
        return result

    def session_compact(self, session_id: str, token_budget: Optional[int] = None) -> CompactionResult:
        """Compact a stored transcript and write the result back to its log."""

        outcome: List[CompactionResult] = []

        def _transform(history: List[TranscriptEntry]) -> List[TranscriptEntry]:
            result = self.compact(history, token_budget)
            outcome.append(result)
            return result.retained_entries

        self.transcripts.rewrite(session_id, _transform)
        return outcome[0]

    # ---------------------- sessions ----------------------
    def session_create(self) -> Session:
        session = self.transcripts.create()
        # a new conversation always sees the current persona/profile on disk
        self.bootstrap.load()
        return session

    def session_load(self, session_id: str) -> Session:
        return self.transcripts.load(session_id)

    def session_append(
        self,
        session_id: str,
        *,
        role: Role,
        content: str,
        tool_call: ToolCall | dict | None = None,
        tool_result: ToolResult | dict | None = None,
    ) -> TranscriptEntry:
        return self.transcripts.append_message(
            session_id,
            role=role,
            content=content,
            tool_call=tool_call,
            tool_result=tool_result,
        )

    def session_history(self, session_id: str) -> List[TranscriptEntry]:
        return self.transcripts.get_history(session_id)

    def session_list(self) -> List[Session]:
        return self.transcripts.list_sessions()

    def session_repair(self, session_id: str) -> RepairReport:
        with self._telemetry.span("transcript.repair", attributes={"session_id": session_id}) as span:
            report = self.transcripts.repair(session_id)
            span.set_attribute("recovered", report.recovered)
            span.set_attribute("discarded", report.discarded)
        return report

    def session_delete(self, session_id: str) -> None:
        self.transcripts.delete(session_id)


__all__ = ["MemoryService"]
