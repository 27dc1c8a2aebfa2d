"""
Transcript Store - Append-only JSONL session logs with line-level repair

WHAT: Persistence for per-session conversation transcripts
WHERE: hearth/runtime/memory/transcript_store.py - storage layer (local files)
WHO: MemoryService session_* operations
TIME: Append = one write + fsync; history/load/repair are O(log size)

Each session is ``sessions/<id>.jsonl``: a ``#``-prefixed header on the first
non-blank line, then one TranscriptEntry per line. Appends never rewrite
earlier lines, so a torn write damages at most the final line. Readers decode
line by line and skip whatever does not decode, including a ``#`` line found
anywhere but the top; ``repair`` rewrites the log with only the lines that do.

Boundary Notes:
- Appends, repairs, rewrites and deletes of one session are serialized by a
  per-session lock; different sessions never contend
- Whole-log rewrites (repair, rewrite) go through temp file + fsync + replace
- Not-found is always raised, never papered over by creating a log
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError

from .errors import InvalidParameterError, MalformedLineError, SessionNotFoundError, StorageError
from .locks import KeyedLock
from .models import (
    HEADER_PREFIX,
    RepairReport,
    Role,
    Session,
    ToolCall,
    ToolResult,
    TranscriptEntry,
    TranscriptHeader,
    now_ms,
)
from .workspace import DIR_MODE, FILE_MODE, TRANSCRIPT_SUFFIX, Workspace

logger = logging.getLogger(__name__)

HistoryTransform = Callable[[List[TranscriptEntry]], Sequence[TranscriptEntry]]


@dataclass(slots=True)
class _ScanResult:
    header: Optional[TranscriptHeader] = None
    header_line: str = ""
    entries: List[TranscriptEntry] = field(default_factory=list)
    entry_lines: List[str] = field(default_factory=list)
    discarded: int = 0


def _creation_ms(path: Path) -> int:
    st = path.stat()
    # st_birthtime only exists on some platforms; ctime is the closest elsewhere
    created = getattr(st, "st_birthtime", None) or st.st_ctime
    return int(created * 1000)


class TranscriptStore:
    """Crash-tolerant session transcripts under ``workspace.sessions_dir``."""

    def __init__(self, workspace: Workspace, *, clock: Optional[Callable[[], int]] = None) -> None:
        self.workspace = workspace
        self._clock = clock or now_ms
        self._locks = KeyedLock()

    # ---------------------- reading ----------------------
    def _read_text(self, session_id: str) -> str:
        path = self.workspace.session_path(session_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise SessionNotFoundError(session_id) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read transcript {path}: {exc}") from exc
        return raw.decode("utf-8", errors="replace")

    def _scan(self, session_id: str, text: str) -> _ScanResult:
        result = _ScanResult()
        first = True
        for number, line in enumerate(text.split("\n"), start=1):
            stripped = line.strip()
            if not stripped:
                continue
            at_top, first = first, False
            try:
                if stripped.startswith(HEADER_PREFIX):
                    if not at_top:
                        raise MalformedLineError(number, "header after the first line")
                    result.header = TranscriptHeader.from_line(stripped, number)
                    result.header_line = stripped
                else:
                    result.entries.append(TranscriptEntry.from_line(stripped, number))
                    result.entry_lines.append(stripped)
            except MalformedLineError as exc:
                result.discarded += 1
                logger.warning(
                    "Skipping malformed transcript line",
                    extra={"context": {"session_id": session_id, "line": exc.line_number, "reason": exc.reason}},
                )
        return result

    def get_history(self, session_id: str) -> List[TranscriptEntry]:
        """Every decodable entry in append order."""

        return self._scan(session_id, self._read_text(session_id)).entries

    def load(self, session_id: str) -> Session:
        scan = self._scan(session_id, self._read_text(session_id))
        path = self.workspace.session_path(session_id)
        if scan.header is not None:
            created_at = scan.header.created_at
        else:
            try:
                created_at = _creation_ms(path)
            except FileNotFoundError as exc:
                raise SessionNotFoundError(session_id) from exc
        updated_at = max([created_at, *(e.timestamp for e in scan.entries)])
        return Session(
            id=session_id,
            created_at=created_at,
            updated_at=updated_at,
            message_count=len(scan.entries),
            transcript_path=path,
        )

    def list_sessions(self) -> List[Session]:
        """All sessions, most recently updated first."""

        sessions_dir = self.workspace.sessions_dir
        if not sessions_dir.is_dir():
            return []
        sessions: List[Session] = []
        for path in sorted(sessions_dir.glob(f"*{TRANSCRIPT_SUFFIX}")):
            try:
                sessions.append(self.load(path.name[: -len(TRANSCRIPT_SUFFIX)]))
            except SessionNotFoundError:
                logger.debug(f"Session file {path.name} vanished during listing")
            except InvalidParameterError:
                logger.warning(f"Skipping transcript with invalid name: {path.name}")
        sessions.sort(key=lambda s: (-s.updated_at, s.id))
        return sessions

    # ---------------------- writing ----------------------
    def create(self) -> Session:
        session_id = str(uuid.uuid4())
        created_at = self._clock()
        path = self.workspace.session_path(session_id)
        header = TranscriptHeader(id=session_id, created_at=created_at)
        data = (header.to_line() + "\n").encode("utf-8")
        try:
            path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
            try:
                os.write(fd, data)
                os.fsync(fd)
            finally:
                os.close(fd)
        except OSError as exc:
            raise StorageError(f"Failed to create transcript {path}: {exc}") from exc
        logger.info("Session created", extra={"context": {"session_id": session_id}})
        return Session(
            id=session_id,
            created_at=created_at,
            updated_at=created_at,
            message_count=0,
            transcript_path=path,
        )

    def append_message(
        self,
        session_id: str,
        *,
        role: Role,
        content: str,
        tool_call: ToolCall | dict | None = None,
        tool_result: ToolResult | dict | None = None,
    ) -> TranscriptEntry:
        """Assign id and timestamp, append one line, fsync, return the entry."""

        path = self.workspace.session_path(session_id)
        with self._locks.hold(session_id):
            try:
                entry = TranscriptEntry(
                    id=str(uuid.uuid4()),
                    timestamp=self._clock(),
                    role=role,
                    content=content,
                    tool_call=tool_call,
                    tool_result=tool_result,
                )
            except ValidationError as exc:
                raise InvalidParameterError(f"Invalid transcript entry: {exc}") from exc
            try:
                data = (entry.to_line() + "\n").encode("utf-8")
            except UnicodeEncodeError as exc:
                raise InvalidParameterError(f"Transcript entry is not valid UTF-8 text: {exc.reason}") from exc
            try:
                fd = os.open(path, os.O_RDWR | os.O_APPEND)
            except FileNotFoundError as exc:
                raise SessionNotFoundError(session_id) from exc
            except OSError as exc:
                raise StorageError(f"Failed to open transcript {path}: {exc}") from exc
            try:
                size = os.fstat(fd).st_size
                if size:
                    os.lseek(fd, size - 1, os.SEEK_SET)
                    if os.read(fd, 1) != b"\n":
                        # isolate a torn trailing line so it cannot swallow this entry
                        data = b"\n" + data
                os.write(fd, data)
                os.fsync(fd)
            except OSError as exc:
                raise StorageError(f"Failed to append to transcript {path}: {exc}") from exc
            finally:
                os.close(fd)
        return entry

    def _write_atomic(self, path: Path, lines: Sequence[str]) -> None:
        data = "".join(line + "\n" for line in lines)
        try:
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        except OSError as exc:
            raise StorageError(f"Failed to rewrite transcript {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp, FILE_MODE)
            os.replace(tmp, path)
        except BaseException as exc:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            if isinstance(exc, OSError):
                raise StorageError(f"Failed to rewrite transcript {path}: {exc}") from exc
            raise

    def _header_line(self, session_id: str, scan: _ScanResult) -> tuple[str, bool]:
        if scan.header is not None:
            return scan.header_line, False
        created_at = _creation_ms(self.workspace.session_path(session_id))
        return TranscriptHeader(id=session_id, created_at=created_at).to_line(), True

    def repair(self, session_id: str) -> RepairReport:
        """Drop every undecodable line, synthesizing a header if none survived."""

        path = self.workspace.session_path(session_id)
        with self._locks.hold(session_id):
            scan = self._scan(session_id, self._read_text(session_id))
            header_line, synthesized = self._header_line(session_id, scan)
            repaired = scan.discarded > 0 or synthesized
            if repaired:
                self._write_atomic(path, [header_line, *scan.entry_lines])
                logger.info(
                    "Session transcript repaired",
                    extra={
                        "context": {
                            "session_id": session_id,
                            "recovered": len(scan.entries),
                            "discarded": scan.discarded,
                            "header_synthesized": synthesized,
                        }
                    },
                )
        return RepairReport(repaired=repaired, recovered=len(scan.entries), discarded=scan.discarded)

    def rewrite(self, session_id: str, transform: HistoryTransform) -> List[TranscriptEntry]:
        """Replace a session's history with ``transform(history)``, atomically."""

        path = self.workspace.session_path(session_id)
        with self._locks.hold(session_id):
            scan = self._scan(session_id, self._read_text(session_id))
            replacement = list(transform(list(scan.entries)))
            header_line, synthesized = self._header_line(session_id, scan)
            if replacement != scan.entries or scan.discarded or synthesized:
                self._write_atomic(path, [header_line, *(e.to_line() for e in replacement)])
        return replacement

    def delete(self, session_id: str) -> None:
        path = self.workspace.session_path(session_id)
        with self._locks.hold(session_id):
            try:
                path.unlink()
            except FileNotFoundError as exc:
                raise SessionNotFoundError(session_id) from exc
            except OSError as exc:
                raise StorageError(f"Failed to delete transcript {path}: {exc}") from exc
        self._locks.discard(session_id)
        logger.info("Session deleted", extra={"context": {"session_id": session_id}})


__all__ = ["TranscriptStore", "HistoryTransform"]
