"""
Workspace - Path authority for transcripts, notes and bootstrap files

WHAT: Maps logical names to absolute locations under one sandboxed root
WHERE: hearth/runtime/memory/workspace.py - storage boundary
WHO: TranscriptStore, BootstrapLoader, MemoryService

Layout under the root::

    sessions/<id>.jsonl      transcript logs
    workspace/SOUL.md        persona bootstrap document
    workspace/USER.md        profile bootstrap document
    workspace/memory/**.md   indexed notes (including flushed facts)
    logs/                    log files

Everything downstream trusts these paths and does not re-validate them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidParameterError

DIR_MODE = 0o700
FILE_MODE = 0o600

PERSONA_FILE = "SOUL.md"
PROFILE_FILE = "USER.md"
TRANSCRIPT_SUFFIX = ".jsonl"

_LAYOUT = ("sessions", "workspace", "workspace/memory", "logs")


@dataclass(slots=True, frozen=True)
class Workspace:
    root: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root).expanduser().resolve())

    @staticmethod
    def at(root: str | Path) -> "Workspace":
        return Workspace(root=Path(root).expanduser().resolve())

    def initialize(self) -> None:
        """Create the directory layout (idempotent, owner-only permissions)."""

        self.root.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        for rel in _LAYOUT:
            (self.root / rel).mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

    # ------------------ containment ------------------
    def contains(self, path: str | Path) -> bool:
        candidate = Path(os.path.abspath(path))
        return candidate == self.root or self.root in candidate.parents

    def resolve(self, relative_path: str | Path) -> Path:
        """Resolve a workspace-relative path, rejecting anything that escapes."""

        absolute = Path(os.path.abspath(self.root / relative_path))
        if not self.contains(absolute):
            raise InvalidParameterError(f'Path "{relative_path}" resolves outside workspace boundary')
        return absolute

    def relative(self, absolute_path: str | Path) -> str:
        """Workspace-relative POSIX form of an absolute path inside the root."""

        absolute = Path(os.path.abspath(absolute_path))
        if not self.contains(absolute):
            raise InvalidParameterError(f'Path "{absolute_path}" is outside workspace boundary')
        return absolute.relative_to(self.root).as_posix()

    # ------------------ well-known locations ------------------
    @property
    def sessions_dir(self) -> Path:
        return self.root / "sessions"

    @property
    def workspace_dir(self) -> Path:
        return self.root / "workspace"

    @property
    def memory_dir(self) -> Path:
        return self.root / "workspace" / "memory"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def persona_path(self) -> Path:
        return self.workspace_dir / PERSONA_FILE

    @property
    def profile_path(self) -> Path:
        return self.workspace_dir / PROFILE_FILE

    def session_path(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or ".." in session_id:
            raise InvalidParameterError(f"Invalid session ID: {session_id!r}")
        return self.sessions_dir / f"{session_id}{TRANSCRIPT_SUFFIX}"


__all__ = [
    "DIR_MODE",
    "FILE_MODE",
    "PERSONA_FILE",
    "PROFILE_FILE",
    "TRANSCRIPT_SUFFIX",
    "Workspace",
]
