"""Error taxonomy for the memory and transcript core.

Callers only ever need to handle ``SessionNotFoundError`` and ``StorageError``.
``MalformedLineError`` is raised by the line decoder and recovered locally by
every scanner; ``InvalidParameterError`` rejects bad arguments before any work.
"""

from __future__ import annotations


class MemoryCoreError(RuntimeError):
    """Base class for every error raised by the memory core."""


class SessionNotFoundError(MemoryCoreError, KeyError):
    """Raised when a session id has no backing transcript log."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:  # KeyError would repr() the message
        return str(self.args[0])


class MalformedLineError(MemoryCoreError, ValueError):
    """Raised when a single transcript line cannot be decoded."""

    def __init__(self, line_number: int, reason: str) -> None:
        super().__init__(f"line {line_number}: {reason}")
        self.line_number = line_number
        self.reason = reason


class StorageError(MemoryCoreError):
    """Raised when the filesystem rejects a read or write."""


class InvalidParameterError(MemoryCoreError, ValueError):
    """Raised when a limit, budget, id or path is outside its allowed range."""


__all__ = [
    "MemoryCoreError",
    "SessionNotFoundError",
    "MalformedLineError",
    "StorageError",
    "InvalidParameterError",
]
