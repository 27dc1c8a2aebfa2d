"""
Persona Loader - Bootstrap persona and profile documents

WHAT: Loads the persona (SOUL.md) and profile (USER.md) documents verbatim
WHERE: hearth/runtime/memory/persona_loader.py - configuration layer
WHO: MemoryService, once per session start and on demand
TIME: Two small file reads

A missing document is not an error; it contributes empty text. The last
successful load is cached for the lifetime of the loader.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .errors import StorageError
from .models import BootstrapContent

logger = logging.getLogger(__name__)


def load_text(path: str | Path) -> str:
    """Read a UTF-8 document, returning "" if it does not exist."""

    p = Path(path).expanduser()
    try:
        return p.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug(f"{p.name} not found, using empty content")
        return ""
    except (OSError, UnicodeDecodeError) as exc:
        raise StorageError(f"Failed to read bootstrap file {p}: {exc}") from exc


class BootstrapLoader:
    def __init__(self, persona_path: str | Path, profile_path: str | Path) -> None:
        self.persona_path = Path(persona_path)
        self.profile_path = Path(profile_path)
        self._cache: Optional[BootstrapContent] = None

    @property
    def content(self) -> Optional[BootstrapContent]:
        """The cached documents, or None before the first load."""

        return self._cache

    def load(self) -> BootstrapContent:
        """Re-read both documents from disk and refresh the cache."""

        self._cache = BootstrapContent(
            persona=load_text(self.persona_path),
            profile=load_text(self.profile_path),
        )
        return self._cache

    def get(self) -> BootstrapContent:
        return self._cache if self._cache is not None else self.load()

    def render(self, content: Optional[BootstrapContent] = None) -> str:
        """Non-empty documents, stripped and separated by a blank line."""

        c = content or self.get()
        return "\n\n".join(part.strip() for part in (c.persona, c.profile) if part.strip())

    def clear(self) -> None:
        self._cache = None


__all__ = ["BootstrapLoader", "load_text"]
