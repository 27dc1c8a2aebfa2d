"""
Prompt Composition - Bootstrap text plus retrieved notes

WHAT: Renders the system prompt handed to the reply generator
WHERE: hearth/runtime/memory/prompting.py - prompt generation layer
WHO: MemoryService.build_system_prompt
TIME: Prompt assembly <1ms

Boundary Notes:
- Bootstrap documents come first and are never truncated here
- Retrieved notes follow under a fixed heading, in ranked order
"""

from __future__ import annotations

from typing import Iterable

from .models import SearchResult

RELEVANT_CONTEXT_HEADING = "## Relevant Context"


def format_search_result(result: SearchResult) -> str:
    return f"[From {result.path}]:\n{result.content}"


def format_relevant_context(results: Iterable[SearchResult]) -> str:
    blocks = [format_search_result(r) for r in results]
    if not blocks:
        return ""
    return f"{RELEVANT_CONTEXT_HEADING}\n" + "\n\n".join(blocks)


def compose_system_prompt(*, bootstrap: str, results: Iterable[SearchResult] = ()) -> str:
    context = format_relevant_context(results)
    if not context:
        return bootstrap
    if not bootstrap:
        return context
    return f"{bootstrap}\n\n{context}"


__all__ = [
    "RELEVANT_CONTEXT_HEADING",
    "compose_system_prompt",
    "format_relevant_context",
    "format_search_result",
]
