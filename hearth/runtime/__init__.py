"""
Runtime Module

WHAT: Runtime subsystem for persistent assistant memory
WHERE: hearth/runtime/ - sits between the gateway/agent layer and local files
WHO: Request handlers that build prompts and persist conversation turns
TIME: Per-turn operations, in-process, no network services

Boundary Notes:
- Everything is file-backed under one workspace root
- The keyword index is in-memory and rebuilt from notes on disk
"""

__all__ = ["memory"]
