"""Hearth local-first memory core package."""

__all__ = [
    "config",
    "logging",
    "runtime",
]
