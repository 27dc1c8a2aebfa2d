"""Logging utilities for hearth.

Modules log through ``logging.getLogger(__name__)`` and attach structured
fields with ``extra={"context": {...}}``. This package decides where those
records go and renders them with structlog's ``ProcessorFormatter``: one JSON
object per line carrying ``timestamp``, ``level``, ``logger``, ``message``, the
optional ``context`` mapping and ``exception`` for records with exc_info.
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Optional

import structlog
from structlog.typing import EventDict, WrappedLogger

from ..config.memory import LoggingSettings

ROOT_LOGGER = "hearth"

_LEVELS: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def add_record_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Lift ``extra={"context": ...}`` off the stdlib record into the event."""

    record = event_dict.get("_record")
    context = getattr(record, "context", None)
    if context:
        event_dict["context"] = context
    return event_dict


def build_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            add_record_context,
            structlog.processors.format_exc_info,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
    )


def configure_logging(settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """Attach a JSON handler to the ``hearth`` logger and return it.

    Calling this again replaces the handler it installed previously, so tests
    and long-lived hosts can reconfigure without duplicating output.
    """

    cfg = settings or LoggingSettings()
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(_LEVELS[cfg.level])

    for handler in list(root.handlers):
        if getattr(handler, "_hearth_handler", False):
            root.removeHandler(handler)
            handler.close()

    if cfg.path is not None:
        path = Path(cfg.path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=cfg.max_bytes,
            backupCount=cfg.backup_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(build_formatter())
    handler._hearth_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    return root


__all__ = ["ROOT_LOGGER", "add_record_context", "build_formatter", "configure_logging"]
