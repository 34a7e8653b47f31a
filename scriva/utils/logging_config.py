"""
JSON-lines logging for the engine.

Every record under the ``scriva`` logger is written as one JSON object per
line to the configured log file. Warnings and above are mirrored to stderr.

Library modules use plain ``logging.getLogger(__name__)``. Handlers are only
installed by :func:`setup_logging`, which the app lifespan calls. Work
scoped to one book goes through :class:`BookAdapter`::

    log = BookAdapter(logging.getLogger(__name__), "octocat/novel@main")
    log.info("rag index loaded | chunks=%d", 42)
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping

ROOT_LOGGER = "scriva"

# Attributes passed through ``extra=`` that are copied into the JSON line.
CONTEXT_FIELDS = ("book_key", "chapter_id", "task_type", "section", "path", "duration_ms")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class BookAdapter(logging.LoggerAdapter):
    """Stamps ``book_key`` on every record, keeping any other ``extra`` the caller passes."""

    def __init__(self, logger: logging.Logger, book_key: str):
        super().__init__(logger, {"book_key": book_key})

    def process(
        self,
        msg: str,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_configured = False


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setFormatter(JSONFormatter())
    handler.setLevel(level)
    return handler


def setup_logging(log_file: str | None = None, level: int = logging.INFO) -> None:
    """Install the file and stderr handlers on the ``scriva`` logger. Later calls are no-ops."""
    global _configured
    if _configured:
        return
    _configured = True

    if log_file is None:
        from scriva.config import get_settings
        log_file = get_settings().log_file

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8", delay=True), level))
    root.addHandler(_handler(logging.StreamHandler(sys.stderr), logging.WARNING))

