"""
Structured Logging for the Session Store

JSON lines for log aggregation, one object per record:

    {"@timestamp": "...", "level": "WARNING", "logger": "sessionstore.session.dao",
     "message": "Session statement failed", "table": "session", "error": "..."}

Modules log through logging.getLogger(__name__) with extra={...}.
Fields scoped with log_context() are merged into every line emitted
inside the block. Session identifiers and contents must never reach
a log line; the formatter masks the field names that would carry them.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Optional, TextIO


class LogLevel(IntEnum):
    """Log levels accepted by SESSIONSTORE_LOG_LEVEL."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        return cls[name.upper()]


_context_fields: ContextVar[dict[str, Any]] = ContextVar("sessionstore_log_fields", default={})

# Attributes every logging.LogRecord carries; anything else came from extra=
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}

_MASKED_FIELDS = frozenset({"session_id", "old_id", "new_id", "contents"})
_MASK = "<redacted>"


class JsonFormatter(logging.Formatter):
    """Render a record and its extra fields as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(_context_fields.get())
        data.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS
        )
        for key in _MASKED_FIELDS.intersection(data):
            data[key] = _MASK

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """
    Scope extra fields onto every JSON log line emitted inside the block.

    Usage:
        with log_context(command="gc", table="session"):
            await dao.delete_expired_sessions()
    """
    token = _context_fields.set({**_context_fields.get(), **fields})
    try:
        yield
    finally:
        _context_fields.reset(token)


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Install a single stream handler on the root logger.

    Replaces any handlers already present, so calling it twice
    does not duplicate output.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    # asyncpg logs connection chatter at INFO
    logging.getLogger("asyncpg").setLevel(max(level, LogLevel.WARNING))
