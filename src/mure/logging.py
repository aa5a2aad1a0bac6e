"""JSON logging to stderr.

stdout carries command output (paths, tables) and must stay pipeable, so
every log line goes to stderr as one JSON object. The repository a record is
about, passed as `extra={"repo": ...}`, is promoted to a top-level field.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

# Attributes every LogRecord has; anything else on a record came from `extra=`.
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_QUIET_LOGGERS = ("github", "urllib3")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
        }
        if "repo" in context:
            payload["repo"] = context.pop("repo")
        payload["message"] = record.getMessage()
        if context:
            payload["extra"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Exceptions and paths passed as context are not JSON types.
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str, stream: TextIO | None = None) -> None:
    """Send all records at `level` and above to stderr (or `stream`) as JSON."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # PyGithub and urllib3 log every request at DEBUG.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.INFO))
