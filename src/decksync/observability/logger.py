"""Structured JSON logging for decksync.

Each record is one JSON object per line, so plan summaries and upload
events can be grepped or shipped to a log pipeline as-is::

    {"ts": "2026-01-05T09:12:44.102311+00:00", "level": "INFO",
     "logger": "decksync.diff.executor", "message": "applying plan",
     "op": "execute", "actions": 3}

Structured fields go through ``extra={"extra_fields": {...}}``::

    from decksync.observability import get_logger

    log = get_logger("decksync.image.upload")
    log.warning("upload failed", extra={"extra_fields": {"fingerprint": fp}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Render log records as single-line JSON.

    Guaranteed keys are ``ts`` (UTC, ISO-8601), ``level``, ``logger`` and
    ``message``. Fields from ``extra_fields`` are merged at the top level;
    ``exception`` and ``stack_info`` are added when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        fields: dict[str, Any] | None = getattr(record, "extra_fields", None)
        if fields:
            entry.update(fields)

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


# One handler per logger name; repeated get_logger calls are no-ops.
_configured_loggers: set[str] = set()


def get_logger(
    name: str = "decksync",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Return a logger that writes :class:`StructuredFormatter` output.

    Parameters
    ----------
    name:
        Logger name, conventionally the module's ``__name__``.
    level:
        Level to set on first configuration, as an ``int`` or a
        case-insensitive level name.
    stream:
        Handler stream. Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        The configured logger. A second call with the same *name* returns
        the same logger without adding another handler.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
        logger.setLevel(resolved)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        _configured_loggers.add(name)

    return logger
