"""Structured JSON logging for httpretry.

Records are emitted as single-line JSON objects::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "WARNING",
     "logger": "httpretry.transport", "message": "Retry scheduled",
     "op": "retry", "method": "GET", "host": "api.example.com",
     "path": "/v1/items", "attempt": 1, "status_code": 503, "delay_s": 1.0}

Only the ``httpretry`` package logger owns a handler.  Module loggers such as
``httpretry.transport`` propagate to it, so one call to :func:`configure`
changes the level or destination for the whole library.

Usage::

    from httpretry.observability import get_logger

    log = get_logger("httpretry.transport")
    log.warning("Retry scheduled", extra={"extra_fields": {"attempt": 1}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "httpretry"


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys are ``ts``, ``level``, ``logger`` and ``message``.
    Fields passed via ``extra={"extra_fields": {...}}`` are merged into the
    top-level object but never overwrite the guaranteed keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(record, "extra_fields", None)
        if extra_fields:
            for key, value in extra_fields.items():
                entry.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry["error_type"] = type(record.exc_info[1]).__name__
            entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level {level!r}")
        return resolved
    return level


def configure(
    *,
    level: int | str = logging.WARNING,
    stream: Any | None = None,
) -> logging.Logger:
    """(Re)configure the ``httpretry`` package logger.

    Replaces any handler previously installed here with a single
    :class:`StructuredFormatter` handler writing to *stream* (default
    ``sys.stderr``).  Handlers added by the application are left alone.
    """
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if getattr(handler, "_httpretry_owned", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    handler._httpretry_owned = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    root.propagate = False
    return root


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Return the logger *name*, configuring the package logger on first use.

    *name* must be ``"httpretry"`` or a dotted child of it; the returned
    logger has no handler of its own and propagates to the package logger.
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        raise ValueError(f"logger name must live under {ROOT_LOGGER!r}, got {name!r}")

    root = logging.getLogger(ROOT_LOGGER)
    if not any(getattr(h, "_httpretry_owned", False) for h in root.handlers):
        configure()
    return logging.getLogger(name)
