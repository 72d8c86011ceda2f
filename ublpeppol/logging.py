"""Structured JSON logging for the invoice totals engine.

Modules log through ``logging.getLogger(__name__)`` and attach structured
fields via ``extra={"event": {...}}``; :class:`JsonFormatter` flattens them
into one JSON object per record.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import IO

LOGGER_NAME = "ublpeppol"

_HANDLER_MARKER = "_ublpeppol_json"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, object] = {
            "ts": datetime.now(tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "event", None) or {})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        # Decimal amounts and dates are rendered via str()
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None, *, stream: IO[str] | None = None) -> logging.Logger:
    """Attach a JSON handler to the package logger and return it.

    Without an explicit ``level`` the value from :mod:`ublpeppol.config` is
    used. Repeated calls reuse the installed handler and only adjust the level.
    """

    if level is None:
        from .config import settings

        level = settings.log_level

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if any(getattr(h, _HANDLER_MARKER, False) for h in logger.handlers):
        return logger

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    setattr(handler, _HANDLER_MARKER, True)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


@contextmanager
def log_operation(operation: str, **event: object) -> Iterator[dict[str, object]]:
    """Time a document operation and emit one record when it ends.

    The yielded dict may be extended by the caller; its content ends up in the
    record's ``event`` payload together with ``duration_ms`` and ``status``.
    """

    logger = logging.getLogger(LOGGER_NAME)
    started = time.perf_counter()
    status = "ok"
    try:
        yield event
    except Exception as exc:  # noqa: BLE001 - re-raised after logging
        status = "error"
        event["error"] = type(exc).__name__
        raise
    finally:
        event["duration_ms"] = int((time.perf_counter() - started) * 1000)
        event["status"] = status
        logger.info(operation, extra={"event": event})
