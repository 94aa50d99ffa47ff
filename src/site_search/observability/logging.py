"""Log setup for the library and the ``site-search`` command.

``JsonFormatter`` writes one JSON object per record. Each object carries the
trace ids plus whatever the trace context binds (the index handle while an
engine or indexer call is open), so log lines join up with exported spans.
Fields passed through ``extra=`` such as ``site_id`` or ``element_id`` are
copied as they are; long strings are cut.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
import logging
from pathlib import Path
import sys
from typing import IO, Any

import orjson
from pydantic import BaseModel

from site_search.observability.context import get_trace_context


HANDLER_NAME = "site-search"
PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_PACKAGE_PREFIX = "site_search."


def _shorten(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit] + "..."


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        try:
            return sorted(value)
        except TypeError:
            return list(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Exception):
        return str(value)
    return repr(value)


class JsonFormatter(logging.Formatter):
    """One orjson object per record with trace correlation."""

    MAX_MESSAGE_LEN = 2000
    MAX_FIELD_LEN = 500

    # Attributes every LogRecord carries; anything else came in through ``extra=``
    _RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

    def __init__(self, service: str = "site-search") -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": _shorten(record.getMessage(), self.MAX_MESSAGE_LEN),
        }
        if record.name.startswith(_PACKAGE_PREFIX):
            entry["component"] = record.name[len(_PACKAGE_PREFIX) :]
        entry.update(get_trace_context())

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self._RESERVED or key.startswith("_"):
                continue
            entry[key] = _shorten(value, self.MAX_FIELD_LEN) if isinstance(value, str) else value

        return orjson.dumps(entry, default=_json_default).decode("utf-8")


def resolve_level(name: str) -> int:
    """Map ``"debug"``/``"INFO"``/... to a logging level; unknown names raise ValueError."""
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level {name!r}")
    return level


def configure_logging(
    level: str = "info",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Install the ``site-search`` handler on the root logger.

    Calling again replaces the handler installed by an earlier call; handlers
    added by the host application are left alone.

    Args:
        level: Root log level name
        json_output: Emit ``JsonFormatter`` objects instead of plain lines
        logger_levels: Per-logger level overrides (logger name -> level name)
        stream: Destination, stderr by default
    """
    root = logging.getLogger()
    root.setLevel(resolve_level(level))
    for existing in [handler for handler in root.handlers if handler.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)

    for logger_name, logger_level in (logger_levels or {}).items():
        logging.getLogger(logger_name).setLevel(resolve_level(logger_level))
    return handler
