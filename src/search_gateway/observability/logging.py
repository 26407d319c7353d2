"""Structured JSON logging with trace correlation.

Search and engine fields passed through ``extra=`` are grouped into nested
objects so log pipelines can index them without guessing at flat names::

    logger.info("Cache HIT", extra={"search_key": key, "cache_hit": True})
    # -> {..., "search": {"key": "...", "cache_hit": true}}
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import IO, Any

import orjson

from search_gateway.observability.context import get_trace_context


# Attributes present on every LogRecord; anything else came in through ``extra=``.
_RESERVED_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# extra key -> (group, field)
FIELD_GROUPS: dict[str, tuple[str, str]] = {
    "search_key": ("search", "key"),
    "search_mode": ("search", "mode"),
    "cache_hit": ("search", "cache_hit"),
    "tier": ("engine", "tier"),
    "operation": ("engine", "operation"),
    "store_backend": ("suggestions", "backend"),
}

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
QUIET_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the current trace and route."""

    REDACT_KEYS = frozenset({"password", "token", "api_key", "apikey", "secret", "authorization", "supabase_key"})
    MAX_MESSAGE_LEN = 2000
    MAX_VALUE_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_trace_context()
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": self._truncate(record.getMessage(), self.MAX_MESSAGE_LEN),
            "logger": record.name,
            "trace_id": ctx.get("trace_id", ""),
            "span_id": ctx.get("span_id", ""),
        }
        if "." in record.name:
            log_entry["component"] = record.name.rsplit(".", 1)[-1]
        if route := ctx.get("route"):
            log_entry["route"] = route
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or key.startswith("_"):
                continue
            value = self._redact(key, value)
            if key in FIELD_GROUPS:
                group, field = FIELD_GROUPS[key]
                log_entry.setdefault(group, {})[field] = value
            else:
                log_entry[key] = value

        return orjson.dumps(log_entry, default=self._json_default).decode("utf-8")

    @staticmethod
    def _truncate(text: str, limit: int) -> str:
        return text if len(text) <= limit else text[:limit] + "..."

    def _redact(self, key: str, value: Any) -> Any:
        if key.lower() in self.REDACT_KEYS:
            return "[REDACTED]"
        if isinstance(value, str):
            return self._truncate(value, self.MAX_VALUE_LEN)
        return value

    def _json_default(self, value: Any) -> Any:
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


def _build_handler(json_output: bool, stream: IO[str] | None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    return handler


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    access_log: bool = False,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Replace root handlers with a single structured handler.

    Args:
        level: Root log level name; unknown names fall back to INFO
        json_output: Emit JSON objects instead of plain text lines
        logger_levels: Per-logger level overrides (logger name -> level string)
        access_log: Keep uvicorn.access at the root level (otherwise WARNING)
        stream: Destination stream, stdout when omitted

    Returns:
        The installed handler
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = _build_handler(json_output, stream)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if not access_log:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    for logger_name, logger_level in (logger_levels or {}).items():
        logging.getLogger(logger_name).setLevel(getattr(logging, logger_level.upper(), logging.INFO))
    return handler
