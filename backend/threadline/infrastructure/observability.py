"""Structured Logging - formatters and route logging for stream observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Correlation extras (session_id, tool_use_id, task_id, agent_id, ...) surfaced when present,
      in both the JSON and the text format
    - Events delivered to an aggregate are never logged; misses are, at a level set by route

Design Decisions:
    - Formatters on stdlib logging: no extra dependency, full control over keys
    - setup_logging called once on startup from main.bootstrap()
    - Only an unmatched tool result logs at WARNING; every other miss logs at DEBUG
"""

import json
import logging
from datetime import datetime, timezone

from threadline.core.domain_types import EventType, Route


CORRELATION_KEYS = ("session_id", "tool_use_id", "task_id", "agent_id")
EXTRA_KEYS = (*CORRELATION_KEYS, "event_type", "route", "error_code")

_DELIVERED = frozenset({Route.MAIN, Route.SUBAGENT, Route.ASYNC})


def _extras(record: logging.LogRecord) -> dict:
    extras = {}
    for key in EXTRA_KEYS:
        val = record.__dict__.get(key)
        if val is not None:
            extras[key] = val
    return extras


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_extras(record),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


class StreamTextFormatter(logging.Formatter):
    """Human-readable line with correlation extras appended as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extras(record)
        if not extras:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in extras.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


def log_route(
    logger: logging.Logger,
    route: Route,
    event_type: EventType,
    *,
    session_id: str | None = None,
    tool_use_id: str | None = None,
) -> None:
    """Log one routing decision that did not deliver the event to an aggregate."""
    if route in _DELIVERED:
        return
    extra = {
        "session_id": session_id,
        "event_type": event_type.value,
        "route": route.value,
        "tool_use_id": tool_use_id,
    }
    if route is Route.DROPPED and event_type is EventType.TOOL_COMPLETED:
        logger.warning("Tool result matched no open invocation", extra=extra)
    else:
        logger.debug("Event not routed to an aggregate", extra=extra)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Configure root logging. Returns the installed handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else StreamTextFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
