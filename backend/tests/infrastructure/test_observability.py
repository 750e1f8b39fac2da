"""Structured Logging - JSONFormatter output and setup_logging wiring.

Tests:
    - Base keys always present, correlation extras only when set
    - Exceptions rendered into the payload
    - Text format appends correlation extras as key=value pairs
    - log_route: delivered events silent, unmatched results warn, other misses debug
    - setup_logging installs the chosen formatter and level
"""

import json
import logging
import sys

from threadline.core.domain_types import EventType, Route
from threadline.infrastructure.observability import (
    JSONFormatter, StreamTextFormatter, log_route, setup_logging,
)


def _record(**extra):
    record = logging.LogRecord(
        "threadline.test", logging.WARNING, __file__, 1, "dropped %s", ("x",), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_base_keys():
    payload = json.loads(JSONFormatter().format(_record()))
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "threadline.test"
    assert payload["message"] == "dropped x"
    assert "timestamp" in payload
    assert "session_id" not in payload


def test_json_formatter_includes_correlation_extras():
    record = _record(session_id="s1", tool_use_id="t1", route="dropped", unrelated="no")
    payload = json.loads(JSONFormatter().format(record))
    assert payload["session_id"] == "s1"
    assert payload["tool_use_id"] == "t1"
    assert payload["route"] == "dropped"
    assert "unrelated" not in payload


def test_json_formatter_renders_exception():
    try:
        raise ValueError("bad")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()
    payload = json.loads(JSONFormatter().format(record))
    assert "ValueError: bad" in payload["exception"]


def test_setup_logging_installs_handler():
    root = logging.getLogger()
    previous_level = root.level
    handler = setup_logging("debug", "json")
    try:
        assert isinstance(handler.formatter, JSONFormatter)
        assert root.level == logging.DEBUG
        assert handler in root.handlers
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)


def test_setup_logging_text_format():
    root = logging.getLogger()
    previous_level = root.level
    handler = setup_logging("INFO", "text")
    try:
        assert isinstance(handler.formatter, StreamTextFormatter)
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)


def test_text_formatter_appends_extras():
    line = StreamTextFormatter().format(_record(session_id="s1", route="dropped"))
    assert line.endswith("dropped x [session_id=s1 route=dropped]")


def test_text_formatter_without_extras():
    line = StreamTextFormatter().format(_record())
    assert line.endswith("WARNING threadline.test - dropped x")


# -- Route logging -------------------------------------------------------------

_log = logging.getLogger("threadline.test.routes")


def test_delivered_routes_are_silent(caplog):
    caplog.set_level(logging.DEBUG, logger=_log.name)
    for route in (Route.MAIN, Route.SUBAGENT, Route.ASYNC):
        log_route(_log, route, EventType.TEXT)
    assert caplog.records == []


def test_unmatched_tool_result_warns(caplog):
    caplog.set_level(logging.DEBUG, logger=_log.name)
    log_route(_log, Route.DROPPED, EventType.TOOL_COMPLETED, session_id="s1", tool_use_id="t9")
    [record] = caplog.records
    assert record.levelno == logging.WARNING
    assert record.tool_use_id == "t9"
    assert record.route == "dropped"
    assert record.event_type == "tool-completed"


def test_other_misses_log_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger=_log.name)
    log_route(_log, Route.IGNORED, EventType.TOOL_INVOKED)
    log_route(_log, Route.SUPPRESSED, EventType.USAGE)
    assert [r.levelno for r in caplog.records] == [logging.DEBUG, logging.DEBUG]
