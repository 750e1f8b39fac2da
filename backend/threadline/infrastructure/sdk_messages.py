"""Claude Agent SDK Adapter - maps SDK stream-json messages onto raw decoder messages.

Invariants:
    - Output is a plain dict with a "kind" tag the decoder understands, or None for
      SDK message types the stream has no use for
    - Non-mapping input, a missing type and invalid JSON raise MalformedMessageError
    - parent_tool_use_id and session_id are passed through untouched

Design Decisions:
    - Explicit per-type mapping table, no generic key renaming
    - The hook-denial markers (_blocked / _blockReason) become blocked / block_reason
"""

import json
from collections.abc import Mapping
from typing import Any

from threadline.core.domain_types import RawKind
from threadline.core.errors import ErrorContext, MalformedMessageError


_PASSTHROUGH_KEYS = ("parent_tool_use_id", "session_id")


def to_raw_message(sdk_message: Any) -> dict | None:
    """SDK message dict -> raw message dict (None for ignorable types)."""
    if not isinstance(sdk_message, Mapping):
        raise MalformedMessageError(
            f"expected an object, got {type(sdk_message).__name__}",
        )
    msg_type = sdk_message.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise MalformedMessageError(
            "missing message type",
            ErrorContext(debug_info={"keys": sorted(str(k) for k in sdk_message)}),
        )

    raw: dict[str, Any] | None
    match msg_type:
        case "system":
            raw = _system_message(sdk_message)
        case "assistant":
            raw = {"kind": RawKind.ASSISTANT_TURN.value, "message": sdk_message.get("message")}
        case "user":
            raw = _user_message(sdk_message)
        case "stream_event":
            raw = {"kind": RawKind.DELTA.value, "event": sdk_message.get("event")}
        case "result":
            raw = {"kind": RawKind.FINAL_RESULT.value, "result": sdk_message.get("result")}
        case "error":
            raw = {
                "kind": RawKind.ERROR.value,
                "error": sdk_message.get("error"),
                "message": sdk_message.get("message"),
            }
        case _:
            raw = None

    if raw is None:
        return None
    for key in _PASSTHROUGH_KEYS:
        if key in sdk_message:
            raw[key] = sdk_message[key]
    return raw


def _system_message(sdk_message: Mapping) -> dict | None:
    subtype = sdk_message.get("subtype")
    if subtype == "init":
        return {
            "kind": RawKind.SYSTEM_INIT.value,
            "agents": sdk_message.get("agents") or [],
        }
    if subtype == "compact_boundary":
        return {"kind": RawKind.SYSTEM_COMPACT.value}
    return None


def _user_message(sdk_message: Mapping) -> dict:
    raw: dict[str, Any] = {
        "kind": RawKind.USER_TURN.value,
        "message": sdk_message.get("message"),
    }
    if sdk_message.get("_blocked") is True:
        raw["blocked"] = True
        raw["block_reason"] = sdk_message.get("_blockReason")
    if "tool_use_result" in sdk_message:
        raw["tool_use_result"] = sdk_message["tool_use_result"]
    if "tool_use_id" in sdk_message:
        raw["tool_use_id"] = sdk_message["tool_use_id"]
    return raw


def parse_sdk_line(line: str) -> dict | None:
    """One NDJSON line -> raw message. Blank lines -> None."""
    if not line.strip():
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedMessageError(
            f"invalid JSON at column {e.colno}",
            ErrorContext(debug_info={"line": line[:200]}),
        ) from e
    return to_raw_message(payload)
