"""Message Decoder - one raw agent message in, zero or more stream events out.

Invariants:
    - decode() is total: it never raises, whatever the payload holds
    - Events come out in the order their blocks appear in the raw message
    - parent_task_id is copied from raw.parent_tool_use_id unchanged (empty string -> None)
    - usage is emitted only for top-level assistant turns; final results emit nothing
    - A hook-denied user turn yields exactly one Blocked event
    - A tool_use block without id gets a synthesized one (timestamp + random suffix)

Design Decisions:
    - One handler per RawKind in a dispatch table: no inheritance, no polymorphism
    - Deltas map 1:1 to events, accumulation belongs to the consumer
    - Last-resort guard turns an unexpected failure into an ErrorEvent with a diagnostic
"""

import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from threadline.core.domain_types import RawKind
from threadline.core.payloads import (
    as_list, as_mapping, field_of, non_empty_str, to_text,
)
from threadline.core.stream_events import (
    Blocked, CompactBoundary, ErrorEvent, SessionStarted, StreamEvent,
    TextEvent, ThinkingEvent, ToolCompleted, ToolInvoked, UsageEvent,
)
from threadline.core.usage import extract_usage


DEFAULT_BLOCK_REASON = "Tool call blocked by hook"
_MISSING = object()


@dataclass(frozen=True)
class DecodeOptions:
    """Caller-supplied context for usage extraction."""
    default_model: str = "sonnet"
    context_1m_enabled: bool = False
    custom_context_limits: Mapping[str, int] = field(default_factory=dict)


# ─── Public API ───────────────────────────────────────────────────

def decode(raw: Any, options: DecodeOptions | None = None) -> list[StreamEvent]:
    """Normalize one raw message. Unknown kinds yield []."""
    opts = options or DecodeOptions()
    kind = raw_kind(raw)
    handler = _HANDLERS.get(kind) if kind is not None else None
    if handler is None:
        return []
    try:
        return handler(raw, parent_task_id_of(raw), opts)
    except Exception as e:  # last resort, handlers are written to be total
        return [ErrorEvent(f"Failed to decode {kind.value} message: {e}")]


def raw_kind(raw: Any) -> RawKind | None:
    """RawKind tag of raw, or None when absent or unrecognized."""
    value = field_of(raw, "kind")
    if isinstance(value, RawKind):
        return value
    try:
        return RawKind(value)
    except ValueError:
        return None


def parent_task_id_of(raw: Any) -> str | None:
    return non_empty_str(field_of(raw, "parent_tool_use_id"))


def synthesize_tool_id() -> str:
    """Unique stand-in for a missing upstream tool-use id."""
    return f"tool-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


# ─── Per-kind handlers ────────────────────────────────────────────

def _decode_system_init(raw: Any, parent: str | None, opts: DecodeOptions) -> list[StreamEvent]:
    session_id = non_empty_str(field_of(raw, "session_id"))
    if session_id is None:
        return []
    agents = tuple(a for a in as_list(field_of(raw, "agents")) if isinstance(a, str))
    return [SessionStarted(session_id=session_id, agents=agents)]


def _decode_system_compact(raw: Any, parent: str | None, opts: DecodeOptions) -> list[StreamEvent]:
    return [CompactBoundary()]


def _decode_assistant_turn(raw: Any, parent: str | None, opts: DecodeOptions) -> list[StreamEvent]:
    message = field_of(raw, "message")
    events: list[StreamEvent] = []
    for block in as_list(field_of(message, "content")):
        event = content_block_event(block, parent)
        if event is not None:
            events.append(event)

    # Child turns report usage cumulatively with the parent: never surface it
    if parent is None:
        model = non_empty_str(field_of(message, "model")) or opts.default_model
        info = extract_usage(
            field_of(message, "usage"),
            model=model,
            context_1m_enabled=opts.context_1m_enabled,
            custom_limits=opts.custom_context_limits,
        )
        if info is not None:
            events.append(UsageEvent(info=info))
    return events


def _decode_user_turn(raw: Any, parent: str | None, opts: DecodeOptions) -> list[StreamEvent]:
    if field_of(raw, "blocked") is True:
        reason = non_empty_str(field_of(raw, "block_reason")) or DEFAULT_BLOCK_REASON
        return [Blocked(content=reason)]

    blocks = [
        b for b in as_list(field_of(field_of(raw, "message"), "content"))
        if field_of(b, "type") == "tool_result"
    ]
    block_ids = {non_empty_str(field_of(b, "tool_use_id")) for b in blocks}
    events: list[StreamEvent] = []

    result = field_of(raw, "tool_use_result", _MISSING)
    if result is not _MISSING and result is not None:
        result_id = non_empty_str(field_of(raw, "tool_use_id")) or parent
        if result_id is not None and result_id not in block_ids:
            events.append(ToolCompleted(
                id=result_id, content=to_text(result),
                is_error=False, parent_task_id=parent,
            ))

    for block in blocks:
        events.append(ToolCompleted(
            id=non_empty_str(field_of(block, "tool_use_id")) or parent or "",
            content=to_text(field_of(block, "content", "")),
            is_error=field_of(block, "is_error") is True,
            parent_task_id=parent,
        ))
    return events


def _decode_delta(raw: Any, parent: str | None, opts: DecodeOptions) -> list[StreamEvent]:
    event = field_of(raw, "event")
    etype = field_of(event, "type")

    if etype == "content_block_start":
        built = content_block_event(field_of(event, "content_block"), parent)
        return [built] if built is not None else []

    if etype == "content_block_delta":
        delta = field_of(event, "delta")
        dtype = field_of(delta, "type")
        if dtype == "thinking_delta":
            thinking = non_empty_str(field_of(delta, "thinking"))
            if thinking:
                return [ThinkingEvent(content=thinking, parent_task_id=parent)]
        elif dtype == "text_delta":
            text = non_empty_str(field_of(delta, "text"))
            if text:
                return [TextEvent(content=text, parent_task_id=parent)]
    return []


def _decode_final_result(raw: Any, parent: str | None, opts: DecodeOptions) -> list[StreamEvent]:
    return []


def _decode_error(raw: Any, parent: str | None, opts: DecodeOptions) -> list[StreamEvent]:
    content = (
        non_empty_str(field_of(raw, "error"))
        or non_empty_str(field_of(raw, "message"))
    )
    return [ErrorEvent(content=content)] if content else []


_Handler = Callable[[Any, str | None, DecodeOptions], list[StreamEvent]]

_HANDLERS: dict[RawKind, _Handler] = {
    RawKind.SYSTEM_INIT: _decode_system_init,
    RawKind.SYSTEM_COMPACT: _decode_system_compact,
    RawKind.ASSISTANT_TURN: _decode_assistant_turn,
    RawKind.USER_TURN: _decode_user_turn,
    RawKind.DELTA: _decode_delta,
    RawKind.FINAL_RESULT: _decode_final_result,
    RawKind.ERROR: _decode_error,
}


# ─── Content blocks ───────────────────────────────────────────────

def content_block_event(block: Any, parent: str | None) -> StreamEvent | None:
    """text / thinking / tool_use block -> event. Empty or unknown blocks -> None."""
    btype = field_of(block, "type")
    if btype == "thinking":
        thinking = non_empty_str(field_of(block, "thinking"))
        return ThinkingEvent(content=thinking, parent_task_id=parent) if thinking else None
    if btype == "text":
        text = non_empty_str(field_of(block, "text"))
        return TextEvent(content=text, parent_task_id=parent) if text else None
    if btype == "tool_use":
        return ToolInvoked(
            id=non_empty_str(field_of(block, "id")) or synthesize_tool_id(),
            name=non_empty_str(field_of(block, "name")) or "unknown",
            input=dict(as_mapping(field_of(block, "input")) or {}),
            parent_task_id=parent,
        )
    return None
