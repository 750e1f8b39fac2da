"""Anthropic SDK Adapter - turns anthropic Message objects and stream events into raw messages.

Invariants:
    - Message -> assistant-turn, content_block_start / content_block_delta -> delta
    - Other stream event types (message_start, content_block_stop, ...) -> None
    - Objects without model_dump() and non-mapping payloads raise MalformedMessageError

Design Decisions:
    - model_dump() once at the boundary: the decoder reads plain dicts, never SDK classes
    - raw_stream() emits deltas while streaming, then one assistant-turn carrying the
      final usage and only the tool_use blocks: text is never rendered twice, and tool
      inputs (empty at content_block_start) arrive complete
"""

from collections.abc import AsyncIterator, Collection, Mapping
from typing import Any

from anthropic.lib.streaming import AsyncMessageStream
from anthropic.types import Message, RawMessageStreamEvent

from threadline.core.domain_types import RawKind
from threadline.core.errors import MalformedMessageError


_DELTA_EVENT_TYPES = frozenset({"content_block_start", "content_block_delta"})
_REPLAYED_BLOCK_TYPES = frozenset({"tool_use"})


def _dump(obj: Any) -> dict:
    if isinstance(obj, Mapping):
        return dict(obj)
    dump = getattr(obj, "model_dump", None)
    if not callable(dump):
        raise MalformedMessageError(f"cannot read {type(obj).__name__} as a message")
    return dump(mode="json", exclude_none=True)


def raw_from_message(
    message: Message | Mapping,
    *,
    parent_tool_use_id: str | None = None,
    session_id: str | None = None,
    block_types: Collection[str] | None = None,
) -> dict:
    """anthropic Message -> assistant-turn raw message, optionally keeping only block_types."""
    payload = _dump(message)
    if block_types is not None:
        payload["content"] = [
            block for block in payload.get("content") or []
            if isinstance(block, Mapping) and block.get("type") in block_types
        ]
    raw: dict[str, Any] = {"kind": RawKind.ASSISTANT_TURN.value, "message": payload}
    if parent_tool_use_id is not None:
        raw["parent_tool_use_id"] = parent_tool_use_id
    if session_id is not None:
        raw["session_id"] = session_id
    return raw


def raw_from_stream_event(
    event: RawMessageStreamEvent | Mapping,
    *,
    parent_tool_use_id: str | None = None,
) -> dict | None:
    """Raw stream event -> delta raw message, None for event types without content."""
    payload = _dump(event)
    if payload.get("type") not in _DELTA_EVENT_TYPES:
        return None
    raw: dict[str, Any] = {"kind": RawKind.DELTA.value, "event": payload}
    if parent_tool_use_id is not None:
        raw["parent_tool_use_id"] = parent_tool_use_id
    return raw


async def raw_stream(
    stream: AsyncMessageStream, *, session_id: str | None = None,
) -> AsyncIterator[dict]:
    """Raw messages for one streamed anthropic response."""
    async for event in stream:
        raw = raw_from_stream_event(event)
        if raw is not None:
            yield raw
    final = await stream.get_final_message()
    yield raw_from_message(final, session_id=session_id, block_types=_REPLAYED_BLOCK_TYPES)
