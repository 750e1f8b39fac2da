"""Anthropic SDK Adapter - Message objects and raw stream events to raw messages.

Tests:
    - Message -> assistant-turn that decodes to text, tool and usage events
    - content_block_start / content_block_delta -> delta, other stream events -> None
    - raw_stream yields deltas, then one usage turn carrying only the full tool_use blocks
    - Objects without model_dump raise MalformedMessageError
"""

import pytest
from anthropic.types import (
    Message, RawContentBlockDeltaEvent, RawContentBlockStartEvent, RawMessageStopEvent,
)

from threadline.core.async_subagents import AsyncSubagentCoordinator
from threadline.core.domain_types import AsyncStatus, Route
from threadline.core.errors import MalformedMessageError
from threadline.core.message_decoder import decode
from threadline.core.stream_correlator import StreamCorrelator
from threadline.core.stream_events import TextEvent, ToolInvoked, UsageEvent
from threadline.infrastructure.anthropic_adapter import (
    raw_from_message, raw_from_stream_event, raw_stream,
)


def _message(*content, input_tokens=40_000):
    return Message.model_validate({
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-5",
        "content": list(content),
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {"input_tokens": input_tokens, "output_tokens": 12},
    })


def _text_delta(text):
    return RawContentBlockDeltaEvent.model_validate({
        "type": "content_block_delta", "index": 0,
        "delta": {"type": "text_delta", "text": text},
    })


class _FakeStream:
    """AsyncMessageStream stand-in: async iteration + get_final_message()."""

    def __init__(self, events, final):
        self._events = events
        self._final = final

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for event in self._events:
            yield event

    async def get_final_message(self):
        return self._final


# -- Messages ------------------------------------------------------------------

def test_message_decodes_to_events_and_usage():
    msg = _message(
        {"type": "text", "text": "Reading."},
        {"type": "tool_use", "id": "toolu_1", "name": "Read", "input": {"path": "x"}},
    )
    events = decode(raw_from_message(msg, session_id="s1"))
    assert events[0] == TextEvent("Reading.")
    assert events[1] == ToolInvoked(id="toolu_1", name="Read", input={"path": "x"})
    assert isinstance(events[2], UsageEvent)
    assert events[2].info.percentage == 20


def test_message_parent_suppresses_usage():
    raw = raw_from_message(_message({"type": "text", "text": "child"}), parent_tool_use_id="T1")
    assert decode(raw) == [TextEvent("child", parent_task_id="T1")]


def test_message_keeps_only_requested_blocks():
    msg = _message(
        {"type": "text", "text": "x"},
        {"type": "tool_use", "id": "toolu_1", "name": "Read", "input": {"path": "x"}},
    )
    raw = raw_from_message(msg, block_types={"tool_use"})
    assert [b["type"] for b in raw["message"]["content"]] == ["tool_use"]
    assert raw_from_message(msg, block_types=())["message"]["content"] == []


def test_mapping_input_is_accepted():
    raw = raw_from_message({"content": [], "usage": {"input_tokens": 1}})
    assert raw["kind"] == "assistant-turn"


def test_unreadable_object_raises():
    with pytest.raises(MalformedMessageError):
        raw_from_message(object())


# -- Stream events -------------------------------------------------------------

def test_text_delta_event():
    raw = raw_from_stream_event(_text_delta("Hel"))
    assert raw["kind"] == "delta"
    assert decode(raw) == [TextEvent("Hel")]


def test_non_content_events_are_skipped():
    assert raw_from_stream_event(RawMessageStopEvent(type="message_stop")) is None


async def test_raw_stream_yields_deltas_then_usage():
    stream = _FakeStream(
        [_text_delta("Hi"), RawMessageStopEvent(type="message_stop"), _text_delta(" there")],
        _message({"type": "text", "text": "Hi there"}, input_tokens=10_000),
    )
    raws = [raw async for raw in raw_stream(stream, session_id="s1")]
    events = [e for raw in raws for e in decode(raw)]
    assert events[:2] == [TextEvent("Hi"), TextEvent(" there")]
    assert isinstance(events[2], UsageEvent)
    assert len(events) == 3
    assert raws[-1]["session_id"] == "s1"


async def test_raw_stream_delivers_full_tool_input():
    task_input = {"description": "Crawl", "prompt": "Crawl docs", "run_in_background": True}
    stream = _FakeStream(
        [
            RawContentBlockStartEvent.model_validate({
                "type": "content_block_start", "index": 0,
                "content_block": {"type": "tool_use", "id": "T1", "name": "Task", "input": {}},
            }),
            RawContentBlockDeltaEvent.model_validate({
                "type": "content_block_delta", "index": 0,
                "delta": {"type": "input_json_delta", "partial_json": '{"description": "Crawl"'},
            }),
        ],
        _message(
            {"type": "text", "text": "Spawning."},
            {"type": "tool_use", "id": "T1", "name": "Task", "input": task_input},
        ),
    )
    events = [e async for raw in raw_stream(stream) for e in decode(raw)]
    invocations = [e for e in events if isinstance(e, ToolInvoked)]
    assert [e.input for e in invocations] == [{}, task_input]
    assert not any(isinstance(e, TextEvent) for e in events)

    corr = StreamCorrelator(AsyncSubagentCoordinator())
    routes = [corr.consume(e) for e in events]
    assert routes[:2] == [Route.SUBAGENT, Route.ASYNC]
    assert corr.coordinator.get_by_task_id("T1").status is AsyncStatus.PENDING
    assert corr.subagent("T1") is None
