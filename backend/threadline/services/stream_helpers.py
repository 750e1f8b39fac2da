"""Stream Helpers - pure conversion of core events and snapshots into SSE dicts.

Invariants:
    - Every helper returns {"type": str, "data": dict}, validated through schemas/events.py
    - Agent error events go through UpstreamAgentError.to_sse_event(): one error shape everywhere
    - No helper touches correlator or coordinator state

Design Decisions:
    - isinstance dispatch over a closed event set: no methods on core events
    - sse_line() is the only place that knows the text/event-stream framing
"""

import json
from dataclasses import asdict
from typing import get_args

from threadline.core.async_subagents import AsyncSubagentSnapshot
from threadline.core.errors import (
    ErrorCategory, ErrorContext, ErrorSeverity, UpstreamAgentError,
)
from threadline.core.stream_correlator import MainTimeline, SyncSubagent, ToolInvocation
from threadline.core.stream_events import (
    Blocked, Done, ErrorEvent, SessionStarted, StreamEvent,
    TextEvent, ThinkingEvent, ToolCompleted, ToolInvoked, UsageEvent,
)
from threadline.schemas.events import (
    AsyncSubagentOut, BlockedOut, ContentOut, SessionStartedOut,
    SyncSubagentOut, TimelineOut, ToolCompletedOut, ToolInvocationOut,
    ToolInvokedOut, UsageInfoOut,
)


ASYNC_SUBAGENT_EVENT = "async-subagent"
TIMELINE_EVENT = "timeline"


def _event(type_: str, model) -> dict:
    return {"type": type_, "data": model.model_dump(mode="json")}


def stream_event_to_sse(event: StreamEvent, session_id: str | None = None) -> dict:
    """One decoded event -> SSE dict."""
    if not isinstance(event, get_args(StreamEvent)):
        raise TypeError(f"Unknown stream event: {event!r}")
    kind = event.type.value
    if isinstance(event, SessionStarted):
        return _event(kind, SessionStartedOut(
            session_id=event.session_id, agents=list(event.agents),
        ))
    if isinstance(event, (TextEvent, ThinkingEvent)):
        return _event(kind, ContentOut(
            content=event.content, parent_task_id=event.parent_task_id,
        ))
    if isinstance(event, ToolInvoked):
        return _event(kind, ToolInvokedOut(
            id=event.id, name=event.name, input=event.input,
            parent_task_id=event.parent_task_id,
        ))
    if isinstance(event, ToolCompleted):
        return _event(kind, ToolCompletedOut(
            id=event.id, content=event.content, is_error=event.is_error,
            parent_task_id=event.parent_task_id,
        ))
    if isinstance(event, Blocked):
        return _event(kind, BlockedOut(content=event.content))
    if isinstance(event, UsageEvent):
        return _event(kind, usage_out(event))
    if isinstance(event, ErrorEvent):
        return UpstreamAgentError(
            event.content, ErrorContext(session_id=session_id),
        ).to_sse_event()
    if isinstance(event, Done):
        return done_event()
    return {"type": kind, "data": {}}


def usage_out(event: UsageEvent) -> UsageInfoOut:
    return UsageInfoOut(**asdict(event.info), session_id=event.session_id)


def lifecycle_event(snapshot: AsyncSubagentSnapshot) -> dict:
    """Background task state change -> SSE dict."""
    return _event(ASYNC_SUBAGENT_EVENT, async_subagent_out(snapshot))


def async_subagent_out(snapshot: AsyncSubagentSnapshot) -> AsyncSubagentOut:
    return AsyncSubagentOut(
        task_id=snapshot.task_id,
        agent_id=snapshot.agent_id,
        description=snapshot.description,
        status=snapshot.status,
        result=snapshot.result,
    )


# ─── Timeline snapshot ───────────────────────────────────────────

def _tool_out(tool: ToolInvocation) -> ToolInvocationOut:
    return ToolInvocationOut(
        id=tool.id, name=tool.name, input=tool.input,
        status=tool.status, result=tool.result,
    )


def _subagent_out(agg: SyncSubagent) -> SyncSubagentOut:
    return SyncSubagentOut(
        id=agg.id,
        description=agg.description,
        prompt=agg.prompt,
        subagent_type=agg.subagent_type,
        status=agg.status,
        tool_invocations=[_tool_out(t) for t in agg.tool_invocations],
        result=agg.result,
    )


def timeline_event(
    timeline: MainTimeline,
    active: list[AsyncSubagentSnapshot],
    session_id: str | None = None,
) -> dict:
    """Aggregated turn state -> SSE dict."""
    usage = None
    if timeline.usage is not None:
        usage = UsageInfoOut(**asdict(timeline.usage), session_id=session_id)
    return _event(TIMELINE_EVENT, TimelineOut(
        session_id=session_id,
        tool_invocations=[_tool_out(t) for t in timeline.tool_invocations],
        subagents=[_subagent_out(a) for a in timeline.subagents],
        async_subagents=[async_subagent_out(s) for s in active],
        usage=usage,
    ))


# ─── Terminal events ─────────────────────────────────────────────

def done_event(error: bool = False) -> dict:
    return {"type": "done", "data": {"error": error}}


def unexpected_error_event() -> dict:
    return {
        "type": "error",
        "data": {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "category": ErrorCategory.INTERNAL.value,
            "severity": ErrorSeverity.CRITICAL.value,
            "recoverable": False,
        },
    }


def sse_line(event: dict) -> str:
    """Frame one SSE dict as a text/event-stream data line."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
