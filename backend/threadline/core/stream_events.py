"""Stream Events - the closed, normalized event vocabulary produced by the decoder.

Invariants:
    - Every event is immutable once built
    - parent_task_id is None for top-level activity, else the spawning tool-use id
    - parent_task_id is copied from the raw message unchanged, never derived
    - The decoder never builds Done; the shell emits it at the end of a turn

Design Decisions:
    - Frozen dataclasses with a ClassVar tag: no IO, no validation cost in the hot path
    - Pydantic lives at the outbound boundary only (schemas/events.py)
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from threadline.core.domain_types import EventType


@dataclass(frozen=True)
class UsageInfo:
    """Context window occupancy derived from one top-level assistant turn."""
    model: str
    input_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    context_window_size: int
    occupied_tokens: int
    percentage: int


# ─── Session-level events ────────────────────────────────────────

@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    agents: tuple[str, ...] = ()
    type: ClassVar[EventType] = EventType.SESSION_STARTED


@dataclass(frozen=True)
class CompactBoundary:
    type: ClassVar[EventType] = EventType.COMPACT_BOUNDARY


@dataclass(frozen=True)
class Done:
    type: ClassVar[EventType] = EventType.DONE


# ─── Turn content events (carry parent_task_id) ──────────────────

@dataclass(frozen=True)
class TextEvent:
    content: str
    parent_task_id: str | None = None
    type: ClassVar[EventType] = EventType.TEXT


@dataclass(frozen=True)
class ThinkingEvent:
    content: str
    parent_task_id: str | None = None
    type: ClassVar[EventType] = EventType.THINKING


@dataclass(frozen=True)
class ToolInvoked:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    parent_task_id: str | None = None
    type: ClassVar[EventType] = EventType.TOOL_INVOKED


@dataclass(frozen=True)
class ToolCompleted:
    id: str
    content: str
    is_error: bool = False
    parent_task_id: str | None = None
    type: ClassVar[EventType] = EventType.TOOL_COMPLETED


# ─── Outcome events ──────────────────────────────────────────────

@dataclass(frozen=True)
class Blocked:
    content: str
    type: ClassVar[EventType] = EventType.BLOCKED


@dataclass(frozen=True)
class ErrorEvent:
    content: str
    type: ClassVar[EventType] = EventType.ERROR


@dataclass(frozen=True)
class UsageEvent:
    info: UsageInfo
    session_id: str | None = None
    type: ClassVar[EventType] = EventType.USAGE


StreamEvent = Union[
    SessionStarted, CompactBoundary, TextEvent, ThinkingEvent,
    ToolInvoked, ToolCompleted, Blocked, ErrorEvent, UsageEvent, Done,
]


def parent_of(event: StreamEvent) -> str | None:
    """parent_task_id of an event, None for events that cannot carry one."""
    return getattr(event, "parent_task_id", None)
