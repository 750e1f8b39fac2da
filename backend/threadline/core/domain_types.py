"""Domain Types - identifiers, status enums, and fixed constants for the stream core.

Invariants:
    - ToolUseId, TaskId, AgentId, ProbeId are opaque strings, compared by equality only
    - All valid states encoded as Enums, no raw string matching in routing code
    - Context window constants are token counts, not characters

Design Decisions:
    - NewType over wrapper classes: zero runtime cost, type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

ToolUseId = NewType("ToolUseId", str)   # id of one tool invocation
TaskId = NewType("TaskId", str)         # tool-use id of a task-spawning invocation
AgentId = NewType("AgentId", str)       # assigned by the agent runtime after spawn
ProbeId = NewType("ProbeId", str)       # tool-use id of an output-probe invocation


# ─── Constants ───────────────────────────────────────────────────

CONTEXT_WINDOW_STANDARD = 200_000
CONTEXT_WINDOW_1M = 1_000_000
MIN_CUSTOM_CONTEXT_LIMIT = 1_000
MAX_CUSTOM_CONTEXT_LIMIT = 10_000_000

DEFAULT_TASK_TOOL = "Task"
DEFAULT_OUTPUT_PROBE_TOOLS = ("AgentOutputTool", "TaskOutput")

BACKGROUND_TASK_DESCRIPTION = "Background task"
ORPHANED_RESULT = "conversation ended while task was active"


# ─── Enums ───────────────────────────────────────────────────────

class RawKind(str, Enum):
    """Tag of an inbound raw agent message."""
    SYSTEM_INIT = "system-init"
    SYSTEM_COMPACT = "system-compact"
    ASSISTANT_TURN = "assistant-turn"
    USER_TURN = "user-turn"
    DELTA = "delta"
    FINAL_RESULT = "final-result"
    ERROR = "error"


class EventType(str, Enum):
    """Tag of a normalized stream event. Closed set."""
    SESSION_STARTED = "session-started"
    COMPACT_BOUNDARY = "compact-boundary"
    TEXT = "text"
    THINKING = "thinking"
    TOOL_INVOKED = "tool-invoked"
    TOOL_COMPLETED = "tool-completed"
    BLOCKED = "blocked"
    ERROR = "error"
    USAGE = "usage"
    DONE = "done"


class ToolStatus(str, Enum):
    """Tool invocation record lifecycle."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    BLOCKED = "blocked"


class SubagentStatus(str, Enum):
    """Synchronous (inline) subagent aggregate lifecycle."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class AsyncStatus(str, Enum):
    """Background subagent lifecycle. ORPHANED/COMPLETED/ERROR are terminal."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    ORPHANED = "orphaned"

    @property
    def is_terminal(self) -> bool:
        return self in (
            AsyncStatus.COMPLETED, AsyncStatus.ERROR, AsyncStatus.ORPHANED,
        )


class Route(str, Enum):
    """Where the correlator sent one event."""
    MAIN = "main"
    SUBAGENT = "subagent"
    ASYNC = "async"
    IGNORED = "ignored"
    SUPPRESSED = "suppressed"
    DROPPED = "dropped"
