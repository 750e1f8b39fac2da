"""Event Schemas - Pydantic models for serialized stream event data shapes.

Invariants:
    - Every outbound event has a consistent {"type", "data"} structure
    - percentage always lies in [0, 100]
    - Status fields use core enums, serialized to their string values

Design Decisions:
    - Core events stay frozen dataclasses; these models validate only at the outbound boundary
    - One model per data shape, shared by event kinds with the same shape (text / thinking)
"""

from typing import Any

from pydantic import BaseModel, Field

from threadline.core.domain_types import AsyncStatus, SubagentStatus, ToolStatus


class SessionStartedOut(BaseModel):
    session_id: str
    agents: list[str] = []


class ContentOut(BaseModel):
    """text / thinking fragment."""
    content: str
    parent_task_id: str | None = None


class ToolInvokedOut(BaseModel):
    id: str
    name: str
    input: dict[str, Any] = {}
    parent_task_id: str | None = None


class ToolCompletedOut(BaseModel):
    id: str
    content: str
    is_error: bool = False
    parent_task_id: str | None = None


class BlockedOut(BaseModel):
    content: str


class UsageInfoOut(BaseModel):
    """Context window occupancy for the current top-level turn."""
    model: str
    input_tokens: int = Field(ge=0)
    cache_creation_tokens: int = Field(ge=0)
    cache_read_tokens: int = Field(ge=0)
    context_window_size: int = Field(gt=0)
    occupied_tokens: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)
    session_id: str | None = None


class AsyncSubagentOut(BaseModel):
    """Lifecycle notification for one background task."""
    task_id: str
    agent_id: str | None = None
    description: str
    status: AsyncStatus
    result: str | None = None


# ─── Timeline snapshot ───────────────────────────────────────────

class ToolInvocationOut(BaseModel):
    id: str
    name: str
    input: dict[str, Any] = {}
    status: ToolStatus
    result: str | None = None


class SyncSubagentOut(BaseModel):
    id: str
    description: str = ""
    prompt: str | None = None
    subagent_type: str | None = None
    status: SubagentStatus
    tool_invocations: list[ToolInvocationOut] = []
    result: str | None = None


class TimelineOut(BaseModel):
    """Aggregated view of one turn: main tools, sync subagents, live background tasks."""
    session_id: str | None = None
    tool_invocations: list[ToolInvocationOut] = []
    subagents: list[SyncSubagentOut] = []
    async_subagents: list[AsyncSubagentOut] = []
    usage: UsageInfoOut | None = None
