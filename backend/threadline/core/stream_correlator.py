"""Stream Correlator - routes decoded events to the aggregate they belong to.

Invariants:
    - Events are consumed strictly in arrival order, one at a time
    - parent_task_id is the only key linking child activity to its spawning invocation
    - A tool id appears at most once across main, sync and async aggregates
    - A repeated invocation only fills in input its first (partial) delivery lacked
    - usage is accepted only while no subagent has been spawned in the current turn
    - Unknown ids, unknown parents, finished aggregates: soft misses, never exceptions

Design Decisions:
    - consume() returns a Route tag so the shell can log misses without the core logging
    - Background spawns and output probes delegate to AsyncSubagentCoordinator
    - Sync aggregates are finalized in place and kept on the timeline for rendering
"""

from dataclasses import dataclass, field
from typing import Any

from threadline.core.async_subagents import (
    AsyncSubagentCoordinator, AsyncSubagentSnapshot, is_background_task,
)
from threadline.core.domain_types import (
    DEFAULT_OUTPUT_PROBE_TOOLS, DEFAULT_TASK_TOOL, Route, SubagentStatus,
    ToolStatus,
)
from threadline.core.payloads import field_of, non_empty_str
from threadline.core.stream_events import (
    SessionStarted, StreamEvent, ToolCompleted, ToolInvoked, UsageEvent,
    UsageInfo, parent_of,
)


_BLOCK_MARKERS = (
    "blocked by blocklist", "outside the vault", "access denied",
    "user denied", "approval",
)


# ─── Aggregates ──────────────────────────────────────────────────

@dataclass
class ToolInvocation:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    status: ToolStatus = ToolStatus.RUNNING
    result: str | None = None

    def complete(self, content: str, is_error: bool) -> None:
        self.status = classify_tool_result(content, is_error)
        self.result = content


@dataclass
class SyncSubagent:
    """Inline subagent: nested invocations collected until its spawn result arrives."""
    id: str
    description: str = ""
    prompt: str | None = None
    subagent_type: str | None = None
    status: SubagentStatus = SubagentStatus.RUNNING
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    result: str | None = None

    def find_tool(self, tool_id: str) -> ToolInvocation | None:
        for tool in self.tool_invocations:
            if tool.id == tool_id:
                return tool
        return None


@dataclass
class MainTimeline:
    """Everything the top-level agent produced in one turn, in order."""
    events: list[StreamEvent] = field(default_factory=list)
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    subagents: list[SyncSubagent] = field(default_factory=list)
    async_task_ids: list[str] = field(default_factory=list)
    usage: UsageInfo | None = None


def is_blocked_tool_result(content: str, is_error: bool = False) -> bool:
    """True when a tool result reports a blocklist, permission or approval denial."""
    lowered = content.lower()
    if any(marker in lowered for marker in _BLOCK_MARKERS):
        return True
    return is_error and "deny" in lowered


def _fill_subagent(agg: SyncSubagent, tool_input: Any) -> None:
    """Copy Task input fields onto the aggregate, keeping values already set."""
    agg.description = non_empty_str(field_of(tool_input, "description")) or agg.description
    agg.prompt = non_empty_str(field_of(tool_input, "prompt")) or agg.prompt
    agg.subagent_type = non_empty_str(field_of(tool_input, "subagent_type")) or agg.subagent_type


def classify_tool_result(content: str, is_error: bool) -> ToolStatus:
    if is_blocked_tool_result(content, is_error):
        return ToolStatus.BLOCKED
    return ToolStatus.ERROR if is_error else ToolStatus.COMPLETED


# ─── Correlator ──────────────────────────────────────────────────

class StreamCorrelator:
    """Single-writer router from stream events to timeline, sync and async aggregates."""

    def __init__(
        self,
        coordinator: AsyncSubagentCoordinator,
        *,
        task_tool_name: str = DEFAULT_TASK_TOOL,
        output_probe_tool_names: tuple[str, ...] | list[str] = DEFAULT_OUTPUT_PROBE_TOOLS,
    ):
        self.coordinator = coordinator
        self.task_tool_name = task_tool_name
        self.output_probe_tool_names = frozenset(output_probe_tool_names)
        self.session_id: str | None = None
        self.spawned_this_turn = 0
        self.timeline = MainTimeline()
        self._open_subagents: dict[str, SyncSubagent] = {}
        self._main_tools: dict[str, ToolInvocation] = {}
        self._probe_ids: set[str] = set()

    def begin_turn(self) -> None:
        """Reset per-turn counters and open a fresh main timeline."""
        self.spawned_this_turn = 0
        self.timeline = MainTimeline()
        self._open_subagents = {}
        self._main_tools = {}
        self._probe_ids = set()

    def teardown(self) -> list[AsyncSubagentSnapshot]:
        """Orphan live background tasks, then drop open sync aggregates."""
        orphaned = self.coordinator.orphan_all()
        self._open_subagents = {}
        return orphaned

    def subagent(self, task_id: str) -> SyncSubagent | None:
        """Sync aggregate spawned this turn, open or finalized."""
        for agg in self.timeline.subagents:
            if agg.id == task_id:
                return agg
        return None

    def consume(self, event: StreamEvent) -> Route:
        if isinstance(event, UsageEvent):
            return self._consume_usage(event)
        if isinstance(event, SessionStarted):
            self.session_id = event.session_id

        parent = parent_of(event)
        if parent is not None:
            return self._consume_child(event, parent)
        if isinstance(event, ToolInvoked):
            return self._consume_invocation(event)
        if isinstance(event, ToolCompleted):
            return self._consume_completion(event)

        self.timeline.events.append(event)
        return Route.MAIN

    # ─── Child activity (parent_task_id set) ────────────────────

    def _consume_child(self, event: StreamEvent, parent: str) -> Route:
        agg = self._open_subagents.get(parent)
        if agg is not None:
            return self._apply_nested(agg, event)

        if isinstance(event, ToolInvoked):
            if event.name == self.task_tool_name and is_background_task(event.input):
                return Route.ASYNC if self.coordinator.spawn(event.id, event.input) else Route.DROPPED
            if event.name in self.output_probe_tool_names:
                linked = self.coordinator.link_output_probe_from_input(event.id, event.input)
                return Route.ASYNC if linked else Route.DROPPED
        elif isinstance(event, ToolCompleted):
            if self.coordinator.is_pending_task(event.id):
                self.coordinator.resolve_spawn(event.id, event.content, event.is_error)
                return Route.ASYNC
            if self.coordinator.is_linked_probe(event.id):
                self.coordinator.resolve_output_probe(event.id, event.content, event.is_error)
                return Route.ASYNC
        return Route.DROPPED

    def _apply_nested(self, agg: SyncSubagent, event: StreamEvent) -> Route:
        if isinstance(event, ToolInvoked):
            tool = agg.find_tool(event.id)
            if tool is not None:
                if not tool.input and event.input:
                    tool.input = dict(event.input)
                return Route.IGNORED
            agg.tool_invocations.append(ToolInvocation(
                id=event.id, name=event.name, input=dict(event.input),
            ))
            return Route.SUBAGENT
        if isinstance(event, ToolCompleted):
            tool = agg.find_tool(event.id)
            if tool is None or tool.status is not ToolStatus.RUNNING:
                return Route.DROPPED
            tool.complete(event.content, event.is_error)
            return Route.SUBAGENT
        return Route.IGNORED

    # ─── Top-level activity ─────────────────────────────────────

    def _consume_invocation(self, event: ToolInvoked) -> Route:
        if event.name == self.task_tool_name:
            return self._consume_task(event)

        tool = self._main_tools.get(event.id)
        if tool is not None:
            self._refine_main_tool(tool, event)
            return Route.IGNORED
        if event.name in self.output_probe_tool_names:
            self.coordinator.link_output_probe_from_input(event.id, event.input)
            self._probe_ids.add(event.id)

        tool = ToolInvocation(id=event.id, name=event.name, input=dict(event.input))
        self._main_tools[event.id] = tool
        self.timeline.tool_invocations.append(tool)
        self.timeline.events.append(event)
        return Route.MAIN

    def _consume_task(self, event: ToolInvoked) -> Route:
        if event.id in self.timeline.async_task_ids:
            return Route.IGNORED
        agg = self.subagent(event.id)
        if agg is not None:
            return self._refine_subagent(agg, event)

        self.spawned_this_turn += 1
        if is_background_task(event.input):
            return self._spawn_background(event)
        agg = SyncSubagent(id=event.id)
        _fill_subagent(agg, event.input)
        self._open_subagents[event.id] = agg
        self.timeline.subagents.append(agg)
        return Route.SUBAGENT

    def _spawn_background(self, event: ToolInvoked) -> Route:
        if self.coordinator.spawn(event.id, event.input) is None:
            return Route.IGNORED
        self.timeline.async_task_ids.append(event.id)
        return Route.ASYNC

    def _refine_subagent(self, agg: SyncSubagent, event: ToolInvoked) -> Route:
        """Repeated Task delivery: an aggregate opened from partial input takes the full input."""
        if self._open_subagents.get(event.id) is not agg or agg.tool_invocations:
            return Route.IGNORED
        if is_background_task(event.input):
            del self._open_subagents[event.id]
            self.timeline.subagents.remove(agg)
            return self._spawn_background(event)
        _fill_subagent(agg, event.input)
        return Route.IGNORED

    def _refine_main_tool(self, tool: ToolInvocation, event: ToolInvoked) -> None:
        if tool.input or not event.input:
            return
        tool.input = dict(event.input)
        if event.id in self._probe_ids and not self.coordinator.is_linked_probe(event.id):
            self.coordinator.link_output_probe_from_input(event.id, event.input)

    def _consume_completion(self, event: ToolCompleted) -> Route:
        agg = self._open_subagents.pop(event.id, None)
        if agg is not None:
            agg.status = SubagentStatus.ERROR if event.is_error else SubagentStatus.COMPLETED
            agg.result = event.content
            return Route.SUBAGENT

        if self.coordinator.is_pending_task(event.id):
            self.coordinator.resolve_spawn(event.id, event.content, event.is_error)
            return Route.ASYNC

        probed = None
        if (
            self.coordinator.is_linked_probe(event.id)
            or event.id in self._probe_ids
            or event.id not in self._main_tools
        ):
            probed = self.coordinator.resolve_output_probe(
                event.id, event.content, event.is_error,
            )

        tool = self._main_tools.get(event.id)
        if tool is None:
            return Route.ASYNC if probed is not None else Route.DROPPED
        if tool.status is not ToolStatus.RUNNING:
            return Route.IGNORED
        tool.complete(event.content, event.is_error)
        self.timeline.events.append(event)
        return Route.MAIN

    def _consume_usage(self, event: UsageEvent) -> Route:
        if self.spawned_this_turn > 0:
            return Route.SUPPRESSED
        if (
            event.session_id is not None
            and self.session_id is not None
            and event.session_id != self.session_id
        ):
            return Route.DROPPED
        self.timeline.usage = event.info
        self.timeline.events.append(event)
        return Route.MAIN
