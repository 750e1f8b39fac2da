"""Async Subagent Coordinator - lifecycle of background tasks across turns.

Invariants:
    - pending -> running -> completed | error ; pending -> error ; pending|running -> orphaned
    - A record is reachable by task id OR agent id, never both (task id key dropped on pending -> running)
    - Every state change notifies the sink exactly once with an immutable snapshot
    - Terminal records are evicted right after their notification
    - Lookups and illegal transitions are soft misses: None / False, never an exception

Design Decisions:
    - One arena of records keyed by a stable internal index, plus two lookup maps (task id, agent id)
    - Probe links (probe tool-use id -> agent id) are consumed on every resolution, pending included
    - First-agent fallback only with a single outstanding task: with several, an
      unattributable success becomes an error instead of a silent misattribution
"""

from dataclasses import dataclass
from typing import Any

from threadline.core.agent_payloads import (
    ProbeOutcome, agent_id_from_input, candidate_agent_ids,
    classify_probe_result, extract_probe_result, parse_agent_id,
)
from threadline.core.domain_types import (
    BACKGROUND_TASK_DESCRIPTION, ORPHANED_RESULT, AgentId, AsyncStatus,
    ProbeId, TaskId,
)
from threadline.core.payloads import field_of, non_empty_str, unwrap_envelope
from threadline.core.protocols import LifecycleSink


SPAWN_FAILED_RESULT = "Task failed to start"
PROBE_FAILED_RESULT = "Task failed"


@dataclass(frozen=True)
class AsyncSubagentSnapshot:
    """Immutable view of one background task, handed to observers."""
    task_id: str
    agent_id: str | None
    description: str
    status: AsyncStatus
    result: str | None = None


@dataclass
class _AsyncRecord:
    task_id: TaskId
    description: str
    status: AsyncStatus = AsyncStatus.PENDING
    agent_id: AgentId | None = None
    result: str | None = None

    def snapshot(self) -> AsyncSubagentSnapshot:
        return AsyncSubagentSnapshot(
            task_id=self.task_id,
            agent_id=self.agent_id,
            description=self.description,
            status=self.status,
            result=self.result,
        )


def is_background_task(tool_input: Any) -> bool:
    """True only when the spawn input sets run_in_background to exactly True."""
    return field_of(tool_input, "run_in_background") is True


class AsyncSubagentCoordinator:
    """Owns every live background task record for one conversation."""

    def __init__(self, sink: LifecycleSink | None = None):
        self._sink = sink
        self._records: dict[int, _AsyncRecord] = {}
        self._next_index = 0
        self._by_task_id: dict[str, int] = {}
        self._by_agent_id: dict[str, int] = {}
        self._probe_links: dict[str, str] = {}

    # ─── Transitions ─────────────────────────────────────────────

    def spawn(self, task_id: TaskId, tool_input: Any) -> AsyncSubagentSnapshot | None:
        """Register a background task as pending. Foreground input or a known task id -> None."""
        if not is_background_task(tool_input):
            return None
        if task_id in self._by_task_id or self._index_of_task(task_id) is not None:
            return None
        record = _AsyncRecord(
            task_id=task_id,
            description=(
                non_empty_str(field_of(tool_input, "description"))
                or BACKGROUND_TASK_DESCRIPTION
            ),
        )
        index = self._next_index
        self._next_index += 1
        self._records[index] = record
        self._by_task_id[task_id] = index
        return self._emit(record)

    def resolve_spawn(
        self, task_id: TaskId, content: str, is_error: bool,
    ) -> AsyncSubagentSnapshot | None:
        """Spawn result arrived: pending -> running (agent id parsed) or error."""
        index = self._by_task_id.pop(task_id, None)
        if index is None:
            return None
        record = self._records[index]

        if is_error:
            text = content.strip() if isinstance(content, str) else ""
            return self._finish(index, AsyncStatus.ERROR, text or SPAWN_FAILED_RESULT)

        parsed = parse_agent_id(content)
        if not parsed.ok:
            return self._finish(
                index, AsyncStatus.ERROR,
                f"Failed to parse agent_id: {parsed.diagnostic}",
            )
        if parsed.agent_id in self._by_agent_id:
            return self._finish(
                index, AsyncStatus.ERROR,
                f"Failed to parse agent_id: {parsed.agent_id} already belongs to another task",
            )

        record.agent_id = AgentId(parsed.agent_id)
        record.status = AsyncStatus.RUNNING
        self._by_agent_id[record.agent_id] = index
        return self._emit(record)

    def link_output_probe(self, probe_id: ProbeId, agent_id: str) -> bool:
        """Remember which agent a probe targets. Only running agents can be linked."""
        index = self._by_agent_id.get(agent_id)
        if index is None or self._records[index].status is not AsyncStatus.RUNNING:
            return False
        self._probe_links[probe_id] = agent_id
        return True

    def link_output_probe_from_input(self, probe_id: ProbeId, tool_input: Any) -> bool:
        agent_id = agent_id_from_input(tool_input)
        if agent_id is None:
            return False
        return self.link_output_probe(probe_id, agent_id)

    def resolve_output_probe(
        self, probe_id: ProbeId, content: str, is_error: bool,
    ) -> AsyncSubagentSnapshot | None:
        """Probe result arrived: running stays running, or -> completed | error."""
        agent_id = self._probe_links.pop(probe_id, None)
        index = self._by_agent_id.get(agent_id) if agent_id else None
        if index is None:
            agent_id, index = self._infer_target(content)
        if index is None:
            return None
        record = self._records[index]
        if record.status is not AsyncStatus.RUNNING:
            return None

        outcome = classify_probe_result(content, is_error, agent_id)
        if outcome is ProbeOutcome.PENDING:
            return record.snapshot()

        single = len(self._records) == 1
        text = extract_probe_result(content, agent_id, allow_first_entry=single)

        if outcome is ProbeOutcome.FAILURE:
            if text is None:
                text = unwrap_envelope(content) if isinstance(content, str) else ""
            return self._finish(index, AsyncStatus.ERROR, text or PROBE_FAILED_RESULT)

        if text is None:
            return self._finish(
                index, AsyncStatus.ERROR,
                f"Cannot attribute output to agent {agent_id}: "
                f"{len(self._records)} background tasks outstanding",
            )
        return self._finish(index, AsyncStatus.COMPLETED, text)

    def orphan_all(self) -> list[AsyncSubagentSnapshot]:
        """Every live record -> orphaned. Leaves the coordinator empty."""
        orphaned = []
        for record in self._records.values():
            if record.status.is_terminal:
                continue
            record.status = AsyncStatus.ORPHANED
            record.result = ORPHANED_RESULT
            orphaned.append(record.snapshot())
        self.clear()
        for snapshot in orphaned:
            self._notify(snapshot)
        return orphaned

    def clear(self) -> None:
        """Drop all state without notifying."""
        self._records.clear()
        self._by_task_id.clear()
        self._by_agent_id.clear()
        self._probe_links.clear()

    # ─── Read API ────────────────────────────────────────────────

    def get_by_task_id(self, task_id: str) -> AsyncSubagentSnapshot | None:
        index = self._by_task_id.get(task_id)
        return self._records[index].snapshot() if index is not None else None

    def get_by_agent_id(self, agent_id: str) -> AsyncSubagentSnapshot | None:
        index = self._by_agent_id.get(agent_id)
        return self._records[index].snapshot() if index is not None else None

    def is_pending_task(self, task_id: str) -> bool:
        return task_id in self._by_task_id

    def is_linked_probe(self, probe_id: str) -> bool:
        return probe_id in self._probe_links

    def active(self) -> list[AsyncSubagentSnapshot]:
        """Snapshots of every pending or running record, in spawn order."""
        return [r.snapshot() for r in self._records.values()]

    def has_active(self) -> bool:
        return bool(self._records)

    # ─── Internals ───────────────────────────────────────────────

    def _index_of_task(self, task_id: str) -> int | None:
        for index, record in self._records.items():
            if record.task_id == task_id:
                return index
        return None

    def _infer_target(self, content: str) -> tuple[str | None, int | None]:
        for candidate in candidate_agent_ids(content):
            index = self._by_agent_id.get(candidate)
            if index is not None:
                return candidate, index
        return None, None

    def _finish(
        self, index: int, status: AsyncStatus, result: str,
    ) -> AsyncSubagentSnapshot:
        record = self._records.pop(index)
        record.status = status
        record.result = result
        self._by_task_id.pop(record.task_id, None)
        if record.agent_id is not None:
            self._by_agent_id.pop(record.agent_id, None)
            self._probe_links = {
                p: a for p, a in self._probe_links.items() if a != record.agent_id
            }
        return self._emit(record)

    def _emit(self, record: _AsyncRecord) -> AsyncSubagentSnapshot:
        snapshot = record.snapshot()
        self._notify(snapshot)
        return snapshot

    def _notify(self, snapshot: AsyncSubagentSnapshot) -> None:
        if self._sink is not None:
            self._sink.notify(snapshot)
