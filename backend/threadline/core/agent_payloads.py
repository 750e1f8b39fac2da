"""Agent Payloads - agent-id extraction and output-probe classification.

Invariants:
    - Every function is total: untrusted text in, explicit optional/enum out
    - Fallbacks compose top-down: direct field -> nested field -> escaped-key scan -> failure
    - Ambiguous probe output classifies as PENDING (a record never finishes on a guess)
    - is_error on a probe result always classifies as FAILURE

Design Decisions:
    - AgentIdParse carries a diagnostic instead of raising: the coordinator turns it into record state
    - Envelope unwrapping ([{text}] / {text}) happens once, up front, via payloads.unwrap_envelope
    - Regex scan runs on the raw text so escaped keys inside nested JSON strings still match
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from threadline.core.payloads import (
    as_mapping, field_of, non_empty_str, parse_object, to_text, truncate,
    unwrap_envelope,
)


_PENDING_STATUSES = frozenset({"not_ready", "running", "pending"})
_SUCCESS_STATUSES = frozenset({"success", "completed"})
_FAILURE_STATUSES = frozenset({"error", "failed"})

_DIRECT_ID_FIELDS = ("agent_id", "agentId")
_INPUT_ID_FIELDS = ("agentId", "agent_id", "task_id")

_ID_PATTERNS = (
    re.compile(r'\\?"agent_id\\?"\s*:\s*\\?"([^"\\]+)'),
    re.compile(r'\\?"agentId\\?"\s*:\s*\\?"([^"\\]+)'),
    re.compile(r'agent_?id[=:]\s*"?([A-Za-z0-9_-]+)', re.IGNORECASE),
)
_STATUS_TAG = re.compile(r'(?:retrieval_status|status)\W{0,4}([a-z_]+)')


class ProbeOutcome(str, Enum):
    """What one output-probe result says about its target task."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class AgentIdParse:
    agent_id: str | None
    diagnostic: str = ""

    @property
    def ok(self) -> bool:
        return self.agent_id is not None


# ─── Spawn results ───────────────────────────────────────────────

def parse_agent_id(content: str) -> AgentIdParse:
    """Agent id assigned to a background task, from its spawn result text."""
    text = content.strip() if isinstance(content, str) else ""
    if not text:
        return AgentIdParse(None, "empty spawn result")

    parsed = parse_object(text)
    if parsed is not None:
        found = _id_from_object(parsed)
        if found:
            return AgentIdParse(found)

    for pattern in _ID_PATTERNS:
        match = pattern.search(text)
        if match:
            return AgentIdParse(match.group(1))

    return AgentIdParse(None, f"no agent id in result: {truncate(text)}")


def _id_from_object(obj: Mapping) -> str | None:
    for key in _DIRECT_ID_FIELDS:
        found = non_empty_str(obj.get(key))
        if found:
            return found
    data = obj.get("data")
    if isinstance(data, Mapping):
        for key in _DIRECT_ID_FIELDS:
            found = non_empty_str(data.get(key))
            if found:
                return found
    return non_empty_str(obj.get("id"))


def agent_id_from_input(tool_input: Any) -> str | None:
    """Agent id an output-probe invocation asks about."""
    for key in _INPUT_ID_FIELDS:
        found = non_empty_str(field_of(tool_input, key))
        if found:
            return found
    return None


# ─── Probe results ───────────────────────────────────────────────

def candidate_agent_ids(content: str) -> list[str]:
    """Agent ids a probe result mentions: agents-map keys first, then direct fields."""
    parsed = parse_object(content) if isinstance(content, str) else None
    if parsed is None:
        return []
    ids = [k for k in _agents_map(parsed) if isinstance(k, str) and k]
    direct = _id_from_object(parsed)
    if direct and direct not in ids:
        ids.append(direct)
    task_id = non_empty_str(parsed.get("task_id"))
    if task_id and task_id not in ids:
        ids.append(task_id)
    return ids


def classify_probe_result(
    content: str, is_error: bool, agent_id: str | None = None,
) -> ProbeOutcome:
    """PENDING / SUCCESS / FAILURE verdict for one probe result."""
    if is_error:
        return ProbeOutcome.FAILURE
    if not isinstance(content, str) or not content.strip():
        return ProbeOutcome.PENDING

    parsed = parse_object(content)
    if parsed is not None:
        return _classify_object(parsed, agent_id)
    return _classify_text(unwrap_envelope(content.strip()))


def _classify_object(parsed: Mapping, agent_id: str | None) -> ProbeOutcome:
    status = _status_of(parsed)
    if status in _PENDING_STATUSES:
        return ProbeOutcome.PENDING

    agents = _agents_map(parsed)
    if agents:
        statuses = {k: _status_of(v) for k, v in agents.items()}
        if any(s in _PENDING_STATUSES for s in statuses.values()):
            return ProbeOutcome.PENDING
        if agent_id in statuses and statuses[agent_id] in _FAILURE_STATUSES:
            return ProbeOutcome.FAILURE
        if status in _FAILURE_STATUSES:
            return ProbeOutcome.FAILURE
        return ProbeOutcome.SUCCESS

    if status in _SUCCESS_STATUSES:
        return ProbeOutcome.SUCCESS
    if status in _FAILURE_STATUSES:
        return ProbeOutcome.FAILURE
    return ProbeOutcome.PENDING


def _classify_text(text: str) -> ProbeOutcome:
    lowered = text.lower()
    if "not ready" in lowered:
        return ProbeOutcome.PENDING
    for match in _STATUS_TAG.finditer(lowered):
        tag = match.group(1)
        if tag in _PENDING_STATUSES:
            return ProbeOutcome.PENDING
        if tag in _SUCCESS_STATUSES:
            return ProbeOutcome.SUCCESS
        if tag in _FAILURE_STATUSES:
            return ProbeOutcome.FAILURE
    return ProbeOutcome.PENDING


def extract_probe_result(
    content: str, agent_id: str | None, *, allow_first_entry: bool,
) -> str | None:
    """Result text for agent_id. None when a multi-agent payload cannot be attributed."""
    parsed = parse_object(content) if isinstance(content, str) else None
    if parsed is None:
        return unwrap_envelope(content) if isinstance(content, str) else ""

    agents = _agents_map(parsed)
    if agents:
        if agent_id is not None and agent_id in agents:
            return _entry_result(agents[agent_id])
        if not allow_first_entry:
            return None
        return _entry_result(next(iter(agents.values())))

    for key in ("result", "output"):
        found = non_empty_str(parsed.get(key))
        if found:
            return found
    return unwrap_envelope(content)


def _entry_result(entry: Any) -> str:
    found = non_empty_str(field_of(entry, "result"))
    return found if found is not None else to_text(entry)


def _agents_map(parsed: Mapping) -> Mapping:
    agents = as_mapping(parsed.get("agents"))
    return agents if agents else {}


def _status_of(obj: Any) -> str:
    value = field_of(obj, "retrieval_status") or field_of(obj, "status")
    return value.lower() if isinstance(value, str) else ""
