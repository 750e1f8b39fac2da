"""Boundary Protocols - contracts between the stream core and its observers.

Invariants:
    - Core never imports from the shell, dependency arrows point inward only
    - Observers receive immutable snapshots, never live records

Design Decisions:
    - Protocol over ABC: structural subtyping, any object with notify() is a sink
    - Synchronous notify: transitions happen inside the single consumption loop
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from threadline.core.async_subagents import AsyncSubagentSnapshot


class LifecycleSink(Protocol):
    """Receives one snapshot per background-task state change."""
    def notify(self, snapshot: "AsyncSubagentSnapshot") -> None: ...
