"""Stream Session - async shell that drives decode -> correlate -> serialize per raw message.

Invariants:
    - Raw messages are processed strictly in arrival order, one at a time
    - One bad message never ends the stream: ThreadlineError -> its SSE form, anything else -> INTERNAL_ERROR
    - run() always finishes a turn with exactly one done event (unless interrupted)
    - Interruption (task cancelled, or the consumer closes the generator early) tears down
      (orphans live background tasks, notifies the sink) and re-raises
    - Usage from another session, or from a turn that spawned a subagent, never reaches the client

Design Decisions:
    - StreamSession is its own LifecycleSink: coordinator notifications are queued and
      flushed right after the event that caused them, then forwarded to an optional external sink
    - Core returns Route tags, the shell turns soft misses into log lines
"""

import asyncio
import logging
from collections.abc import AsyncIterable, Callable
from dataclasses import replace
from typing import Any

from threadline.config import Settings, get_settings
from threadline.core.async_subagents import AsyncSubagentCoordinator, AsyncSubagentSnapshot
from threadline.core.domain_types import Route
from threadline.core.errors import ThreadlineError
from threadline.core.message_decoder import decode
from threadline.core.payloads import field_of, non_empty_str
from threadline.core.protocols import LifecycleSink
from threadline.core.stream_correlator import StreamCorrelator
from threadline.core.stream_events import ErrorEvent, StreamEvent, UsageEvent
from threadline.infrastructure.observability import log_route
from threadline.services.stream_helpers import (
    done_event, lifecycle_event, stream_event_to_sse, timeline_event,
    unexpected_error_event,
)

logger = logging.getLogger(__name__)

RawAdapter = Callable[[Any], Any]


class StreamSession:
    """One conversation: decoder options, correlator and coordinator, plus the pending outbox."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        sink: LifecycleSink | None = None,
    ):
        settings = settings or get_settings()
        self.options = settings.decode_options()
        self._sink = sink
        self._outbox: list[dict] = []
        self._turn_error = False
        self.coordinator = AsyncSubagentCoordinator(sink=self)
        self.correlator = StreamCorrelator(
            self.coordinator,
            task_tool_name=settings.task_tool_name,
            output_probe_tool_names=settings.output_probe_tool_names,
        )

    @property
    def session_id(self) -> str | None:
        return self.correlator.session_id

    # ─── LifecycleSink ───────────────────────────────────────────

    def notify(self, snapshot: AsyncSubagentSnapshot) -> None:
        logger.info(
            "Background task %s -> %s", snapshot.task_id, snapshot.status.value,
            extra={
                "session_id": self.session_id, "task_id": snapshot.task_id,
                "agent_id": snapshot.agent_id,
            },
        )
        self._outbox.append(lifecycle_event(snapshot))
        if self._sink is not None:
            self._sink.notify(snapshot)

    # ─── Synchronous API ─────────────────────────────────────────

    def feed(self, raw: Any) -> list[dict]:
        """Decode and route one raw message. Returns the SSE dicts it produced."""
        origin_session = non_empty_str(field_of(raw, "session_id"))
        out: list[dict] = []
        for event in decode(raw, self.options):
            if isinstance(event, UsageEvent) and event.session_id is None and origin_session:
                event = replace(event, session_id=origin_session)
            if isinstance(event, ErrorEvent):
                self._turn_error = True

            route = self.correlator.consume(event)
            self._log_route(event, route)
            if not (isinstance(event, UsageEvent) and route is not Route.MAIN):
                out.append(stream_event_to_sse(event, self.session_id))
            out.extend(self._drain())
        return out

    def begin_turn(self) -> None:
        self._turn_error = False
        self.correlator.begin_turn()

    def teardown(self) -> list[dict]:
        """Orphan every live background task. Returns the resulting lifecycle events."""
        orphaned = self.correlator.teardown()
        if orphaned:
            logger.info(
                "Orphaned %d background task(s)", len(orphaned),
                extra={"session_id": self.session_id},
            )
        return self._drain()

    def timeline(self) -> dict:
        """Current turn aggregates as one SSE dict."""
        return timeline_event(
            self.correlator.timeline, self.coordinator.active(), self.session_id,
        )

    # ─── Async API ───────────────────────────────────────────────

    async def run(
        self, source: AsyncIterable[Any], *, adapter: RawAdapter | None = None,
    ):
        """Async generator: one turn over source, yielding SSE dicts, then done."""
        self.begin_turn()
        try:
            async for message in source:
                for sse in self._process(message, adapter):
                    yield sse
        except (asyncio.CancelledError, GeneratorExit) as e:
            logger.info(
                "Stream interrupted (%s)", type(e).__name__,
                extra={"session_id": self.session_id},
            )
            self.teardown()
            raise
        yield done_event(error=self._turn_error)

    def _process(self, message: Any, adapter: RawAdapter | None) -> list[dict]:
        try:
            raw = adapter(message) if adapter is not None else message
            if raw is None:
                return []
            return self.feed(raw)
        except ThreadlineError as e:
            logger.warning(
                "Stream message rejected: %s", e.message,
                extra={"session_id": self.session_id, "error_code": e.code},
            )
            if not e.recoverable:
                self._turn_error = True
            e.context.session_id = e.context.session_id or self.session_id
            return [e.to_sse_event(), *self._drain()]
        except Exception as e:
            logger.error(
                "Unexpected error processing stream message: %s", e,
                extra={"session_id": self.session_id}, exc_info=True,
            )
            self._turn_error = True
            return [unexpected_error_event(), *self._drain()]

    # ─── Internals ───────────────────────────────────────────────

    def _drain(self) -> list[dict]:
        out, self._outbox = self._outbox, []
        return out

    def _log_route(self, event: StreamEvent, route: Route) -> None:
        log_route(
            logger, route, event.type,
            session_id=self.session_id, tool_use_id=getattr(event, "id", None),
        )
