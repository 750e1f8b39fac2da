"""Error Hierarchy - typed, categorized exceptions for stream failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Malformed input is recoverable; upstream and internal errors end the turn in error
    - to_sse_event() produces the same {"type", "data"} envelope as every other stream event
    - Core functions never raise these on untrusted input; adapters and the shell do

Design Decisions:
    - Single hierarchy with ThreadlineError base: the shell catches one type per message
    - ErrorContext as dataclass: correlation ids travel with the error, not the log call
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories."""
    MALFORMED_INPUT = "malformed_input"
    UPSTREAM = "upstream"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Correlation context attached to an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    tool_use_id: str | None = None
    task_id: str | None = None
    agent_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class ThreadlineError(Exception):
    """Base exception for all Threadline errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    @property
    def recoverable(self) -> bool:
        return self.severity in (ErrorSeverity.INFO, ErrorSeverity.WARNING)

    def to_sse_event(self) -> dict:
        """Convert to stream error event."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "recoverable": self.recoverable,
                "session_id": self.context.session_id,
                "timestamp": self.context.timestamp.isoformat(),
            },
        }


# ─── Input Errors ────────────────────────────────────────────────

class MalformedMessageError(ThreadlineError):
    """Inbound agent message could not be read at all."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Malformed agent message: {message}",
            "MALFORMED_MESSAGE", ErrorCategory.MALFORMED_INPUT,
            ErrorSeverity.WARNING, context,
        )


# ─── Upstream Errors ─────────────────────────────────────────────

class UpstreamAgentError(ThreadlineError):
    """Agent runtime reported an error. Message propagated verbatim."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.user_message = ctx.user_message or message
        super().__init__(
            message, "AGENT_ERROR", ErrorCategory.UPSTREAM,
            ErrorSeverity.ERROR, ctx,
        )
