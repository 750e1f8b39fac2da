"""Threadline entry point - process-wide setup and session construction.

Invariants:
    - bootstrap() configures logging at most once per process
    - Sessions read settings through get_settings() (cached), never from os.environ directly

Design Decisions:
    - Explicit bootstrap() instead of import-time side effects
"""

import logging

from threadline.config import Settings, get_settings
from threadline.core.protocols import LifecycleSink
from threadline.infrastructure.observability import setup_logging
from threadline.services.stream_session import StreamSession

logger = logging.getLogger(__name__)

_bootstrapped = False


def bootstrap(settings: Settings | None = None) -> Settings:
    """Load settings and install logging. Safe to call repeatedly."""
    global _bootstrapped
    settings = settings or get_settings()
    if not _bootstrapped:
        setup_logging(settings.log_level, settings.log_format)
        _bootstrapped = True
        logger.info("Threadline started")
    return settings


def open_session(
    settings: Settings | None = None, *, sink: LifecycleSink | None = None,
) -> StreamSession:
    """New StreamSession for one conversation."""
    return StreamSession(bootstrap(settings), sink=sink)
