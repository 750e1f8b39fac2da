"""Usage Extractor - context window occupancy from one top-level assistant turn.

Invariants:
    - occupied = input + cache_creation + cache_read (output tokens are not part of the input window)
    - percentage = clamp(round_half_up(occupied / window * 100), 0, 100)
    - Custom per-model limits win over the 1M / standard window resolution
    - Returns None when the payload carries no numeric counters (never raises)

Design Decisions:
    - Half-up rounding, not Python's banker's rounding: 12.5% displays as 13%
    - Only assistant turns feed this; final results report cumulative totals across subagents
"""

import math
from collections.abc import Mapping
from typing import Any

from threadline.core.domain_types import CONTEXT_WINDOW_1M, CONTEXT_WINDOW_STANDARD
from threadline.core.payloads import as_count, field_of
from threadline.core.stream_events import UsageInfo


_COUNTER_KEYS = (
    "input_tokens", "output_tokens",
    "cache_creation_input_tokens", "cache_read_input_tokens",
)


def context_window_size(
    model: str,
    *,
    context_1m_enabled: bool = False,
    custom_limits: Mapping[str, int] | None = None,
) -> int:
    """Maximum input tokens for model."""
    if custom_limits and model in custom_limits and custom_limits[model] > 0:
        return custom_limits[model]
    if context_1m_enabled and "sonnet" in model.lower():
        return CONTEXT_WINDOW_1M
    return CONTEXT_WINDOW_STANDARD


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def occupancy_percentage(occupied_tokens: int, window: int) -> int:
    """Percent of window consumed, clamped to [0, 100]."""
    if window <= 0:
        return 100 if occupied_tokens > 0 else 0
    return min(100, max(0, round_half_up(occupied_tokens / window * 100)))


def has_usage_counters(usage: Any) -> bool:
    return any(as_count(field_of(usage, k)) is not None for k in _COUNTER_KEYS)


def extract_usage(
    usage: Any,
    *,
    model: str,
    context_1m_enabled: bool = False,
    custom_limits: Mapping[str, int] | None = None,
) -> UsageInfo | None:
    """Build UsageInfo from an API usage block, or None if it has no counters."""
    if usage is None or not has_usage_counters(usage):
        return None
    input_tokens = as_count(field_of(usage, "input_tokens")) or 0
    cache_creation = as_count(field_of(usage, "cache_creation_input_tokens")) or 0
    cache_read = as_count(field_of(usage, "cache_read_input_tokens")) or 0
    occupied = input_tokens + cache_creation + cache_read
    window = context_window_size(
        model, context_1m_enabled=context_1m_enabled, custom_limits=custom_limits,
    )
    return UsageInfo(
        model=model,
        input_tokens=input_tokens,
        cache_creation_tokens=cache_creation,
        cache_read_tokens=cache_read,
        context_window_size=window,
        occupied_tokens=occupied,
        percentage=occupancy_percentage(occupied, window),
    )
