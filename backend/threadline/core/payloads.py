"""Payload Access - total helpers for reading loosely-typed agent payloads.

Invariants:
    - No function here raises on any input (None, wrong types, broken JSON)
    - field_of reads mappings by key and other objects by attribute
    - unwrap_envelope returns the inner text of {text} envelopes, else the input unchanged

Design Decisions:
    - Explicit Optional returns instead of exceptions: callers compose fallbacks top-down
    - Attribute fallback lets SDK objects (pydantic models) flow through the same code as dicts
"""

import json
from collections.abc import Mapping
from typing import Any


def field_of(obj: Any, key: str, default: Any = None) -> Any:
    """Read key from a mapping or attribute from an object."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def as_mapping(obj: Any) -> Mapping | None:
    """Mapping view of obj, or None. Pydantic-style objects are dumped."""
    if isinstance(obj, Mapping):
        return obj
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        try:
            dumped = dump()
        except Exception:
            return None
        return dumped if isinstance(dumped, Mapping) else None
    return None


def as_list(obj: Any) -> list:
    """obj if it is a list or tuple, else an empty list."""
    if isinstance(obj, (list, tuple)):
        return list(obj)
    return []


def non_empty_str(value: Any) -> str | None:
    """value if it is a non-empty string, else None."""
    if isinstance(value, str) and value:
        return value
    return None


def as_count(value: Any) -> int | None:
    """Non-negative token counter, or None when value is not numeric."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0, int(value))


def loads_or_none(raw: Any) -> Any:
    """json.loads that returns None for non-strings and invalid JSON."""
    if not isinstance(raw, str):
        return None
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        return None


def to_text(value: Any) -> str:
    """String as-is; anything else pretty-printed as JSON (2-space indent)."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError):
        return str(value)


def unwrap_envelope(raw: str) -> str:
    """Inner text of a [{text}] or {text} envelope; raw unchanged otherwise."""
    parsed = loads_or_none(raw.strip()) if isinstance(raw, str) else None
    if isinstance(parsed, list):
        for block in parsed:
            text = field_of(block, "text") if isinstance(block, Mapping) else None
            if isinstance(text, str):
                return text
    elif isinstance(parsed, Mapping) and isinstance(parsed.get("text"), str):
        return parsed["text"]
    return raw if isinstance(raw, str) else ""


def parse_object(raw: str) -> dict | None:
    """JSON object behind raw (envelopes unwrapped), or None."""
    parsed = loads_or_none(unwrap_envelope(raw).strip())
    return parsed if isinstance(parsed, dict) else None


def truncate(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
