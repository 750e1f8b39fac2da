"""Infrastructure Layer - adapters for external message formats and cross-cutting concerns.

Invariants:
    - Adapters translate foreign shapes into raw messages, they never route or correlate
    - Unreadable input raises MalformedMessageError (core/errors.py)

Design Decisions:
    - One adapter per upstream library (Claude Agent SDK JSON, anthropic SDK objects)
"""
