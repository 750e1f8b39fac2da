"""Pydantic Schemas - outbound shapes for serialized stream events.

Invariants:
    - Schemas validate at the system boundary only, core stays on dataclasses
    - Domain enums from core/ used for status fields

Design Decisions:
    - Separate from core: events are an internal vocabulary, schemas are the wire contract
"""
