"""Core Layer - pure stream decoding and lifecycle logic, no IO, no async.

Invariants:
    - No module in core/ imports from services/, schemas/, infrastructure/, or config
    - Nothing in core/ raises across its public boundary on untrusted input

Design Decisions:
    - Functional core separated from imperative shell (services/ drives IO and logging)
"""
