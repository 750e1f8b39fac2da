"""Services Layer - the imperative shell around decoder, correlator and coordinator.

Invariants:
    - Services own IO-facing concerns: logging, async iteration, serialization
    - Core state is only mutated through StreamCorrelator.consume and teardown

Design Decisions:
    - Pure SSE helpers kept apart from the session loop for locality
"""
