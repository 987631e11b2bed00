# tests/property/__init__.py
"""Property-based tests for changegraph.

Invariants that must hold for ALL inputs, not just the examples we
think of: no-op writes never produce records, transitions carry the
values they claim, reference transitions never contradict each other,
traversal terminates on cyclic graphs, and fingerprints are
deterministic.
"""
