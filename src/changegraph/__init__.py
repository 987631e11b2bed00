"""
changegraph: Structured audit records for aggregate change graphs.

Walks the pending change set of one aggregate and renders what changed
(old vs. new values, lifecycle and reference transitions) as a single
nested, deduplicated audit tree.
"""

__version__ = "0.1.0"
