# src/changegraph/engine/context.py
"""Per-call traversal state.

One AuditContext is created for every create_audit_log() call and passed
down the recursion. It is never stored on the AuditLogger, so a single
logger instance can serve concurrent calls.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class AuditContext:
    """Visited set plus bookkeeping for one traversal.

    The visited set is keyed by object identity, not equality: two
    distinct entities that compare equal are still two nodes. Visited
    entities are held strongly until the call ends so their id() cannot
    be recycled mid-traversal.
    """

    actor_id: Any = None
    audit_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    nodes_emitted: int = 0
    _visited: dict[int, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self.log = logger.bind(audit_id=self.audit_id)

    def has_visited(self, entity: Any) -> bool:
        return id(entity) in self._visited

    def mark_visited(self, entity: Any) -> None:
        self._visited[id(entity)] = entity

    @property
    def visited_count(self) -> int:
        return len(self._visited)
