"""ChangeTracker implementations.

- memory: plain Python handles with an explicit unit of work
- sqlalchemy: the pending changes of a SQLAlchemy ORM Session
"""

from changegraph.providers.memory import EntityModel, InMemoryChangeTracker, TrackedEntity
from changegraph.providers.sqlalchemy import (
    AggregateRoot,
    AssociationRow,
    SqlAlchemyChangeTracker,
    is_aggregate_root,
)

__all__ = [
    "AggregateRoot",
    "AssociationRow",
    "EntityModel",
    "InMemoryChangeTracker",
    "SqlAlchemyChangeTracker",
    "TrackedEntity",
    "is_aggregate_root",
]
