"""Audit engine: traversal, entity builder, relationship auditors and differs."""

from changegraph.engine.auditor import AuditLogger, keys_match
from changegraph.engine.context import AuditContext
from changegraph.engine.differs import (
    diff_field,
    diff_reference,
    diff_structural,
    is_empty_identity,
    reconcile_replacement,
)

__all__ = [
    "AuditContext",
    "AuditLogger",
    "diff_field",
    "diff_reference",
    "diff_structural",
    "is_empty_identity",
    "keys_match",
    "reconcile_replacement",
]
