"""Lifecycle states, audit classifications and relationship kinds.

All enums are StrEnum so audit records render them as their value
without a custom encoder.
"""

from enum import StrEnum


class ChangeState(StrEnum):
    """Lifecycle state of a tracked entity, as reported by a ChangeTracker."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    DETACHED = "detached"


class AuditState(StrEnum):
    """Classification carried by every audit node.

    REFERENCE_ADDED and REFERENCE_SEVERED only appear on edges that cross
    an aggregate boundary; everything else is derived from ChangeState.
    """

    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"
    REFERENCE_ADDED = "reference_added"
    REFERENCE_SEVERED = "reference_severed"
    DETACHED = "detached"


class FieldState(StrEnum):
    """Transition recorded for a single scalar field."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class RelationshipKind(StrEnum):
    """How a relationship's targets relate to the aggregate being audited.

    Values:
        OWNERSHIP: Targets are lifecycle-bound to the parent; fully diffed
        REFERENCE: Targets are independent aggregate roots; identity only
        ASSOCIATION: Many-to-many join rows; identity and lifecycle only
    """

    OWNERSHIP = "ownership"
    REFERENCE = "reference"
    ASSOCIATION = "association"


class KeyDirection(StrEnum):
    """Which side of a relationship holds the foreign key.

    Values:
        DEPENDENT: The target entities hold a FK to the parent's key
        PRINCIPAL: The parent holds a FK to the target's primary key
    """

    DEPENDENT = "dependent"
    PRINCIPAL = "principal"


_AUDIT_STATE_BY_CHANGE_STATE: dict[ChangeState, AuditState] = {
    ChangeState.ADDED: AuditState.ADDED,
    ChangeState.DELETED: AuditState.DELETED,
    ChangeState.MODIFIED: AuditState.MODIFIED,
    # An unchanged node only survives pruning when something beneath it
    # changed, so from the audit's point of view the aggregate was modified.
    ChangeState.UNCHANGED: AuditState.MODIFIED,
    ChangeState.DETACHED: AuditState.DETACHED,
}


def audit_state_for(state: ChangeState) -> AuditState:
    """Map a tracked entity's ChangeState to the AuditState of its node."""
    return _AUDIT_STATE_BY_CHANGE_STATE[state]
