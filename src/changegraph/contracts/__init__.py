"""Shared contracts: enums, audit record types, provider protocol, errors."""

from changegraph.contracts.audit import (
    AUDIT_STATE_KEY,
    AuditNode,
    AuditValue,
    FieldAudit,
    ReferenceTransition,
    StructuralAudit,
    field_added,
    field_deleted,
    field_modified,
    values_equal,
)
from changegraph.contracts.enums import (
    AuditState,
    ChangeState,
    FieldState,
    KeyDirection,
    RelationshipKind,
    audit_state_for,
)
from changegraph.contracts.errors import (
    ChangeGraphError,
    ProviderContractError,
    SettingsError,
)
from changegraph.contracts.tracking import (
    ChangeTracker,
    KeyPart,
    RelationshipMeta,
    ScalarField,
    StructuralField,
)

__all__ = [
    "AUDIT_STATE_KEY",
    "AuditNode",
    "AuditState",
    "AuditValue",
    "ChangeGraphError",
    "ChangeState",
    "ChangeTracker",
    "FieldAudit",
    "FieldState",
    "KeyDirection",
    "KeyPart",
    "ProviderContractError",
    "ReferenceTransition",
    "RelationshipKind",
    "RelationshipMeta",
    "ScalarField",
    "SettingsError",
    "StructuralAudit",
    "StructuralField",
    "audit_state_for",
    "field_added",
    "field_deleted",
    "field_modified",
    "values_equal",
]
