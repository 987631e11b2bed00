# src/changegraph/engine/differs.py
"""Field-level differs: scalar values, embedded value objects, foreign keys.

All three are pure functions over provider data. They return None (or
an empty result) for "no change"; the entity builder prunes on that.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from changegraph.contracts.audit import (
    FieldAudit,
    ReferenceTransition,
    StructuralAudit,
    field_added,
    field_deleted,
    field_modified,
    values_equal,
)
from changegraph.contracts.enums import AuditState, ChangeState
from changegraph.contracts.tracking import ScalarField, StructuralField


def diff_field(
    state: ChangeState,
    field: ScalarField,
    *,
    record_deletion: bool,
    actor_id: Any = None,
) -> FieldAudit | None:
    """Classify one scalar field's transition.

    Primary and foreign key fields never come through here; the caller
    echoes keys verbatim and routes foreign keys to diff_reference().

    Args:
        state: ChangeState of the owning entity (overridden by field.state)
        field: Old/new values reported by the provider
        record_deletion: Whether a deleted field records its last value.
            True for value objects, whose last known value is otherwise lost
        actor_id: Caller-supplied identity stamped on the record

    Returns:
        FieldAudit, or None when the field did not change
    """
    effective = field.state if field.state is not None else state

    if effective is ChangeState.ADDED:
        # Existence is the change: emitted even for empty/default values
        return field_added(field.new_value, actor_id)

    if effective is ChangeState.DELETED:
        if not record_deletion:
            return None
        return field_deleted(field.old_value, actor_id)

    if effective is ChangeState.MODIFIED:
        if not field.was_modified or values_equal(field.old_value, field.new_value):
            return None
        return field_modified(field.old_value, field.new_value, actor_id)

    return None


def reconcile_replacement(fields: tuple[ScalarField, ...]) -> list[ScalarField]:
    """Pair deleted-old/added-new halves of a replaced value object.

    A wholesale replacement of an immutable value object is reported by
    providers as every old field DELETED plus every new field ADDED. Each
    name that appears in both halves becomes one MODIFIED field carrying
    the old and new value; unpaired halves pass through unchanged.
    Provider order is preserved (by first occurrence of each name).
    """
    deleted: dict[str, ScalarField] = {}
    added: dict[str, ScalarField] = {}
    for field in fields:
        if field.state is ChangeState.DELETED:
            deleted[field.name] = field
        elif field.state is ChangeState.ADDED:
            added[field.name] = field

    paired = deleted.keys() & added.keys()
    result: list[ScalarField] = []
    emitted: set[str] = set()
    for field in fields:
        if field.name not in paired:
            result.append(field)
            continue
        if field.name in emitted:
            continue
        emitted.add(field.name)
        result.append(
            ScalarField(
                name=field.name,
                was_modified=True,
                old_value=deleted[field.name].old_value,
                new_value=added[field.name].new_value,
                state=ChangeState.MODIFIED,
            )
        )
    return result


def diff_structural(
    structure: StructuralField,
    state: ChangeState,
    *,
    record_deletion: bool,
    actor_id: Any = None,
) -> StructuralAudit | None:
    """Diff an embedded value object, recursing into nested value objects.

    Returns:
        StructuralAudit holding every non-empty child diff, or None when
        no scalar and no nested value object changed
    """
    entries: dict[str, FieldAudit | StructuralAudit] = {}

    for field in reconcile_replacement(structure.scalar_fields):
        audit = diff_field(state, field, record_deletion=record_deletion, actor_id=actor_id)
        if audit is not None:
            entries[field.name] = audit

    for nested in structure.nested:
        nested_audit = diff_structural(nested, state, record_deletion=record_deletion, actor_id=actor_id)
        if nested_audit is not None:
            entries[nested.name] = nested_audit

    if not entries:
        return None
    return StructuralAudit(entries)


def is_empty_identity(value: Any) -> bool:
    """True for identities that point at nothing.

    None, empty strings, the nil UUID, and empty or all-None composite keys.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, UUID):
        return value.int == 0
    if isinstance(value, tuple | list):
        return all(is_empty_identity(part) for part in value)
    return False


def diff_reference(field: ScalarField) -> list[ReferenceTransition] | None:
    """Diff a foreign key field into reference transitions.

    Emits REFERENCE_SEVERED for the old target and REFERENCE_ADDED for the
    new one, each only when non-empty and different from the other side.
    Both carry differing identities, so the same target can never be
    severed and added in one call.

    Returns:
        Zero to two transitions (severed first), or None when the field
        was not modified or nothing changed
    """
    if not field.was_modified:
        return None

    old, new = field.old_value, field.new_value
    if values_equal(old, new):
        return None

    transitions: list[ReferenceTransition] = []
    if not is_empty_identity(old):
        transitions.append(ReferenceTransition(AuditState.REFERENCE_SEVERED, old))
    if not is_empty_identity(new):
        transitions.append(ReferenceTransition(AuditState.REFERENCE_ADDED, new))
    return transitions or None
