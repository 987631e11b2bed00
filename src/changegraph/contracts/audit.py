"""Audit record contracts.

An audit record is a tree of AuditNode values. Each node carries its
AuditState, the identity (primary key) of the entity it describes and an
ordered mapping of entries. Entry values form a closed set:

- FieldAudit: one scalar field transition
- StructuralAudit: merged transitions of an embedded value object
- AuditNode: a single related entity
- list[AuditNode]: a collection navigation
- list[ReferenceTransition]: a foreign key that was re-pointed

These are strict contracts - invalid transitions crash at construction.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from changegraph.contracts.enums import AuditState, FieldState

# Reserved key under which a node's AuditState is rendered
AUDIT_STATE_KEY = "AuditState"


def values_equal(left: Any, right: Any) -> bool:
    """Compare two field values without ever raising.

    Values of incompatible shapes (or whose __eq__ raises, or returns
    something that is not truthy-evaluable) compare unequal, so a dubious
    comparison is reported as a modification instead of crashing.
    Signaling NaN decimals raise InvalidOperation, an ArithmeticError.
    """
    if left is right:
        return True
    try:
        return bool(left == right)
    except (TypeError, ValueError, ArithmeticError):
        return False


def _validate_enum(value: object, enum_type: type, field_name: str) -> None:
    if not isinstance(value, enum_type):
        raise TypeError(f"{field_name} must be {enum_type.__name__}, got {type(value).__name__}: {value!r}")


@dataclass(frozen=True, slots=True)
class FieldAudit:
    """Transition of one scalar field.

    ADDED carries only new_value, DELETED only old_value, MODIFIED both -
    and they must differ. Equal old/new is "no change" and has no record.
    """

    state: FieldState
    old_value: Any = None
    new_value: Any = None
    actor_id: Any = None

    def __post_init__(self) -> None:
        _validate_enum(self.state, FieldState, "state")
        if self.state is FieldState.ADDED and self.old_value is not None:
            raise ValueError(f"ADDED field audit cannot carry an old value, got {self.old_value!r}")
        if self.state is FieldState.DELETED and self.new_value is not None:
            raise ValueError(f"DELETED field audit cannot carry a new value, got {self.new_value!r}")
        if self.state is FieldState.MODIFIED and values_equal(self.old_value, self.new_value):
            raise ValueError(f"MODIFIED field audit requires differing values, got {self.old_value!r} twice")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"state": self.state}
        if self.state is not FieldState.ADDED:
            result["old_value"] = self.old_value
        if self.state is not FieldState.DELETED:
            result["new_value"] = self.new_value
        if self.actor_id is not None:
            result["actor_id"] = self.actor_id
        return result


def field_added(new_value: Any, actor_id: Any = None) -> FieldAudit:
    """Record a field that came into existence with new_value."""
    return FieldAudit(FieldState.ADDED, new_value=new_value, actor_id=actor_id)


def field_modified(old_value: Any, new_value: Any, actor_id: Any = None) -> FieldAudit:
    """Record a field whose value changed from old_value to new_value."""
    return FieldAudit(FieldState.MODIFIED, old_value=old_value, new_value=new_value, actor_id=actor_id)


def field_deleted(old_value: Any, actor_id: Any = None) -> FieldAudit:
    """Record a field that was removed; old_value is its last known value."""
    return FieldAudit(FieldState.DELETED, old_value=old_value, actor_id=actor_id)


@dataclass(frozen=True, slots=True)
class ReferenceTransition:
    """A foreign key stopped (SEVERED) or started (ADDED) pointing at target."""

    state: AuditState
    target: Any

    def __post_init__(self) -> None:
        _validate_enum(self.state, AuditState, "state")
        if self.state not in (AuditState.REFERENCE_ADDED, AuditState.REFERENCE_SEVERED):
            raise ValueError(f"Reference transition state must be REFERENCE_ADDED or REFERENCE_SEVERED, got {self.state!r}")

    def to_dict(self) -> dict[str, Any]:
        return {AUDIT_STATE_KEY: self.state, "Id": self.target}


@dataclass(frozen=True, slots=True)
class StructuralAudit:
    """Merged field transitions of an embedded value object.

    Value objects have no lifecycle of their own, so there is no
    AuditState at this level - only whatever their fields report.
    """

    entries: Mapping[str, "FieldAudit | StructuralAudit"]

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError("StructuralAudit requires at least one entry; empty diffs are pruned")

    def __getitem__(self, name: str) -> "FieldAudit | StructuralAudit":
        return self.entries[name]

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def to_dict(self) -> dict[str, Any]:
        return {name: value.to_dict() for name, value in self.entries.items()}


AuditValue: TypeAlias = "FieldAudit | StructuralAudit | AuditNode | list[AuditNode] | list[ReferenceTransition]"


@dataclass(frozen=True)
class AuditNode:
    """One entity in the audit tree.

    keys echo the entity's primary key verbatim (the node's identity, not
    a diffable attribute). entries hold everything that changed.

    Indexing a node looks up entries first, then key fields, and the
    reserved AUDIT_STATE_KEY returns the state:

        node["AuditState"]   -> AuditState.MODIFIED
        node["id"]           -> "4f1c..."
        node["name"]         -> FieldAudit(MODIFIED, "Initial", "Changed")
    """

    state: AuditState
    keys: Mapping[str, Any]
    entries: Mapping[str, AuditValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_enum(self.state, AuditState, "state")
        overlap = set(self.keys) & set(self.entries)
        if overlap:
            raise ValueError(f"Entries shadow key fields: {sorted(overlap)}")

    @property
    def identity(self) -> Any:
        """Primary key value: a scalar for single keys, a tuple for composite keys."""
        values = tuple(self.keys.values())
        return values[0] if len(values) == 1 else values

    @property
    def has_changes(self) -> bool:
        return bool(self.entries)

    def __getitem__(self, name: str) -> Any:
        if name == AUDIT_STATE_KEY:
            return self.state
        if name in self.entries:
            return self.entries[name]
        return self.keys[name]

    def __contains__(self, name: object) -> bool:
        return name == AUDIT_STATE_KEY or name in self.entries or name in self.keys

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def to_dict(self) -> dict[str, Any]:
        """Render as the nested mapping shape of an audit record."""
        result: dict[str, Any] = {AUDIT_STATE_KEY: self.state}
        result.update(self.keys)
        for name, value in self.entries.items():
            result[name] = _value_to_dict(value)
        return result


def _value_to_dict(value: AuditValue) -> Any:
    if isinstance(value, list):
        return [item.to_dict() for item in value]
    return value.to_dict()
