"""Change-tracking provider contract.

The engine never inspects entities directly. Everything it knows about
an entity - lifecycle state, field values, relationship metadata, keys -
comes through a ChangeTracker. Providers adapt a concrete unit of work
(an ORM session, an in-memory store) to this interface.

Providers MUST return a stable snapshot for the duration of one
create_audit_log() call. The engine only reads; it never mutates entities.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from changegraph.contracts.enums import ChangeState, KeyDirection, RelationshipKind


@dataclass(frozen=True, slots=True)
class KeyPart:
    """One named component of a (possibly composite) primary key."""

    name: str
    value: Any


@dataclass(frozen=True, slots=True)
class ScalarField:
    """Old/new values of one scalar field of a tracked entity.

    state overrides the owning entity's ChangeState for this field only.
    Providers use it inside structural fields to report a wholesale
    replacement as deleted (old value) plus added (new value) entries
    sharing the same name.
    """

    name: str
    is_primary_key: bool = False
    is_foreign_key: bool = False
    was_modified: bool = False
    old_value: Any = None
    new_value: Any = None
    state: ChangeState | None = None


@dataclass(frozen=True, slots=True)
class StructuralField:
    """An embedded value object: scalar fields plus nested value objects."""

    name: str
    scalar_fields: tuple[ScalarField, ...] = ()
    nested: tuple["StructuralField", ...] = ()


@dataclass(frozen=True, slots=True)
class RelationshipMeta:
    """Navigation from an entity type to a related entity type.

    Attributes:
        name: Navigation name, used as the key in the parent's audit node
        target_type: Type handle passed back to find_tracked_entities()
        is_collection: True for one-to-many / many-to-many navigations
        kind: Ownership, reference or association (decides how far to diff)
        foreign_key: FK field names. On the target for DEPENDENT direction,
            on the parent for PRINCIPAL direction
        principal_key: Key field names the FK points at. Empty means the
            primary key of the principal side, in key order
        direction: Which side holds the foreign key
    """

    name: str
    target_type: Any
    is_collection: bool
    kind: RelationshipKind
    foreign_key: tuple[str, ...]
    principal_key: tuple[str, ...] = field(default=())
    direction: KeyDirection = KeyDirection.DEPENDENT


@runtime_checkable
class ChangeTracker(Protocol):
    """Read-only view of a pending change set.

    Example:
        tracker = SqlAlchemyChangeTracker(session)
        record = AuditLogger(tracker).create_audit_log(order)
    """

    def get_state(self, entity: Any) -> ChangeState:
        """Lifecycle state of entity. Untracked entities are DETACHED."""
        ...

    def get_entity_type(self, entity: Any) -> Any:
        """Type handle of entity, as accepted by get_relationships()."""
        ...

    def get_scalar_fields(self, entity: Any) -> Sequence[ScalarField]:
        """Scalar fields of entity, including key and foreign key fields."""
        ...

    def get_structural_fields(self, entity: Any) -> Sequence[StructuralField]:
        """Embedded value objects of entity."""
        ...

    def get_relationships(self, entity_type: Any) -> Sequence[RelationshipMeta]:
        """Navigations declared on entity_type."""
        ...

    def find_tracked_entities(self, entity_type: Any) -> Sequence[Any]:
        """All tracked entities of entity_type, whatever their state."""
        ...

    def get_primary_key(self, entity: Any) -> Sequence[KeyPart]:
        """Primary key of entity, in key order (composite-aware)."""
        ...
