# src/changegraph/providers/memory.py
"""In-memory change tracker.

A ChangeTracker over plain Python handles, for callers without an ORM
and for tests. Lifecycle mirrors a unit of work:

    tracker = InMemoryChangeTracker([order_model, line_model])
    order = tracker.add("Order", id=1, status="new")
    tracker.accept_changes()          # like a commit: everything UNCHANGED
    order.set("status", "shipped")    # now MODIFIED, status was_modified

Value objects are plain mappings (nested mappings are nested value
objects). Assigning a whole value object replaces it; assigning a dotted
path ("price.amount") edits it in place.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from changegraph.contracts.enums import ChangeState
from changegraph.contracts.errors import ProviderContractError
from changegraph.contracts.tracking import KeyPart, RelationshipMeta, ScalarField, StructuralField


@dataclass(frozen=True)
class EntityModel:
    """Metadata for one entity type.

    Attributes:
        name: Type name; used as RelationshipMeta.target_type
        primary_key: Key field names, in key order
        foreign_keys: Names of foreign-key-shaped scalar fields
        structural: Names of value-object fields, in declaration order
        relationships: Navigations declared on this type
    """

    name: str
    primary_key: tuple[str, ...]
    foreign_keys: frozenset[str] = field(default_factory=frozenset)
    structural: tuple[str, ...] = ()
    relationships: tuple[RelationshipMeta, ...] = ()


class TrackedEntity:
    """Handle for one entity tracked by an InMemoryChangeTracker."""

    def __init__(self, model: EntityModel, values: Mapping[str, Any], state: ChangeState) -> None:
        self.model = model
        self.state = state
        self.current: dict[str, Any] = copy.deepcopy(dict(values))
        self.original: dict[str, Any] = {} if state is ChangeState.ADDED else copy.deepcopy(self.current)
        self.modified: set[str] = set()
        self.replaced: set[str] = set()

    def __repr__(self) -> str:
        key = ", ".join(f"{name}={self.current.get(name)!r}" for name in self.model.primary_key)
        return f"<{self.model.name} {key} {self.state.value}>"

    def __getitem__(self, path: str) -> Any:
        value: Any = self.current
        for part in path.split("."):
            value = value[part]
        return value

    def set(self, path: str, value: Any) -> None:
        """Assign a field. Dotted paths address fields inside value objects."""
        if self.state is ChangeState.DELETED:
            raise ValueError(f"Cannot modify deleted entity {self!r}")
        parts = path.split(".")
        container = self.current
        for part in parts[:-1]:
            nested = container.get(part)
            if not isinstance(nested, dict):
                raise KeyError(f"{path!r}: {part!r} is not a value object on {self!r}")
            container = nested
        container[parts[-1]] = copy.deepcopy(value)
        if len(parts) == 1 and path in self.model.structural:
            self.replaced.add(path)
        self.mark_modified(path)

    def mark_modified(self, path: str) -> None:
        """Flag a field as touched, whether or not its value changed."""
        self.modified.add(path)
        if self.state is ChangeState.UNCHANGED:
            self.state = ChangeState.MODIFIED


class InMemoryChangeTracker:
    """ChangeTracker over TrackedEntity handles."""

    def __init__(self, models: Iterable[EntityModel] = ()) -> None:
        self._models: dict[str, EntityModel] = {}
        self._entities: list[TrackedEntity] = []
        for model in models:
            self.register(model)

    def register(self, model: EntityModel) -> EntityModel:
        self._models[model.name] = model
        return model

    def model(self, name: str) -> EntityModel:
        try:
            return self._models[name]
        except KeyError:
            raise ProviderContractError("entity type is not registered", entity_type=name) from None

    # === Unit of work ===

    def add(self, model_name: str, **values: Any) -> TrackedEntity:
        """Track a new entity (ADDED)."""
        return self._track(TrackedEntity(self.model(model_name), values, ChangeState.ADDED))

    def attach(self, model_name: str, **values: Any) -> TrackedEntity:
        """Track an existing entity (UNCHANGED)."""
        return self._track(TrackedEntity(self.model(model_name), values, ChangeState.UNCHANGED))

    def remove(self, entity: TrackedEntity) -> None:
        """Delete an entity. A never-saved entity simply stops being tracked."""
        if entity.state is ChangeState.ADDED:
            self._untrack(entity)
            return
        entity.current = copy.deepcopy(entity.original)
        entity.modified.clear()
        entity.replaced.clear()
        entity.state = ChangeState.DELETED

    def accept_changes(self) -> None:
        """Make the current values the new baseline, like a successful commit."""
        for entity in list(self._entities):
            if entity.state is ChangeState.DELETED:
                self._untrack(entity)
                continue
            entity.original = copy.deepcopy(entity.current)
            entity.modified.clear()
            entity.replaced.clear()
            entity.state = ChangeState.UNCHANGED

    def _track(self, entity: TrackedEntity) -> TrackedEntity:
        self._entities.append(entity)
        return entity

    def _untrack(self, entity: TrackedEntity) -> None:
        self._entities = [e for e in self._entities if e is not entity]
        entity.state = ChangeState.DETACHED

    def _is_tracked(self, entity: Any) -> bool:
        return any(e is entity for e in self._entities)

    # === ChangeTracker protocol ===

    def get_state(self, entity: Any) -> ChangeState:
        if not isinstance(entity, TrackedEntity) or not self._is_tracked(entity):
            return ChangeState.DETACHED
        return entity.state

    def get_entity_type(self, entity: Any) -> str:
        if not isinstance(entity, TrackedEntity):
            raise ProviderContractError(f"not a tracked entity handle: {entity!r}")
        return entity.model.name

    def get_scalar_fields(self, entity: TrackedEntity) -> Sequence[ScalarField]:
        model = entity.model
        names = [name for name in _ordered_union(entity.original, entity.current) if name not in model.structural]
        return [
            ScalarField(
                name=name,
                is_primary_key=name in model.primary_key,
                is_foreign_key=name in model.foreign_keys,
                was_modified=entity.state is ChangeState.MODIFIED and name in entity.modified,
                old_value=entity.original.get(name),
                new_value=entity.current.get(name),
            )
            for name in names
        ]

    def get_structural_fields(self, entity: TrackedEntity) -> Sequence[StructuralField]:
        modified = entity.modified if entity.state is ChangeState.MODIFIED else set()
        return [
            _structure(
                name,
                entity.original.get(name),
                entity.current.get(name),
                replaced=name in entity.replaced,
                modified=modified,
                path=name,
            )
            for name in entity.model.structural
        ]

    def get_relationships(self, entity_type: Any) -> Sequence[RelationshipMeta]:
        return self.model(entity_type).relationships

    def find_tracked_entities(self, entity_type: Any) -> Sequence[TrackedEntity]:
        return [entity for entity in self._entities if entity.model.name == entity_type]

    def get_primary_key(self, entity: TrackedEntity) -> Sequence[KeyPart]:
        return [KeyPart(name, entity.current.get(name)) for name in entity.model.primary_key]


def _ordered_union(first: Mapping[str, Any] | None, second: Mapping[str, Any] | None) -> list[str]:
    names = list(first or {})
    names.extend(name for name in (second or {}) if name not in (first or {}))
    return names


def _structure(
    name: str,
    old: Mapping[str, Any] | None,
    new: Mapping[str, Any] | None,
    *,
    replaced: bool,
    modified: set[str],
    path: str,
) -> StructuralField:
    """Build the StructuralField for one value object.

    A replaced value object reports its old fields as DELETED and its new
    fields as ADDED; the structural differ pairs them back up.
    """
    scalars: list[ScalarField] = []
    nested: list[StructuralField] = []
    old = old or {}
    new = new or {}

    for key in _ordered_union(old, new):
        child_path = f"{path}.{key}"
        old_value, new_value = old.get(key), new.get(key)
        if isinstance(old_value, Mapping) or isinstance(new_value, Mapping):
            nested.append(
                _structure(
                    key,
                    old_value if isinstance(old_value, Mapping) else None,
                    new_value if isinstance(new_value, Mapping) else None,
                    replaced=replaced or child_path in modified,
                    modified=modified,
                    path=child_path,
                )
            )
        elif replaced:
            if key in old:
                scalars.append(ScalarField(key, old_value=old_value, state=ChangeState.DELETED))
            if key in new:
                scalars.append(ScalarField(key, new_value=new_value, state=ChangeState.ADDED))
        else:
            scalars.append(
                ScalarField(
                    key,
                    was_modified=child_path in modified,
                    old_value=old_value,
                    new_value=new_value,
                )
            )

    return StructuralField(name, tuple(scalars), tuple(nested))
