# src/changegraph/providers/sqlalchemy.py
"""SQLAlchemy ORM change tracker.

Adapts the pending unit of work of a SQLAlchemy 2.0 Session to the
ChangeTracker contract. The snapshot is taken once, at construction,
with autoflush disabled: construct the tracker after making changes and
before flushing them.

Mapping conventions:
- Lifecycle: pending -> ADDED; deleted (explicitly, or a delete-orphan
  removed from its owning collection) -> DELETED; persistent with net
  attribute changes -> MODIFIED; transient/detached -> DETACHED.
- Value objects: composite() attributes. Replacing a composite reports
  the old value's fields as DELETED and the new value's as ADDED.
- Relationship kinds: secondary many-to-many -> ASSOCIATION (join rows
  are synthesised from collection history); target is an AggregateRoot
  -> REFERENCE; target keyed only by foreign keys (association object)
  -> ASSOCIATION; delete cascade -> OWNERSHIP; anything else -> REFERENCE.

The ORM only synchronises foreign keys at flush, so FK values of
children are derived from pending collection membership.

Expired attributes that were not changed are reloaded at construction.
An attribute assigned while it was expired (for example after a commit
on a default Session) has no known old value and raises
ProviderContractError; load or refresh objects before changing them.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import Column, Table, inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper, RelationshipDirection, RelationshipProperty, Session
from sqlalchemy.orm.attributes import History, get_history

from changegraph.contracts.audit import values_equal
from changegraph.contracts.enums import ChangeState, KeyDirection, RelationshipKind
from changegraph.contracts.errors import ProviderContractError
from changegraph.contracts.tracking import KeyPart, RelationshipMeta, ScalarField, StructuralField

logger = structlog.get_logger(__name__)


class AggregateRoot:
    """Marker mixin for mapped classes that are independent aggregate roots.

    Relationships pointing at an aggregate root are references: the audit
    records identity and reference transitions only. Classes that cannot
    use the mixin may set __aggregate_root__ = True instead.
    """

    __aggregate_root__ = True


def is_aggregate_root(cls: type) -> bool:
    return bool(getattr(cls, "__aggregate_root__", False))


@dataclass(eq=False)
class AssociationRow:
    """A row of a secondary (many-to-many) table, synthesised from collection history."""

    table: Table
    keys: tuple[KeyPart, ...]
    state: ChangeState

    def __repr__(self) -> str:
        key = ", ".join(f"{part.name}={part.value!r}" for part in self.keys)
        return f"<AssociationRow {self.table.name} {key} {self.state.value}>"


@dataclass
class _Snapshot:
    state: ChangeState
    keys: tuple[KeyPart, ...]
    scalars: tuple[ScalarField, ...]
    structures: tuple[StructuralField, ...]


class SqlAlchemyChangeTracker:
    """ChangeTracker over the pending changes of a Session."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._relationships: dict[type, tuple[RelationshipMeta, ...]] = {}
        with session.no_autoflush:
            self._objects = self._collect_objects()
            self._unloaded = self._load_committed_state()
            self._derived_fks, self._orphans = self._derive_foreign_keys()
            self._snapshots = {id(obj): self._snapshot(obj) for obj in self._objects}
            self._rows = self._collect_association_rows()
        logger.debug(
            "change_snapshot_taken",
            objects=len(self._objects),
            association_rows=len(self._rows),
            orphans=len(self._orphans),
        )

    # === ChangeTracker protocol ===

    def get_state(self, entity: Any) -> ChangeState:
        if isinstance(entity, AssociationRow):
            return entity.state
        snapshot = self._snapshots.get(id(entity))
        return snapshot.state if snapshot is not None else ChangeState.DETACHED

    def get_entity_type(self, entity: Any) -> Any:
        if isinstance(entity, AssociationRow):
            return entity.table
        return type(entity)

    def get_scalar_fields(self, entity: Any) -> Sequence[ScalarField]:
        if isinstance(entity, AssociationRow):
            return [
                ScalarField(part.name, is_primary_key=True, is_foreign_key=True, old_value=part.value, new_value=part.value)
                for part in entity.keys
            ]
        return self._require_snapshot(entity).scalars

    def get_structural_fields(self, entity: Any) -> Sequence[StructuralField]:
        if isinstance(entity, AssociationRow):
            return ()
        return self._require_snapshot(entity).structures

    def get_relationships(self, entity_type: Any) -> Sequence[RelationshipMeta]:
        if isinstance(entity_type, Table):
            return ()
        cached = self._relationships.get(entity_type)
        if cached is None:
            mapper = _mapper_for(entity_type)
            cached = tuple(_describe(rel, mapper) for rel in _relationships_of(mapper))
            self._relationships[entity_type] = cached
        return cached

    def find_tracked_entities(self, entity_type: Any) -> Sequence[Any]:
        if isinstance(entity_type, Table):
            return [row for row in self._rows if row.table is entity_type]
        return [obj for obj in self._objects if isinstance(obj, entity_type)]

    def get_primary_key(self, entity: Any) -> Sequence[KeyPart]:
        if isinstance(entity, AssociationRow):
            return entity.keys
        snapshot = self._snapshots.get(id(entity))
        if snapshot is not None:
            return snapshot.keys
        with self._session.no_autoflush:
            return _primary_key(entity)

    # === Snapshot ===

    def _require_snapshot(self, entity: Any) -> _Snapshot:
        snapshot = self._snapshots.get(id(entity))
        if snapshot is None:
            raise ProviderContractError(f"entity is not tracked by this session: {entity!r}", entity_type=type(entity))
        return snapshot

    def _collect_objects(self) -> list[Any]:
        # session.deleted objects stay in the identity map until flush
        seen: dict[int, Any] = {}
        for obj in [*self._session.identity_map.values(), *self._session.new]:
            seen.setdefault(id(obj), obj)
        return list(seen.values())

    def _load_committed_state(self) -> dict[int, set[str]]:
        """Reload expired column attributes; return those changed while expired.

        Must run before anything reads an attribute: the first read of an
        expired object reloads it and forgets which keys were expired. An
        attribute assigned while expired has no known committed value.
        """
        unloaded: dict[int, set[str]] = {}
        for obj in self._objects:
            insp = inspect(obj)
            if not insp.persistent or not insp.expired_attributes:
                continue
            expired = insp.expired_attributes & {prop.key for prop in insp.mapper.column_attrs}
            stale = expired & insp.unmodified
            if expired - stale:
                unloaded[id(obj)] = expired - stale
            if stale:
                self._session.refresh(obj, attribute_names=sorted(stale))
        return unloaded

    def _derive_foreign_keys(self) -> tuple[dict[int, dict[str, Any]], set[int]]:
        """FK values implied by pending relationship changes, plus delete-orphans.

        Many-to-one assignments are applied first; collection membership
        overrides them. A child removed from one collection has moved if it
        was placed in another collection of the same relationship, or if its
        own many-to-one now points at another parent (whose collection may
        never have been loaded). An orphan keeps its committed FK: it is
        deleted from under its old parent.
        """
        derived: dict[int, dict[str, Any]] = {}
        assigned: dict[int, dict[str, Any]] = {}
        removed: list[tuple[Any, RelationshipProperty[Any]]] = []
        placed: set[tuple[int, RelationshipProperty[Any]]] = set()

        for obj in self._objects:
            state = inspect(obj)
            for rel in _relationships_of(state.mapper):
                if rel.secondary is not None or rel.direction is not RelationshipDirection.MANYTOONE:
                    continue
                history = state.attrs[rel.key].history
                if not history.has_changes():
                    continue
                target = next((item for item in history.added if item is not None), None)
                for local, remote in rel.local_remote_pairs:
                    key = state.mapper.get_property_by_column(local).key
                    value = None if target is None else _column_value(target, remote)
                    derived.setdefault(id(obj), {})[key] = value
                    assigned.setdefault(id(obj), {})[key] = value

        for obj in self._objects:
            state = inspect(obj)
            for rel in _relationships_of(state.mapper):
                if rel.secondary is not None or rel.direction is not RelationshipDirection.ONETOMANY:
                    continue
                history = state.attrs[rel.key].history
                removed.extend((child, rel) for child in history.deleted if child is not None)
                for child in (*history.unchanged, *history.added):
                    if child is None:
                        continue
                    placed.add((id(child), rel))
                    for local, remote in rel.local_remote_pairs:
                        key = rel.mapper.get_property_by_column(remote).key
                        derived.setdefault(id(child), {})[key] = _column_value(obj, local)

        orphans: set[int] = set()
        for child, rel in removed:
            if (id(child), rel) in placed:
                continue
            fk_keys = [rel.mapper.get_property_by_column(remote).key for _, remote in rel.local_remote_pairs]
            parent = assigned.get(id(child), {})
            if all(parent.get(key) is not None for key in fk_keys):
                continue
            if rel.cascade.delete_orphan:
                orphans.add(id(child))
                continue
            for key in fk_keys:
                derived.setdefault(id(child), {})[key] = None

        for orphan in orphans:
            derived.pop(orphan, None)
        return derived, orphans

    def _snapshot(self, obj: Any) -> _Snapshot:
        insp = inspect(obj)
        if insp.transient or insp.detached:
            return _Snapshot(ChangeState.DETACHED, (), (), ())

        if insp.pending:
            state = ChangeState.ADDED
        elif insp.deleted or obj in self._session.deleted or id(obj) in self._orphans:
            state = ChangeState.DELETED
        else:
            state = ChangeState.UNCHANGED

        scalars = self._scalar_fields(obj, insp.mapper, state)
        unloaded = self._unloaded.get(id(obj), set())
        structures = tuple(_composite_structure(obj, prop, state, unloaded) for prop in insp.mapper.composites)

        if state is ChangeState.UNCHANGED and (
            any(field.was_modified for field in scalars) or self._session.is_modified(obj, include_collections=False)
        ):
            state = ChangeState.MODIFIED

        # Association objects are keyed by FKs the ORM has not synchronised yet
        derived = self._derived_fks.get(id(obj), {})
        keys = tuple(KeyPart(part.name, derived.get(part.name, part.value)) for part in _primary_key(obj))
        return _Snapshot(state, keys, scalars, structures)

    def _scalar_fields(self, obj: Any, mapper: Mapper[Any], state: ChangeState) -> tuple[ScalarField, ...]:
        composite_keys = {mapper.get_property_by_column(column).key for prop in mapper.composites for column in prop.columns}
        derived = self._derived_fks.get(id(obj), {})
        unloaded = self._unloaded.get(id(obj), set())
        fields: list[ScalarField] = []
        for prop in mapper.column_attrs:
            column = prop.columns[0]
            if prop.key in composite_keys or not isinstance(column, Column):
                continue
            old, new, modified = _committed_values(obj, prop.key, unloaded)
            if prop.key in derived:
                new = derived[prop.key]
                modified = not values_equal(old, new)
            if state is ChangeState.ADDED:
                old, modified = None, False
            fields.append(
                ScalarField(
                    name=prop.key,
                    is_primary_key=bool(column.primary_key),
                    is_foreign_key=bool(column.foreign_keys),
                    was_modified=modified,
                    old_value=old,
                    new_value=new,
                )
            )
        return tuple(fields)

    def _collect_association_rows(self) -> list[AssociationRow]:
        """Join rows of secondary tables, one per (table, key) pair.

        Both sides of a bidirectional many-to-many report the same row; the
        first report that carries a change wins. Rows owned by a deleted
        entity are deleted with it.
        """
        rows: dict[tuple[str, tuple[tuple[str, Any], ...]], AssociationRow] = {}
        for obj in self._objects:
            insp = inspect(obj)
            owner_deleted = self.get_state(obj) is ChangeState.DELETED
            for rel in _relationships_of(insp.mapper):
                if rel.secondary is None:
                    continue
                history = insp.attrs[rel.key].history
                reports = (
                    (history.added, ChangeState.ADDED),
                    (history.deleted, ChangeState.DELETED),
                    (history.unchanged, ChangeState.DELETED if owner_deleted else ChangeState.UNCHANGED),
                )
                for targets, state in reports:
                    for target in targets:
                        if target is None:
                            continue
                        row = _association_row(rel, obj, target, state)
                        identity = (row.table.name, tuple((part.name, part.value) for part in row.keys))
                        existing = rows.get(identity)
                        if existing is None or (existing.state is ChangeState.UNCHANGED and state is not ChangeState.UNCHANGED):
                            rows[identity] = row
        return list(rows.values())


# === Metadata helpers ===


def _mapper_for(entity_type: Any) -> Mapper[Any]:
    try:
        mapper: Mapper[Any] = inspect(entity_type)
    except NoInspectionAvailable:
        raise ProviderContractError("not a mapped class", entity_type=entity_type) from None
    return mapper


def _relationships_of(mapper: Mapper[Any]) -> list[RelationshipProperty[Any]]:
    return [rel for rel in mapper.relationships if not rel.viewonly]


def _is_association_object(mapper: Mapper[Any]) -> bool:
    primary_key = mapper.primary_key
    return len(primary_key) > 1 and all(column.foreign_keys for column in primary_key)


def _classify(rel: RelationshipProperty[Any]) -> RelationshipKind:
    target = rel.mapper
    if is_aggregate_root(target.class_):
        return RelationshipKind.REFERENCE
    if _is_association_object(target):
        return RelationshipKind.ASSOCIATION
    if rel.cascade.delete or rel.cascade.delete_orphan:
        return RelationshipKind.OWNERSHIP
    return RelationshipKind.REFERENCE


def _describe(rel: RelationshipProperty[Any], mapper: Mapper[Any]) -> RelationshipMeta:
    if rel.secondary is not None:
        return RelationshipMeta(
            name=rel.key,
            target_type=rel.secondary,
            is_collection=True,
            kind=RelationshipKind.ASSOCIATION,
            foreign_key=tuple(secondary.name for _, secondary in rel.synchronize_pairs),
            principal_key=tuple(mapper.get_property_by_column(local).key for local, _ in rel.synchronize_pairs),
        )

    target = rel.mapper
    pairs = rel.local_remote_pairs
    if rel.direction is RelationshipDirection.MANYTOONE:
        return RelationshipMeta(
            name=rel.key,
            target_type=target.class_,
            is_collection=bool(rel.uselist),
            kind=_classify(rel),
            foreign_key=tuple(mapper.get_property_by_column(local).key for local, _ in pairs),
            principal_key=tuple(target.get_property_by_column(remote).key for _, remote in pairs),
            direction=KeyDirection.PRINCIPAL,
        )
    return RelationshipMeta(
        name=rel.key,
        target_type=target.class_,
        is_collection=bool(rel.uselist),
        kind=_classify(rel),
        foreign_key=tuple(target.get_property_by_column(remote).key for _, remote in pairs),
        principal_key=tuple(mapper.get_property_by_column(local).key for local, _ in pairs),
    )


# === Value helpers ===


def _column_value(obj: Any, column: Any) -> Any:
    return getattr(obj, inspect(obj).mapper.get_property_by_column(column).key)


def _primary_key(obj: Any) -> list[KeyPart]:
    mapper = inspect(obj).mapper
    parts: list[KeyPart] = []
    for column in mapper.primary_key:
        key = mapper.get_property_by_column(column).key
        parts.append(KeyPart(key, getattr(obj, key)))
    return parts


def _history_values(history: History) -> tuple[Any, Any, bool]:
    """(old, new, was_modified) from an attribute History."""
    if history.added:
        old = history.deleted[0] if history.deleted else None
        return old, history.added[0], True
    if history.deleted:
        return history.deleted[0], None, True
    current = history.unchanged[0] if history.unchanged else None
    return current, current, False


def _committed_values(obj: Any, key: str, unloaded: set[str]) -> tuple[Any, Any, bool]:
    if key in unloaded:
        raise ProviderContractError(
            f"committed value of {key!r} was not loaded before it changed; load or refresh the object first",
            entity_type=type(obj),
        )
    return _history_values(get_history(obj, key))


def _association_row(rel: RelationshipProperty[Any], parent: Any, target: Any, state: ChangeState) -> AssociationRow:
    secondary = rel.secondary
    if not isinstance(secondary, Table):
        raise ProviderContractError(f"secondary of {rel.key!r} is not a Table", entity_type=type(parent))
    values: dict[str, Any] = {}
    for local, column in rel.synchronize_pairs:
        values[column.name] = _column_value(parent, local)
    for remote, column in rel.secondary_synchronize_pairs or ():
        values[column.name] = _column_value(target, remote)
    keys = tuple(KeyPart(column.name, values[column.name]) for column in secondary.columns if column.name in values)
    return AssociationRow(secondary, keys, state)


def _is_value_object(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _value_items(value: Any, names: Sequence[str]) -> dict[str, Any]:
    if value is None:
        return {}
    if _is_value_object(value):
        return {field.name: getattr(value, field.name) for field in dataclasses.fields(value)}
    composite_values = getattr(value, "__composite_values__", None)
    if composite_values is None:
        raise ProviderContractError(f"cannot decompose composite value {value!r}", entity_type=type(value))
    return dict(zip(names, composite_values(), strict=True))


def _compose(prop: Any, values: Sequence[Any]) -> Any:
    if all(value is None for value in values):
        return None
    return prop.composite_class(*values)


def _composite_structure(obj: Any, prop: Any, state: ChangeState, unloaded: set[str]) -> StructuralField:
    """StructuralField for one composite() attribute.

    Old and new values are rebuilt from the history of the underlying
    columns: composite history reports None for every column that did not
    change, which would read as a partial replacement.
    """
    mapper = inspect(obj).mapper
    names = [mapper.get_property_by_column(column).key for column in prop.columns]
    old_values: list[Any] = []
    new_values: list[Any] = []
    changed = False
    for name in names:
        old_value, new_value, modified = _committed_values(obj, name, unloaded)
        old_values.append(old_value)
        new_values.append(new_value)
        changed = changed or modified
    old, new = _compose(prop, old_values), _compose(prop, new_values)
    if state is ChangeState.ADDED:
        return _value_structure(prop.key, None, new, names=names, replaced=False)
    if state is ChangeState.DELETED:
        return _value_structure(prop.key, old, None, names=names, replaced=False)
    return _value_structure(prop.key, old, new, names=names, replaced=changed)


def _value_structure(name: str, old: Any, new: Any, *, names: Sequence[str], replaced: bool) -> StructuralField:
    """StructuralField for a value object; dataclass-valued fields nest."""
    old_items = _value_items(old, names)
    new_items = _value_items(new, names)
    scalars: list[ScalarField] = []
    nested: list[StructuralField] = []
    for key in [*old_items, *(k for k in new_items if k not in old_items)]:
        old_value, new_value = old_items.get(key), new_items.get(key)
        if _is_value_object(old_value) or _is_value_object(new_value):
            nested.append(
                _value_structure(
                    key,
                    old_value if _is_value_object(old_value) else None,
                    new_value if _is_value_object(new_value) else None,
                    names=(),
                    replaced=replaced,
                )
            )
        elif replaced:
            if key in old_items:
                scalars.append(ScalarField(key, old_value=old_value, state=ChangeState.DELETED))
            if key in new_items:
                scalars.append(ScalarField(key, new_value=new_value, state=ChangeState.ADDED))
        else:
            scalars.append(ScalarField(key, old_value=old_value, new_value=new_value))
    return StructuralField(name, tuple(scalars), tuple(nested))
