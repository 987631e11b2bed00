# src/changegraph/engine/auditor.py
"""Change-graph audit engine.

AuditLogger walks an aggregate from its root through a ChangeTracker and
renders every net change as one acyclic, deduplicated AuditNode tree.

Traversal order per entity: scalar fields, then embedded value objects,
then relationships. Relationships dispatch on their kind:

- OWNERSHIP: recurse into the full entity builder
- REFERENCE: another aggregate; emit identity + reference transition only
- ASSOCIATION: many-to-many join row; emit identity + lifecycle state only

Every entity is visited at most once per call. Nodes with nothing beyond
their identity are pruned, and a root with no net change yields None.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from changegraph.contracts.audit import AuditNode, AuditValue, values_equal
from changegraph.contracts.enums import (
    AuditState,
    ChangeState,
    KeyDirection,
    RelationshipKind,
    audit_state_for,
)
from changegraph.contracts.errors import ProviderContractError, describe_type
from changegraph.contracts.tracking import ChangeTracker, RelationshipMeta
from changegraph.core.config import AuditSettings
from changegraph.engine.context import AuditContext
from changegraph.engine.differs import diff_field, diff_reference, diff_structural

# Added and deleted entities are changes in their own right, even when
# no field-level record survives (e.g. a deleted aggregate root).
_LIFECYCLE_CHANGES = frozenset({ChangeState.ADDED, ChangeState.DELETED})


def keys_match(candidate: Sequence[Any], key: Sequence[Any]) -> bool:
    """Whether a foreign key tuple points at key.

    Partial keys (any None component) and arity mismatches never match:
    relationship resolution omits a malformed candidate rather than guess.
    """
    if len(candidate) != len(key) or not candidate:
        return False
    if any(part is None for part in candidate):
        return False
    return all(values_equal(left, right) for left, right in zip(candidate, key, strict=True))


class AuditLogger:
    """Renders the pending change set of one aggregate as an audit tree.

    Holds no per-call state: the visited set and counters live in an
    AuditContext created by each create_audit_log() call.

    Example:
        auditor = AuditLogger(SqlAlchemyChangeTracker(session))
        record = auditor.create_audit_log(order, actor_id=current_user.id)
        if record is not None:
            store.save(JSONFormatter().format(record))
    """

    def __init__(self, tracker: ChangeTracker, settings: AuditSettings | None = None) -> None:
        self._tracker = tracker
        self._settings = settings if settings is not None else AuditSettings()

    @property
    def settings(self) -> AuditSettings:
        return self._settings

    def create_audit_log(self, root: Any, *, actor_id: Any = None) -> AuditNode | None:
        """Audit the aggregate rooted at root.

        Args:
            root: Aggregate root entity, as understood by the tracker
            actor_id: Who made the change. Resolved by the caller; stamped
                on field records when settings.include_actor is set

        Returns:
            Root audit node, or None when nothing in the aggregate changed

        Raises:
            ProviderContractError: If the tracker breaks its contract.
                No partial record is returned
        """
        ctx = AuditContext(actor_id=actor_id if self._settings.include_actor else None)
        root_type = describe_type(self._tracker.get_entity_type(root))

        node = self._audit_entry(root, ctx, is_root=True, owned=False)

        ctx.log.info(
            "audit_log_created",
            root_type=root_type,
            changed=node is not None,
            nodes=ctx.nodes_emitted,
            visited=ctx.visited_count,
        )
        return node

    # === Entity audit builder ===

    def _audit_entry(self, entity: Any, ctx: AuditContext, *, is_root: bool, owned: bool) -> AuditNode | None:
        if ctx.has_visited(entity):
            ctx.log.debug("audit_cycle_skipped", entity_type=describe_type(self._tracker.get_entity_type(entity)))
            return None

        state = self._tracker.get_state(entity)
        # The root is audited even when unchanged: its owned entities may not be
        if state is ChangeState.DETACHED or (state is ChangeState.UNCHANGED and not is_root):
            return None

        ctx.mark_visited(entity)
        entity_type = self._tracker.get_entity_type(entity)
        keys = self._primary_key(entity, entity_type)
        entries: dict[str, AuditValue] = {}

        record_deletion = self._records_entity_deletion(owned)
        for field in self._tracker.get_scalar_fields(entity):
            if field.is_primary_key:
                continue
            if field.is_foreign_key:
                transitions = diff_reference(field)
                if transitions is not None:
                    entries[field.name] = transitions
                continue
            audit = diff_field(state, field, record_deletion=record_deletion, actor_id=ctx.actor_id)
            if audit is not None:
                entries[field.name] = audit

        structural_deletion = self._settings.deleted_fields != "none"
        for structure in self._tracker.get_structural_fields(entity):
            structural_audit = diff_structural(
                structure,
                state,
                record_deletion=structural_deletion,
                actor_id=ctx.actor_id,
            )
            if structural_audit is not None:
                entries[structure.name] = structural_audit

        for meta in self._tracker.get_relationships(entity_type):
            related = self._audit_relationship(meta, entity, entity_type, keys, ctx)
            if related is None:
                continue
            if meta.is_collection or len(related) > 1:
                entries[meta.name] = related
            else:
                entries[meta.name] = related[0]

        if not entries and state not in _LIFECYCLE_CHANGES:
            ctx.log.debug("audit_node_pruned", entity_type=describe_type(entity_type), state=state)
            return None

        ctx.nodes_emitted += 1
        ctx.log.debug("audit_node_emitted", entity_type=describe_type(entity_type), state=state, entries=len(entries))
        return AuditNode(audit_state_for(state), keys, entries)

    def _records_entity_deletion(self, owned: bool) -> bool:
        policy = self._settings.deleted_fields
        if policy == "all":
            return True
        if policy == "none":
            return False
        return owned

    def _primary_key(self, entity: Any, entity_type: Any) -> dict[str, Any]:
        parts = self._tracker.get_primary_key(entity)
        if not parts:
            raise ProviderContractError("primary key could not be determined", entity_type=entity_type)
        keys: dict[str, Any] = {}
        for part in parts:
            if part.value is None:
                raise ProviderContractError(f"primary key part {part.name!r} has no value", entity_type=entity_type)
            keys[part.name] = part.value
        return keys

    # === Relationship auditor ===

    def _audit_relationship(
        self,
        meta: RelationshipMeta,
        parent: Any,
        parent_type: Any,
        parent_keys: dict[str, Any],
        ctx: AuditContext,
    ) -> list[AuditNode] | None:
        if meta.target_type is None:
            raise ProviderContractError(f"relationship {meta.name!r} has no target type", entity_type=parent_type)
        if not meta.foreign_key:
            raise ProviderContractError(f"relationship {meta.name!r} declares no foreign key", entity_type=parent_type)

        parent_key: tuple[Any, ...] = ()
        if meta.direction is KeyDirection.PRINCIPAL:
            if meta.kind is RelationshipKind.ASSOCIATION:
                raise ProviderContractError(
                    f"association {meta.name!r} must be declared from the principal side",
                    entity_type=parent_type,
                )
            if meta.kind is RelationshipKind.REFERENCE:
                # The parent's own FK field already records this transition
                return None
            candidates = self._principal_candidates(meta, parent, parent_type, ctx)
        else:
            parent_key = self._resolve_key(parent, parent_type, meta.principal_key, parent_keys, meta)
            if len(parent_key) != len(meta.foreign_key):
                raise ProviderContractError(
                    f"relationship {meta.name!r} maps {len(meta.foreign_key)} FK fields onto a {len(parent_key)}-part key",
                    entity_type=parent_type,
                )
            candidates = self._dependent_candidates(meta, parent_key)

        nodes: list[AuditNode] = []
        for candidate in candidates:
            if meta.kind is RelationshipKind.OWNERSHIP:
                node = self._audit_entry(candidate, ctx, is_root=False, owned=True)
            elif meta.kind is RelationshipKind.REFERENCE:
                node = self._audit_reference_only(candidate, meta, parent_key, ctx)
            else:
                node = self._audit_association(candidate, ctx)
            if node is not None:
                nodes.append(node)
        return nodes or None

    def _dependent_candidates(self, meta: RelationshipMeta, parent_key: tuple[Any, ...]) -> list[Any]:
        """Tracked targets whose FK points (or, for non-ownership, pointed) at the parent.

        Matching the original FK catches entities reassigned away from this
        parent: only their original value still refers to it.
        """
        include_original = meta.kind is not RelationshipKind.OWNERSHIP
        matches: list[Any] = []
        for candidate in self._tracker.find_tracked_entities(meta.target_type):
            current, original = self._foreign_key_values(candidate, meta.target_type, meta)
            if keys_match(current, parent_key) or (include_original and keys_match(original, parent_key)):
                matches.append(candidate)
        return matches

    def _principal_candidates(self, meta: RelationshipMeta, parent: Any, parent_type: Any, ctx: AuditContext) -> list[Any]:
        """The tracked target the parent's FK points at.

        More than one target with the same key is malformed data; the
        relationship is omitted rather than guessing which one is meant.
        """
        current, _ = self._foreign_key_values(parent, parent_type, meta)
        matches: list[Any] = []
        for candidate in self._tracker.find_tracked_entities(meta.target_type):
            candidate_key = self._resolve_key(candidate, meta.target_type, meta.principal_key, None, meta)
            if keys_match(current, candidate_key):
                matches.append(candidate)
        if len(matches) > 1:
            ctx.log.warning(
                "audit_ambiguous_key_match",
                relationship=meta.name,
                entity_type=describe_type(parent_type),
                candidates=len(matches),
            )
            return []
        return matches

    def _resolve_key(
        self,
        entity: Any,
        entity_type: Any,
        names: tuple[str, ...],
        primary_key: dict[str, Any] | None,
        meta: RelationshipMeta,
    ) -> tuple[Any, ...]:
        """Current values of the key fields a relationship points at.

        An empty names tuple means the entity's primary key.
        """
        if primary_key is None:
            primary_key = {part.name: part.value for part in self._tracker.get_primary_key(entity)}
        if not names:
            return tuple(primary_key.values())

        values: list[Any] = []
        current: dict[str, Any] | None = None
        for name in names:
            if name in primary_key:
                values.append(primary_key[name])
                continue
            if current is None:
                current = {field.name: field.new_value for field in self._tracker.get_scalar_fields(entity)}
            if name not in current:
                raise ProviderContractError(
                    f"key field {name!r} of relationship {meta.name!r} is not reported",
                    entity_type=entity_type,
                )
            values.append(current[name])
        return tuple(values)

    def _foreign_key_values(
        self,
        entity: Any,
        entity_type: Any,
        meta: RelationshipMeta,
    ) -> tuple[tuple[Any, ...], tuple[Any, ...]]:
        """(current, original) values of the relationship's FK fields on entity."""
        fields = {field.name: field for field in self._tracker.get_scalar_fields(entity)}
        missing = [name for name in meta.foreign_key if name not in fields]
        if missing:
            raise ProviderContractError(
                f"foreign key field(s) {missing} of relationship {meta.name!r} are not reported",
                entity_type=entity_type,
            )
        current = tuple(fields[name].new_value for name in meta.foreign_key)
        original = tuple(fields[name].old_value for name in meta.foreign_key)
        return current, original

    # === Reference-only and association auditors ===

    def _audit_reference_only(
        self,
        entity: Any,
        meta: RelationshipMeta,
        parent_key: tuple[Any, ...],
        ctx: AuditContext,
    ) -> AuditNode | None:
        """Identity + reference transition for another aggregate root.

        Crossing an aggregate boundary stops the diff: no fields, no
        value objects, no relationships of the referenced root.
        """
        if ctx.has_visited(entity):
            ctx.log.debug("audit_cycle_skipped", entity_type=describe_type(self._tracker.get_entity_type(entity)))
            return None
        state = self._tracker.get_state(entity)
        if state in (ChangeState.DETACHED, ChangeState.UNCHANGED):
            return None

        ctx.mark_visited(entity)
        entity_type = self._tracker.get_entity_type(entity)

        if state is ChangeState.ADDED:
            transition = AuditState.REFERENCE_ADDED
        elif state is ChangeState.DELETED:
            transition = AuditState.REFERENCE_SEVERED
        else:
            current, _ = self._foreign_key_values(entity, entity_type, meta)
            # Covers reassignment away from this parent
            transition = AuditState.REFERENCE_ADDED if keys_match(current, parent_key) else AuditState.REFERENCE_SEVERED

        ctx.nodes_emitted += 1
        return AuditNode(transition, self._primary_key(entity, entity_type))

    def _audit_association(self, entity: Any, ctx: AuditContext) -> AuditNode | None:
        """Identity + lifecycle state of a many-to-many join row."""
        if ctx.has_visited(entity):
            ctx.log.debug("audit_cycle_skipped", entity_type=describe_type(self._tracker.get_entity_type(entity)))
            return None
        state = self._tracker.get_state(entity)
        if state in (ChangeState.DETACHED, ChangeState.UNCHANGED):
            return None

        ctx.mark_visited(entity)
        ctx.nodes_emitted += 1
        return AuditNode(audit_state_for(state), self._primary_key(entity, self._tracker.get_entity_type(entity)))
