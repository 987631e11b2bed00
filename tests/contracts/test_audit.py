"""Tests for audit record contracts.

FieldAudit, ReferenceTransition, StructuralAudit and AuditNode are strict:
invalid records crash at construction instead of reaching a caller.
"""

from decimal import Decimal

import pytest

from changegraph.contracts import (
    AUDIT_STATE_KEY,
    AuditNode,
    AuditState,
    FieldAudit,
    FieldState,
    ReferenceTransition,
    StructuralAudit,
    field_added,
    field_deleted,
    field_modified,
    values_equal,
)


class TestValuesEqual:
    """Tests for values_equal - comparison that never raises."""

    def test_equal_values(self) -> None:
        assert values_equal("a", "a")
        assert values_equal(Decimal("1.0"), Decimal("1.00"))

    def test_type_mismatch_is_unequal(self) -> None:
        """Incompatible types compare unequal instead of raising."""
        assert not values_equal("1", 1)

    def test_raising_eq_is_unequal(self) -> None:
        """A value whose __eq__ raises is treated as different."""

        class Exploding:
            def __eq__(self, other: object) -> bool:
                raise TypeError("cannot compare")

            __hash__ = object.__hash__

        assert not values_equal(Exploding(), Exploding())

    def test_identical_object_short_circuits(self) -> None:
        """The same object is equal to itself even if __eq__ would raise."""

        class Exploding:
            def __eq__(self, other: object) -> bool:
                raise ValueError("cannot compare")

            __hash__ = object.__hash__

        value = Exploding()
        assert values_equal(value, value)

    def test_signaling_nan_is_unequal(self) -> None:
        assert not values_equal(Decimal("sNaN"), Decimal("1"))


class TestFieldAudit:
    """Tests for FieldAudit transition invariants."""

    def test_factories(self) -> None:
        """The three factories produce the matching states."""
        assert field_added("x") == FieldAudit(FieldState.ADDED, new_value="x")
        assert field_modified("x", "y") == FieldAudit(FieldState.MODIFIED, old_value="x", new_value="y")
        assert field_deleted("x") == FieldAudit(FieldState.DELETED, old_value="x")

    def test_added_allows_empty_value(self) -> None:
        """Existence is the change: ADDED may carry a None or empty value."""
        assert field_added(None).new_value is None
        assert field_added("").new_value == ""

    def test_added_rejects_old_value(self) -> None:
        with pytest.raises(ValueError, match="ADDED"):
            FieldAudit(FieldState.ADDED, old_value="x", new_value="y")

    def test_deleted_rejects_new_value(self) -> None:
        with pytest.raises(ValueError, match="DELETED"):
            FieldAudit(FieldState.DELETED, old_value="x", new_value="y")

    def test_modified_requires_differing_values(self) -> None:
        """Equal old/new is 'no change' and has no record."""
        with pytest.raises(ValueError, match="differing"):
            field_modified("same", "same")

    def test_state_must_be_field_state(self) -> None:
        """A plain string is not accepted as a state."""
        with pytest.raises(TypeError, match="FieldState"):
            FieldAudit("modified", old_value="x", new_value="y")  # type: ignore[arg-type]

    def test_to_dict_omits_absent_side(self) -> None:
        """ADDED has no old_value key, DELETED no new_value key."""
        assert field_added(1).to_dict() == {"state": FieldState.ADDED, "new_value": 1}
        assert field_deleted(1).to_dict() == {"state": FieldState.DELETED, "old_value": 1}
        assert field_modified(1, 2).to_dict() == {"state": FieldState.MODIFIED, "old_value": 1, "new_value": 2}

    def test_to_dict_includes_actor_when_present(self) -> None:
        assert field_added(1, actor_id="alice").to_dict()["actor_id"] == "alice"

    def test_is_immutable(self) -> None:
        audit = field_added(1)
        with pytest.raises(AttributeError):
            audit.new_value = 2  # type: ignore[misc]


class TestReferenceTransition:
    """Tests for ReferenceTransition."""

    def test_accepts_reference_states(self) -> None:
        severed = ReferenceTransition(AuditState.REFERENCE_SEVERED, 7)
        added = ReferenceTransition(AuditState.REFERENCE_ADDED, 8)

        assert severed.to_dict() == {AUDIT_STATE_KEY: AuditState.REFERENCE_SEVERED, "Id": 7}
        assert added.target == 8

    @pytest.mark.parametrize("state", [AuditState.ADDED, AuditState.MODIFIED, AuditState.DELETED])
    def test_rejects_lifecycle_states(self, state: AuditState) -> None:
        """A reference transition is never a plain lifecycle state."""
        with pytest.raises(ValueError, match="REFERENCE_"):
            ReferenceTransition(state, 7)


class TestStructuralAudit:
    """Tests for StructuralAudit."""

    def test_empty_entries_rejected(self) -> None:
        """Empty structural diffs are pruned, never constructed."""
        with pytest.raises(ValueError, match="at least one entry"):
            StructuralAudit({})

    def test_lookup_and_to_dict(self) -> None:
        nested = StructuralAudit({"lat": field_modified(1.0, 2.0)})
        audit = StructuralAudit({"city": field_modified("Oslo", "Bergen"), "geo": nested})

        assert "city" in audit
        assert audit["geo"] is nested
        assert audit.to_dict() == {
            "city": {"state": FieldState.MODIFIED, "old_value": "Oslo", "new_value": "Bergen"},
            "geo": {"lat": {"state": FieldState.MODIFIED, "old_value": 1.0, "new_value": 2.0}},
        }


class TestAuditNode:
    """Tests for AuditNode lookup and rendering."""

    def test_indexing(self) -> None:
        """AuditState key, then entries, then key fields."""
        name = field_modified("Initial", "Changed")
        node = AuditNode(AuditState.MODIFIED, {"id": 1}, {"name": name})

        assert node[AUDIT_STATE_KEY] is AuditState.MODIFIED
        assert node["name"] is name
        assert node["id"] == 1
        assert AUDIT_STATE_KEY in node
        assert "id" in node
        assert "missing" not in node
        assert node.get("missing") is None

    def test_missing_name_raises_key_error(self) -> None:
        node = AuditNode(AuditState.ADDED, {"id": 1})
        with pytest.raises(KeyError):
            node["missing"]

    def test_identity_single_and_composite(self) -> None:
        """Single keys collapse to the value; composite keys stay tuples."""
        assert AuditNode(AuditState.ADDED, {"id": 1}).identity == 1
        assert AuditNode(AuditState.ADDED, {"order_id": 1, "tag_id": 2}).identity == (1, 2)

    def test_has_changes(self) -> None:
        assert not AuditNode(AuditState.DELETED, {"id": 1}).has_changes
        assert AuditNode(AuditState.MODIFIED, {"id": 1}, {"x": field_added(1)}).has_changes

    def test_entries_cannot_shadow_keys(self) -> None:
        """Keys are identity, not diffable attributes."""
        with pytest.raises(ValueError, match="shadow"):
            AuditNode(AuditState.MODIFIED, {"id": 1}, {"id": field_modified(1, 2)})

    def test_state_must_be_audit_state(self) -> None:
        with pytest.raises(TypeError, match="AuditState"):
            AuditNode("modified", {"id": 1})  # type: ignore[arg-type]

    def test_to_dict_nested_shape(self) -> None:
        """Render as the nested mapping shape with the reserved AuditState key."""
        child = AuditNode(AuditState.ADDED, {"id": 10}, {"sku": field_added("A")})
        node = AuditNode(
            AuditState.MODIFIED,
            {"id": 1},
            {
                "customer_id": [
                    ReferenceTransition(AuditState.REFERENCE_SEVERED, 7),
                    ReferenceTransition(AuditState.REFERENCE_ADDED, 8),
                ],
                "lines": [child],
                "invoice": AuditNode(AuditState.DELETED, {"id": 100}),
            },
        )

        assert node.to_dict() == {
            "AuditState": AuditState.MODIFIED,
            "id": 1,
            "customer_id": [
                {"AuditState": AuditState.REFERENCE_SEVERED, "Id": 7},
                {"AuditState": AuditState.REFERENCE_ADDED, "Id": 8},
            ],
            "lines": [{"AuditState": AuditState.ADDED, "id": 10, "sku": {"state": FieldState.ADDED, "new_value": "A"}}],
            "invoice": {"AuditState": AuditState.DELETED, "id": 100},
        }
