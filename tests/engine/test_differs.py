"""Tests for the field-level differs."""

import uuid

import pytest

from changegraph.contracts import (
    AuditState,
    ChangeState,
    ReferenceTransition,
    ScalarField,
    StructuralAudit,
    StructuralField,
    field_added,
    field_deleted,
    field_modified,
)
from changegraph.engine import (
    diff_field,
    diff_reference,
    diff_structural,
    is_empty_identity,
    reconcile_replacement,
)


class TestDiffField:
    """Tests for diff_field - one scalar field's transition."""

    def test_added_always_emits(self) -> None:
        """Existence is the change, even for an empty value."""
        field = ScalarField("name", new_value="")

        assert diff_field(ChangeState.ADDED, field, record_deletion=False) == field_added("")

    def test_deleted_emits_only_when_recording(self) -> None:
        field = ScalarField("name", old_value="Inner1", new_value="Inner1")

        assert diff_field(ChangeState.DELETED, field, record_deletion=True) == field_deleted("Inner1")
        assert diff_field(ChangeState.DELETED, field, record_deletion=False) is None

    def test_modified_requires_flag_and_difference(self) -> None:
        """Modified fields need was_modified and differing values."""
        changed = ScalarField("name", was_modified=True, old_value="a", new_value="b")
        untouched = ScalarField("name", was_modified=False, old_value="a", new_value="b")
        rewritten = ScalarField("name", was_modified=True, old_value="a", new_value="a")

        assert diff_field(ChangeState.MODIFIED, changed, record_deletion=False) == field_modified("a", "b")
        assert diff_field(ChangeState.MODIFIED, untouched, record_deletion=False) is None
        assert diff_field(ChangeState.MODIFIED, rewritten, record_deletion=False) is None

    @pytest.mark.parametrize("state", [ChangeState.UNCHANGED, ChangeState.DETACHED])
    def test_other_states_emit_nothing(self, state: ChangeState) -> None:
        field = ScalarField("name", was_modified=True, old_value="a", new_value="b")

        assert diff_field(state, field, record_deletion=True) is None

    def test_field_state_overrides_entity_state(self) -> None:
        """A per-field state wins over the owning entity's state."""
        field = ScalarField("zip", new_value="0150", state=ChangeState.ADDED)

        assert diff_field(ChangeState.MODIFIED, field, record_deletion=False) == field_added("0150")

    def test_actor_is_stamped(self) -> None:
        field = ScalarField("name", new_value="x")

        audit = diff_field(ChangeState.ADDED, field, record_deletion=False, actor_id="alice")

        assert audit is not None
        assert audit.actor_id == "alice"

    def test_type_mismatch_reports_both_values(self) -> None:
        """Values that cannot be compared are reported as modified."""
        field = ScalarField("qty", was_modified=True, old_value="1", new_value=1)

        assert diff_field(ChangeState.MODIFIED, field, record_deletion=False) == field_modified("1", 1)


class TestReconcileReplacement:
    """Tests for pairing deleted-old/added-new halves of a replaced value object."""

    def test_pairs_halves_by_name(self) -> None:
        fields = (
            ScalarField("name", old_value="V1", state=ChangeState.DELETED),
            ScalarField("price", old_value=1, state=ChangeState.DELETED),
            ScalarField("name", new_value="V2", state=ChangeState.ADDED),
            ScalarField("price", new_value=2, state=ChangeState.ADDED),
        )

        result = reconcile_replacement(fields)

        assert [f.name for f in result] == ["name", "price"]
        assert all(f.state is ChangeState.MODIFIED and f.was_modified for f in result)
        assert (result[0].old_value, result[0].new_value) == ("V1", "V2")
        assert (result[1].old_value, result[1].new_value) == (1, 2)

    def test_unpaired_halves_pass_through(self) -> None:
        """Fields only in the old (or new) value keep their own state."""
        gone = ScalarField("note", old_value="x", state=ChangeState.DELETED)
        new = ScalarField("zip", new_value="0150", state=ChangeState.ADDED)

        assert reconcile_replacement((gone, new)) == [gone, new]

    def test_fields_without_override_untouched(self) -> None:
        plain = ScalarField("city", was_modified=True, old_value="Oslo", new_value="Bergen")

        assert reconcile_replacement((plain,)) == [plain]


class TestDiffStructural:
    """Tests for diff_structural - embedded value objects."""

    def test_replacement_with_identical_field_reports_only_changes(self) -> None:
        structure = StructuralField(
            "shipping",
            (
                ScalarField("street", old_value="Main", state=ChangeState.DELETED),
                ScalarField("city", old_value="Oslo", state=ChangeState.DELETED),
                ScalarField("street", new_value="Main", state=ChangeState.ADDED),
                ScalarField("city", new_value="Bergen", state=ChangeState.ADDED),
            ),
        )

        audit = diff_structural(structure, ChangeState.MODIFIED, record_deletion=True)

        assert audit == StructuralAudit({"city": field_modified("Oslo", "Bergen")})

    def test_nested_value_objects(self) -> None:
        geo = StructuralField("geo", (ScalarField("lat", was_modified=True, old_value=1.0, new_value=2.0),))
        structure = StructuralField("shipping", (ScalarField("city", old_value="Oslo", new_value="Oslo"),), (geo,))

        audit = diff_structural(structure, ChangeState.MODIFIED, record_deletion=True)

        assert audit is not None
        assert "city" not in audit
        assert audit["geo"] == StructuralAudit({"lat": field_modified(1.0, 2.0)})

    def test_no_change_is_none(self) -> None:
        structure = StructuralField("shipping", (ScalarField("city", old_value="Oslo", new_value="Oslo"),))

        assert diff_structural(structure, ChangeState.MODIFIED, record_deletion=True) is None

    def test_deleted_owner_records_fields_when_asked(self) -> None:
        structure = StructuralField("shipping", (ScalarField("city", old_value="Oslo"),))

        assert diff_structural(structure, ChangeState.DELETED, record_deletion=True) == StructuralAudit(
            {"city": field_deleted("Oslo")}
        )
        assert diff_structural(structure, ChangeState.DELETED, record_deletion=False) is None

    def test_added_owner_records_every_field(self) -> None:
        structure = StructuralField("shipping", (ScalarField("street", new_value="Main"), ScalarField("city")))

        audit = diff_structural(structure, ChangeState.ADDED, record_deletion=False)

        assert audit == StructuralAudit({"street": field_added("Main"), "city": field_added(None)})


class TestIsEmptyIdentity:
    @pytest.mark.parametrize("value", [None, "", uuid.UUID(int=0), (), (None, None), []])
    def test_empty(self, value: object) -> None:
        assert is_empty_identity(value)

    @pytest.mark.parametrize("value", [0, "x", uuid.uuid4(), (1, None), False])
    def test_not_empty(self, value: object) -> None:
        """Zero and False are real key values."""
        assert not is_empty_identity(value)


class TestDiffReference:
    """Tests for diff_reference - foreign keys as reference transitions."""

    def test_repointed_reference(self) -> None:
        """Severed first, then added."""
        field = ScalarField("customer_id", is_foreign_key=True, was_modified=True, old_value=7, new_value=8)

        assert diff_reference(field) == [
            ReferenceTransition(AuditState.REFERENCE_SEVERED, 7),
            ReferenceTransition(AuditState.REFERENCE_ADDED, 8),
        ]

    def test_new_reference(self) -> None:
        field = ScalarField("customer_id", was_modified=True, old_value=None, new_value=8)

        assert diff_reference(field) == [ReferenceTransition(AuditState.REFERENCE_ADDED, 8)]

    def test_cleared_reference(self) -> None:
        field = ScalarField("customer_id", was_modified=True, old_value=7, new_value=None)

        assert diff_reference(field) == [ReferenceTransition(AuditState.REFERENCE_SEVERED, 7)]

    def test_unmodified_or_equal_is_none(self) -> None:
        assert diff_reference(ScalarField("customer_id", was_modified=False, old_value=7, new_value=8)) is None
        assert diff_reference(ScalarField("customer_id", was_modified=True, old_value=7, new_value=7)) is None

    def test_empty_to_empty_is_none(self) -> None:
        """None to the nil UUID points at nothing either way."""
        field = ScalarField("owner_id", was_modified=True, old_value=None, new_value=uuid.UUID(int=0))

        assert diff_reference(field) is None
