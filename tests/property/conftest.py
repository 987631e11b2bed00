# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Usage:
    from tests.property.conftest import field_values, folder_graphs

    @given(value=field_values)
    def test_something(value: object) -> None:
        ...
"""

# =============================================================================
# Hypothesis Settings
# =============================================================================
#
# For standardized @settings decorators, import from tests.property.settings:
#   from tests.property.settings import STANDARD_SETTINGS, DETERMINISM_SETTINGS
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from hypothesis import strategies as st

# Scalar field values as an ORM would hold them (no NaN: records must be exact)
field_values: st.SearchStrategy[Any] = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**31), max_value=2**31),
    st.text(max_size=20),
    st.decimals(allow_nan=False, allow_infinity=False, places=2, min_value=-10_000, max_value=10_000),
    st.uuids(),
)

# Non-key Order fields; id, customer_id and invoice_id are keys
order_fields: st.SearchStrategy[dict[str, Any]] = st.dictionaries(
    keys=st.sampled_from(["status", "total", "note", "code", "priority"]),
    values=field_values,
    min_size=1,
)

identities: st.SearchStrategy[Any] = st.one_of(
    st.none(),
    st.integers(min_value=0, max_value=5),
    st.sampled_from(["", "a", "b"]),
    st.sampled_from([UUID(int=0), UUID(int=1), UUID(int=2)]),
)

# Anything at all, including values whose __eq__ misbehaves
anything: st.SearchStrategy[Any] = st.one_of(
    field_values,
    st.floats(),
    st.lists(field_values, max_size=3),
    st.dictionaries(st.text(max_size=3), field_values, max_size=3),
    st.builds(Decimal, st.sampled_from(["NaN", "sNaN", "Infinity", "1.0"])),
)


@st.composite
def folder_graphs(draw: st.DrawFn, max_size: int = 8) -> list[dict[str, Any]]:
    """Folders whose parent_id may point anywhere, cycles included.

    Returns one dict per folder with id, parent_id, and whether it was renamed.
    """
    size = draw(st.integers(min_value=1, max_value=max_size))
    return [
        {
            "id": index,
            "parent_id": draw(st.one_of(st.none(), st.integers(min_value=0, max_value=size - 1))),
            "renamed": draw(st.booleans()),
        }
        for index in range(size)
    ]
