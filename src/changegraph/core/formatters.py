# src/changegraph/core/formatters.py
"""Output formatters for audit records.

The engine returns AuditNode trees; turning them into text is the
caller's concern. These helpers cover the two common cases (JSON for
machines, an indented tree for humans) and the value normalization both
need.
"""

import base64
import json
import math
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from changegraph.contracts.audit import (
    AuditNode,
    FieldAudit,
    ReferenceTransition,
    StructuralAudit,
)
from changegraph.contracts.enums import FieldState


def serialize_value(obj: Any) -> Any:
    """Convert a field value into a JSON-safe primitive.

    Recursively processes dicts, lists and tuples. Rejects NaN and
    Infinity: an audit record must be exact.

    Raises:
        ValueError: If NaN or Infinity values are encountered
    """
    if isinstance(obj, float):
        if math.isnan(obj):
            raise ValueError("NaN values are not allowed in audit records")
        if math.isinf(obj):
            raise ValueError("Infinity values are not allowed in audit records")
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, bool | int | str):
        return obj
    if isinstance(obj, datetime | date | time):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError(f"Non-finite Decimal values are not allowed in audit records: {obj}")
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return {"__bytes__": base64.b64encode(obj).decode("ascii")}
    if isinstance(obj, dict):
        return {str(k): serialize_value(v) for k, v in obj.items()}
    if isinstance(obj, list | tuple):
        return [serialize_value(item) for item in obj]
    return str(obj)


def audit_to_dict(node: AuditNode) -> dict[str, Any]:
    """Render an audit tree as a JSON-safe nested dict."""
    result: dict[str, Any] = serialize_value(node.to_dict())
    return result


class AuditFormatter(Protocol):
    """Protocol for audit record formatters."""

    def format(self, node: AuditNode | None) -> str:
        """Format an audit record (None means "no change") for output."""
        ...


class JSONFormatter:
    """Format audit records as JSON."""

    def __init__(self, *, indent: int | None = 2) -> None:
        self._indent = indent

    def format(self, node: AuditNode | None) -> str:
        if node is None:
            return "null"
        return json.dumps(audit_to_dict(node), indent=self._indent, allow_nan=False)


class ConsoleFormatter:
    """Format audit records as an indented, human-readable tree."""

    def __init__(self, *, indent: str = "  ") -> None:
        self._indent = indent

    def format(self, node: AuditNode | None) -> str:
        if node is None:
            return "No changes."
        lines: list[str] = []
        self._format_node(node, depth=0, lines=lines, label=None)
        return "\n".join(lines)

    def _format_node(self, node: AuditNode, *, depth: int, lines: list[str], label: str | None) -> None:
        pad = self._indent * depth
        identity = ", ".join(f"{name}={serialize_value(value)}" for name, value in node.keys.items())
        prefix = f"{label}: " if label else ""
        lines.append(f"{pad}{prefix}[{node.state.value}] {identity}")
        for name, value in node.entries.items():
            self._format_entry(name, value, depth=depth + 1, lines=lines)

    def _format_entry(self, name: str, value: Any, *, depth: int, lines: list[str]) -> None:
        pad = self._indent * depth
        if isinstance(value, FieldAudit):
            lines.append(f"{pad}{name}: {_describe_field(value)}")
        elif isinstance(value, StructuralAudit):
            lines.append(f"{pad}{name}:")
            for child_name, child in value.entries.items():
                self._format_entry(child_name, child, depth=depth + 1, lines=lines)
        elif isinstance(value, AuditNode):
            self._format_node(value, depth=depth, lines=lines, label=name)
        elif value and isinstance(value[0], ReferenceTransition):
            transitions = ", ".join(f"{t.state.value} {serialize_value(t.target)}" for t in value)
            lines.append(f"{pad}{name}: {transitions}")
        else:
            lines.append(f"{pad}{name}:")
            for item in value:
                self._format_node(item, depth=depth + 1, lines=lines, label=None)


def _describe_field(audit: FieldAudit) -> str:
    old = json.dumps(serialize_value(audit.old_value))
    new = json.dumps(serialize_value(audit.new_value))
    if audit.state is FieldState.ADDED:
        return f"+ {new}"
    if audit.state is FieldState.DELETED:
        return f"- {old}"
    return f"{old} -> {new}"
