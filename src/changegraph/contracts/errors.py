"""Exception hierarchy for changegraph.

Only provider contract violations are fatal to a traversal. Everything
else (ambiguous key matches, values that cannot be compared) degrades to
"no diff" or over-reports, and never reaches the caller as an exception.
"""

from typing import Any


class ChangeGraphError(Exception):
    """Base class for all changegraph errors."""


class ProviderContractError(ChangeGraphError):
    """Raised when a ChangeTracker breaks the contract the engine relies on.

    Examples: a relationship declared without a target type, a primary key
    that cannot be determined, a foreign key field the provider never
    reports. The traversal aborts; no partial audit node is returned.

    Attributes:
        entity_type: Type (or type name) being inspected when the violation
            was found, if known
        detail: Human-readable description of the violation
    """

    def __init__(self, detail: str, *, entity_type: Any = None) -> None:
        self.detail = detail
        self.entity_type = entity_type
        if entity_type is None:
            super().__init__(detail)
        else:
            super().__init__(f"{describe_type(entity_type)}: {detail}")


class SettingsError(ChangeGraphError):
    """Raised when a settings file cannot be loaded."""


def describe_type(entity_type: Any) -> str:
    if isinstance(entity_type, str):
        return entity_type
    name = getattr(entity_type, "__name__", None) or getattr(entity_type, "name", None)
    return name if isinstance(name, str) else repr(entity_type)
