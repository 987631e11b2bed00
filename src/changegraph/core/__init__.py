# src/changegraph/core/__init__.py
"""Core infrastructure: configuration, logging, canonical JSON, formatters."""

from changegraph.core.canonical import (
    CANONICAL_VERSION,
    audit_fingerprint,
    canonical_json,
    stable_hash,
)
from changegraph.core.config import (
    AuditSettings,
    ChangeGraphSettings,
    DatabaseSettings,
    LoggingSettings,
    load_settings,
)
from changegraph.core.formatters import (
    AuditFormatter,
    ConsoleFormatter,
    JSONFormatter,
    audit_to_dict,
    serialize_value,
)
from changegraph.core.logging import (
    configure_logging,
    get_logger,
)

__all__ = [
    "CANONICAL_VERSION",
    "AuditFormatter",
    "AuditSettings",
    "ChangeGraphSettings",
    "ConsoleFormatter",
    "DatabaseSettings",
    "JSONFormatter",
    "LoggingSettings",
    "audit_fingerprint",
    "audit_to_dict",
    "canonical_json",
    "configure_logging",
    "get_logger",
    "load_settings",
    "serialize_value",
]
