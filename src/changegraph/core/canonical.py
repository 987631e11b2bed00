# src/changegraph/core/canonical.py
"""
Canonical JSON serialization and fingerprints for audit records.

Two-phase approach:
1. Normalize: Convert field values to JSON-safe primitives (serialize_value)
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

Callers that persist audit records use audit_fingerprint() to detect
duplicates: two traversals of the same pending change set produce the
same fingerprint.
"""

from __future__ import annotations

import hashlib
from typing import Any

import rfc8785

from changegraph.contracts.audit import AuditNode
from changegraph.core.formatters import serialize_value

# Stored alongside fingerprints so they can be re-verified later
CANONICAL_VERSION = "sha256-rfc8785-v1"


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON (no whitespace, sorted keys).

    Raises:
        ValueError: If data contains NaN or Infinity
    """
    normalized = serialize_value(obj)
    result: bytes = rfc8785.dumps(normalized)
    return result.decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON of obj."""
    canonical = canonical_json(obj)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def audit_fingerprint(node: AuditNode) -> str:
    """Fingerprint of an audit record, independent of dict ordering."""
    return stable_hash(node.to_dict())
