# tests/cli/conftest.py
"""Shared fixtures and helpers for CLI tests."""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml


@pytest.fixture(autouse=True)
def restore_root_logging() -> Iterator[None]:
    """Undo the handler the CLI installs on the runner's (closed) stderr."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def write_settings(tmp_path: Path, content: dict[str, Any]) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(content), encoding="utf-8")
    return path
