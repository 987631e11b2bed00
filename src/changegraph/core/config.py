# src/changegraph/core/config.py
"""
Configuration schema and loading for changegraph.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from changegraph.contracts.errors import SettingsError

DeletedFieldPolicy = Literal["value_objects", "all", "none"]


class AuditSettings(BaseModel):
    """Policies applied by the audit engine.

    deleted_fields decides which deleted entities get per-field records:
    - value_objects: embedded value objects and entities reached through
      an ownership relationship (their last known values cannot be
      recovered any other way). Other deleted entities carry only their
      AuditState and key.
    - all: every deleted entity records its last known field values
    - none: no deleted entity records field values

    Example YAML:
        audit:
          deleted_fields: value_objects
          include_actor: true
    """

    model_config = {"frozen": True, "extra": "forbid"}

    deleted_fields: DeletedFieldPolicy = Field(
        default="value_objects",
        description="Which deleted entities record per-field old values",
    )
    include_actor: bool = Field(
        default=True,
        description="Stamp the caller-supplied actor id on field audits",
    )


class LoggingSettings(BaseModel):
    """Log output configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    json_output: bool = Field(default=False, description="Emit JSON log lines instead of console output")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        normalized = v.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return normalized


class DatabaseSettings(BaseModel):
    """Database used by the demo aggregate."""

    model_config = {"frozen": True, "extra": "forbid"}

    url: str = Field(
        default="sqlite:///:memory:",
        description="SQLAlchemy connection URL",
    )
    echo: bool = Field(default=False, description="Log emitted SQL statements")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Database URL cannot be empty")
        return v


class ChangeGraphSettings(BaseModel):
    """Top-level settings."""

    model_config = {"frozen": True}

    audit: AuditSettings = Field(default_factory=AuditSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Unresolvable references without a default are left in place so that
    validation reports them against the field they were meant for.
    """
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            if default is not None:
                return default
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lowercase_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lowercase_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lowercase_keys(item) for item in value]
    return value


def load_settings(config_path: Path) -> ChangeGraphSettings:
    """Load settings from a YAML file with environment variable overrides.

    Precedence (highest first):
    1. Environment variables (CHANGEGRAPH_*), e.g. CHANGEGRAPH_AUDIT__DELETED_FIELDS
    2. Config file
    3. Defaults from the Pydantic schema

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated ChangeGraphSettings instance

    Raises:
        SettingsError: If the config file doesn't exist
        ValidationError: If configuration fails Pydantic validation
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise SettingsError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="CHANGEGRAPH",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic fields are lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): _lowercase_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    raw_config = _expand_env_vars(raw_config)

    return ChangeGraphSettings(**raw_config)
