# src/dataconductor/core/config.py
"""Configuration schema and loading for DataConductor.

Uses Pydantic for validation and Dynaconf for multi-source loading.

Settings are frozen (immutable) after construction. Precedence:
1. Environment variables (CONDUCTOR_*) - highest priority
2. Settings file (settings.yaml)
3. Defaults from the Pydantic schema - lowest priority
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from dataconductor.contracts.errors import ConfigurationError


class StorageSettings(BaseModel):
    """Where run outputs and downloaded trigger files live.

    Example YAML:
        storage:
          data_dir: /var/lib/conductor
    """

    model_config = {"frozen": True, "extra": "forbid"}

    data_dir: Path = Field(default=Path("data"), description="Root directory for executions/ and downloads/")

    @property
    def downloads_dir(self) -> Path:
        return self.data_dir / "downloads"


class QueueSettings(BaseModel):
    """Admission control for scheduled and manual runs."""

    model_config = {"frozen": True, "extra": "forbid"}

    concurrency: int = Field(default=5, ge=1, description="Maximum pipeline runs executing at once")


class SchedulerSettings(BaseModel):
    """Scheduler tick loop configuration.

    Example YAML:
        scheduler:
          tick_seconds: 60
          catalog_path: pipelines.yaml
    """

    model_config = {"frozen": True, "extra": "forbid"}

    tick_seconds: float = Field(default=60.0, gt=0, description="Seconds between schedule evaluations")
    catalog_path: Path | None = Field(default=None, description="YAML catalog of scheduled pipelines")


class DebugSettings(BaseModel):
    """Bounds for debug-mode input/output samples."""

    model_config = {"frozen": True, "extra": "forbid"}

    sample_items: int = Field(default=5, ge=1, description="Maximum items captured per node and direction")
    sample_chars: int = Field(default=500, ge=4, description="Maximum serialized length of one sampled item")


class ExecutionStoreSettings(BaseModel):
    """Execution record persistence.

    A null url keeps records in memory (lost at exit).
    """

    model_config = {"frozen": True, "extra": "forbid"}

    url: str | None = Field(default=None, description="SQLAlchemy URL, e.g. sqlite:///conductor.db")

    @field_validator("url")
    @classmethod
    def _reject_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("execution_store.url must not be blank; omit it to use the in-memory store")
        return value


class LoggingSettings(BaseModel):
    """Operational logging output."""

    model_config = {"frozen": True, "extra": "forbid"}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = False

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ConductorSettings(BaseModel):
    """Top-level DataConductor settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    storage: StorageSettings = Field(default_factory=StorageSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    debug: DebugSettings = Field(default_factory=DebugSettings)
    execution_store: ExecutionStoreSettings = Field(default_factory=ExecutionStoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Pattern for ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Unset variables without a default are left untouched.
    """

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


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def load_settings(config_path: Path | None = None) -> ConductorSettings:
    """Load settings from an optional YAML file plus environment overrides.

    Environment variable format: CONDUCTOR_QUEUE__CONCURRENCY=3 for nested keys.

    Args:
        config_path: Path to YAML settings file, or None for env/defaults only

    Returns:
        Validated ConductorSettings instance

    Raises:
        ConfigurationError: If the file is missing or validation fails
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if config_path is not None and not config_path.exists():
        raise ConfigurationError(f"Settings file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="CONDUCTOR",
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(_lower_keys(raw_config))

    try:
        return ConductorSettings(**raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e


def load_pipeline_file(path: Path) -> dict[str, Any]:
    """Read a pipeline graph definition from YAML or JSON.

    JSON is valid YAML, so both are read with the YAML loader. ${VAR}
    patterns are expanded so credentials can stay in the environment.

    Raises:
        NotFoundError: If the file does not exist
        ConfigurationError: If the file is not a mapping
    """
    from dataconductor.contracts.errors import NotFoundError

    if not path.exists():
        raise NotFoundError(f"Pipeline file not found: {path}")
    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Pipeline file {path} is not valid YAML/JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Pipeline file {path} must contain a mapping with 'nodes' and 'edges', got {type(data).__name__}")
    return _expand_env_vars(data)
