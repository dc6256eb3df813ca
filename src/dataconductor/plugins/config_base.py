# src/dataconductor/plugins/config_base.py
"""Base class for typed handler configurations.

Node configs come from the visual editor as loose dicts, so the base:
- ignores unknown keys (the editor stores `label`, positions, etc. alongside)
- accepts both snake_case field names and their camelCase aliases
- turns pydantic validation errors into ConfigurationError

Example usage:
    class FileDestinationConfig(HandlerConfig):
        filename: str = "output-{{timestamp}}.json"

    cfg = FileDestinationConfig.from_dict(ctx.config)
"""

from collections.abc import Mapping
from typing import Any, Self

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from dataconductor.contracts.errors import ConfigurationError


class HandlerConfig(BaseModel):
    """Base class for handler configurations."""

    model_config = {
        "extra": "ignore",
        "frozen": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    label: str | None = None

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> Self:
        """Create config from a node's config mapping.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(config, Mapping):
            raise ConfigurationError(f"Invalid configuration for {cls.__name__}: config must be a mapping, got {type(config).__name__}.")
        try:
            return cls.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration for {cls.__name__}: {e}") from e
