# src/dataconductor/core/catalog.py
"""Pipeline catalog: which pipelines exist, their schedules and graphs.

The scheduler only needs two things from pipeline configuration storage,
captured by the PipelineCatalog protocol. YamlPipelineCatalog reads them
from a single file:

    pipelines:
      - id: orders
        name: Orders Export
        schedule: "*/15 * * * *"
        pipeline: pipelines/orders.yaml    # relative to this file
      - id: inventory
        schedule: "60"
        active: false
        graph:                             # or inline
          nodes: [...]
          edges: [...]
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from dataconductor.contracts.errors import ConfigurationError, NotFoundError
from dataconductor.core.config import load_pipeline_file


@dataclass(frozen=True)
class ScheduledPipeline:
    """A pipeline the scheduler may trigger.

    Attributes:
        pipeline_id: Stable identifier (execution records key on it)
        name: Display name; also names the downloads directory
        schedule: Interval minutes or cron expression
    """

    pipeline_id: str
    name: str
    schedule: str


class PipelineCatalog(Protocol):
    def list_scheduled(self) -> list[ScheduledPipeline]:
        """Active pipelines with a non-empty schedule."""
        ...

    def get_graph(self, pipeline_id: str) -> dict[str, Any]:
        """Graph dict for a pipeline.

        Raises:
            NotFoundError: If the pipeline is not in the catalog
        """
        ...


class CatalogEntry(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(min_length=1)
    name: str | None = None
    schedule: str | None = None
    active: bool = True
    pipeline: Path | None = None
    graph: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _one_graph_source(self) -> CatalogEntry:
        if (self.pipeline is None) == (self.graph is None):
            raise ValueError(f"Pipeline {self.id!r} needs exactly one of 'pipeline' (file) or 'graph' (inline)")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.id


class CatalogFile(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    pipelines: list[CatalogEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> CatalogFile:
        seen: set[str] = set()
        for entry in self.pipelines:
            if entry.id in seen:
                raise ValueError(f"Duplicate pipeline id in catalog: {entry.id!r}")
            seen.add(entry.id)
        return self


class YamlPipelineCatalog:
    """Catalog backed by a YAML file, re-read on every call.

    Re-reading lets an operator edit schedules without restarting the
    scheduler.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> CatalogFile:
        if not self._path.exists():
            raise NotFoundError(f"Pipeline catalog not found: {self._path}")
        with self._path.open(encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Pipeline catalog {self._path} is not valid YAML: {e}") from e
        try:
            return CatalogFile.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid pipeline catalog {self._path}: {e}") from e

    def list_scheduled(self) -> list[ScheduledPipeline]:
        return [
            ScheduledPipeline(pipeline_id=entry.id, name=entry.display_name, schedule=entry.schedule.strip())
            for entry in self._load().pipelines
            if entry.active and entry.schedule and entry.schedule.strip()
        ]

    def get_graph(self, pipeline_id: str) -> dict[str, Any]:
        for entry in self._load().pipelines:
            if entry.id != pipeline_id:
                continue
            if entry.graph is not None:
                return dict(entry.graph)
            assert entry.pipeline is not None
            path = entry.pipeline if entry.pipeline.is_absolute() else self._path.parent / entry.pipeline
            return load_pipeline_file(path)
        raise NotFoundError(f"Pipeline {pipeline_id!r} is not in catalog {self._path}")
