# tests/conftest.py
"""Shared test fixtures and helpers.

Fixtures wire the real collaborators (handler registry, in-memory
execution store, local storage under tmp_path, mock clock) so engine and
handler tests exercise the same code paths as the CLI.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/engine/test_schedule.py
"""

import json
import os
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from hypothesis import HealthCheck, Verbosity, settings

from dataconductor.contracts import NodeExecutionContext, NodeOutput
from dataconductor.core.persistence import InMemoryExecutionStore
from dataconductor.core.storage import LocalStorage
from dataconductor.engine.clock import MockClock
from dataconductor.engine.orchestrator import PipelineOrchestrator
from dataconductor.plugins.manager import NodeHandlerRegistry

settings.register_profile("ci", max_examples=100, suppress_health_check=[HealthCheck.too_slow])
settings.register_profile("nightly", max_examples=1000)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def clock() -> MockClock:
    return MockClock(FIXED_NOW)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def storage(data_dir: Path) -> LocalStorage:
    return LocalStorage(data_dir)


@pytest.fixture
def store() -> InMemoryExecutionStore:
    return InMemoryExecutionStore()


@pytest.fixture
def registry() -> NodeHandlerRegistry:
    return NodeHandlerRegistry.with_builtins()


@pytest.fixture
def orchestrator(
    registry: NodeHandlerRegistry,
    store: InMemoryExecutionStore,
    storage: LocalStorage,
    clock: MockClock,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(registry, store, storage, clock=clock)


@pytest.fixture
def write_json(tmp_path: Path) -> Callable[[str, Any], Path]:
    """Write a value as JSON under tmp_path and return the path."""

    def _write(name: str, value: Any) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(value), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_context(tmp_path: Path, storage: LocalStorage) -> Callable[..., NodeExecutionContext]:
    """Build a NodeExecutionContext for calling a handler directly."""

    def _make(
        config: Mapping[str, Any] | None = None,
        inputs: tuple[NodeOutput, ...] = (),
        *,
        node_id: str = "node-1",
    ) -> NodeExecutionContext:
        output_dir = tmp_path / "run"
        output_dir.mkdir(exist_ok=True)
        return NodeExecutionContext(
            node_id=node_id,
            config=dict(config or {}),
            inputs=inputs,
            execution_id="exec-test",
            output_dir=output_dir,
            storage=storage,
            started_at=FIXED_NOW,
        )

    return _make
