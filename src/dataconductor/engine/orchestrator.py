# src/dataconductor/engine/orchestrator.py
"""Orchestrator: drives one pipeline run from trigger file to terminal status.

Lifecycle of a run:
1. Create the RUNNING execution record (before any node runs)
2. Seed the source node with the trigger file
3. Walk the graph breadth-first; a node runs once every predecessor
   reachable from the source has produced output
4. Persist each node's output to the run directory and hand downstream
   nodes a file reference
5. Finalize the record COMPLETED, or FAILED on the first node error

Execution within a run is sequential. Any handler error aborts the run;
there is no partial success and no retry.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dataconductor.contracts import (
    ByteStream,
    ExecutionStatus,
    FileReference,
    InlineOutput,
    ItemStream,
    LogEntry,
    LogLevel,
    NodeExecutionContext,
    NodeFailedError,
    NodeOutput,
    PipelineRunError,
    SampleDirection,
    Summary,
)
from dataconductor.core.dag import NodeInfo, PipelineGraph
from dataconductor.core.logging import get_logger
from dataconductor.engine.clock import DEFAULT_CLOCK, Clock
from dataconductor.engine.sampling import DebugSampler, DebugSamples
from dataconductor.engine.streams import encode_json_array, encode_json_value

if TYPE_CHECKING:
    from datetime import datetime

    from dataconductor.core.config import ConductorSettings
    from dataconductor.core.persistence import ExecutionStore
    from dataconductor.core.storage import StorageBackend
    from dataconductor.plugins.manager import NodeHandlerRegistry

logger = get_logger(__name__)


@dataclass
class RunResult:
    """Result of a completed pipeline run.

    Failed runs raise PipelineRunError instead of returning.
    """

    execution_id: str
    status: ExecutionStatus
    debug_samples: dict[str, dict[str, list[str]]] | None = None


class _RunLog:
    """Appends timestamped entries to one execution record."""

    def __init__(self, store: ExecutionStore, execution_id: str, clock: Clock) -> None:
        self._store = store
        self._execution_id = execution_id
        self._clock = clock

    def write(self, message: str, level: LogLevel = LogLevel.INFO, details: dict[str, Any] | None = None) -> None:
        self._store.append_log(self._execution_id, LogEntry(self._clock.now(), message, level, details))


class PipelineOrchestrator:
    """Runs pipeline graphs against the injected handler registry.

    Example:
        orchestrator = PipelineOrchestrator(registry, store, LocalStorage(Path("data")))
        result = orchestrator.run("orders", graph, Path("downloads/orders.json"), debug=True)
    """

    def __init__(
        self,
        registry: NodeHandlerRegistry,
        store: ExecutionStore,
        storage: StorageBackend,
        *,
        settings: ConductorSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._storage = storage
        self._clock = clock or DEFAULT_CLOCK
        if settings is not None:
            self._sampler = DebugSampler(max_items=settings.debug.sample_items, max_chars=settings.debug.sample_chars)
        else:
            self._sampler = DebugSampler()

    @property
    def store(self) -> ExecutionStore:
        return self._store

    def initialize_execution(self, pipeline_id: str) -> str:
        """Create the RUNNING record and return its id.

        Split from execute() so a caller can hand the id back (e.g. to a
        UI) before the run itself starts.
        """
        record = self._store.create(pipeline_id, self._clock.now())
        logger.info("execution_created", execution_id=record.id, pipeline_id=pipeline_id)
        return record.id

    def run(
        self,
        pipeline_id: str,
        graph: PipelineGraph | Mapping[str, Any],
        trigger_file: Path | str | None,
        *,
        debug: bool = False,
    ) -> RunResult:
        """Create an execution record and run the pipeline to completion.

        Raises:
            PipelineRunError: If the run ends FAILED
        """
        execution_id = self.initialize_execution(pipeline_id)
        return self.execute(execution_id, graph, trigger_file, debug=debug)

    def execute(
        self,
        execution_id: str,
        graph: PipelineGraph | Mapping[str, Any],
        trigger_file: Path | str | None,
        *,
        debug: bool = False,
    ) -> RunResult:
        """Run a pipeline against an existing RUNNING execution record.

        Args:
            execution_id: Record created by initialize_execution()
            graph: Graph, or its dict form (validated here)
            trigger_file: File the source node reads
            debug: Capture bounded input/output samples per node

        Returns:
            RunResult with COMPLETED status (and samples in debug mode)

        Raises:
            PipelineRunError: If the graph is unusable or any node fails.
                The record is FAILED and the cause is chained.
        """
        log = _RunLog(self._store, execution_id, self._clock)
        log.write("Pipeline execution started")
        samples = DebugSamples() if debug else None
        run_started = self._clock.now()
        node_id: str | None = None

        try:
            pipeline = graph if isinstance(graph, PipelineGraph) else PipelineGraph.from_dict(graph)
            pipeline.validate()
            source = pipeline.get_source()
            run_dir = self._storage.run_directory(execution_id)
            seed = FileReference(Path(trigger_file)) if trigger_file else None

            reachable = pipeline.reachable_from(source.node_id)
            remaining = {n: sum(1 for p in pipeline.get_predecessors(n) if p in reachable) for n in reachable}
            outputs: dict[str, NodeOutput] = {}
            visited: set[str] = set()
            ready: deque[str] = deque([source.node_id])

            while ready:
                node_id = ready.popleft()
                if node_id in visited:
                    continue
                visited.add(node_id)
                node = pipeline.get_node(node_id)

                if node_id == source.node_id:
                    inputs: tuple[NodeOutput, ...] = (seed,) if seed is not None else ()
                else:
                    inputs = tuple(outputs[p] for p in pipeline.get_predecessors(node_id) if p in outputs)

                outputs[node_id] = self._execute_node(node, inputs, execution_id, run_dir, run_started, log, samples)

                for child in pipeline.get_successors(node_id):
                    remaining[child] -= pipeline.get_predecessors(child).count(node_id)
                    if remaining[child] <= 0 and child not in visited:
                        ready.append(child)
            node_id = None

            self._report_skipped(pipeline, visited, reachable, log)
        except Exception as e:
            self._fail(execution_id, log, node_id, e)
            raise PipelineRunError(str(e), execution_id=execution_id, node_id=node_id) from e

        if samples is not None:
            log.write("Debug samples captured", details={"debugSamples": samples.as_dict()})
        log.write("Pipeline execution completed successfully")
        self._store.finalize(execution_id, ExecutionStatus.COMPLETED, self._clock.now())
        logger.info("execution_completed", execution_id=execution_id, nodes_executed=len(visited))
        return RunResult(
            execution_id=execution_id,
            status=ExecutionStatus.COMPLETED,
            debug_samples=samples.as_dict() if samples is not None else None,
        )

    def _execute_node(
        self,
        node: NodeInfo,
        inputs: tuple[NodeOutput, ...],
        execution_id: str,
        run_dir: Path,
        run_started: datetime,
        log: _RunLog,
        samples: DebugSamples | None,
    ) -> NodeOutput:
        if samples is not None:
            samples.record(node.node_id, SampleDirection.INPUT, self._sampler.sample_many(inputs))

        log.write(f"Executing node: {node.label} ({node.node_type})")
        handler = self._registry.get(node.node_type)
        ctx = NodeExecutionContext(
            node_id=node.node_id,
            config=node.config,
            inputs=inputs,
            execution_id=execution_id,
            output_dir=run_dir,
            storage=self._storage,
            started_at=run_started,
        )
        result = handler.execute(ctx)
        if not result.success or result.output is None:
            raise NodeFailedError(result.error or f"Node {node.node_id} failed without an error message")

        # Lazy outputs are drained here; errors raised mid-stream fail this node
        output = self._persist(node.node_id, result.output, run_dir)
        self._store.set_output(execution_id, node.node_id, _output_ref(output))

        if samples is not None:
            samples.record(node.node_id, SampleDirection.OUTPUT, self._sampler.sample(output))
        return output

    def _persist(self, node_id: str, output: NodeOutput, run_dir: Path) -> NodeOutput:
        match output:
            case ItemStream(items=items):
                with _closing(items):
                    return FileReference(self._storage.save(run_dir, node_id, encode_json_array(items), "json"))
            case ByteStream(chunks=chunks, extension=extension):
                with _closing(chunks):
                    return FileReference(self._storage.save(run_dir, node_id, chunks, extension))
            case InlineOutput(value=value):
                return FileReference(self._storage.save(run_dir, node_id, encode_json_value(value), "json"))
            case FileReference() | Summary():
                return output
        raise TypeError(f"Unsupported node output type: {type(output).__name__}")

    def _report_skipped(self, pipeline: PipelineGraph, visited: set[str], reachable: set[str], log: _RunLog) -> None:
        blocked = sorted(reachable - visited)
        unreachable = sorted({n.node_id for n in pipeline.get_nodes()} - reachable)
        if not blocked and not unreachable:
            return
        log.write(
            f"Skipped {len(blocked) + len(unreachable)} node(s) that never became ready",
            LogLevel.WARNING,
            details={"blocked": blocked, "unreachable": unreachable},
        )
        logger.warning("nodes_skipped", blocked=blocked, unreachable=unreachable)

    def _fail(self, execution_id: str, log: _RunLog, node_id: str | None, error: Exception) -> None:
        message = str(error) or type(error).__name__
        details = {"nodeId": node_id, "errorType": type(error).__name__}
        if node_id is not None:
            log.write(f"Node execution failed: {message}", LogLevel.ERROR, details=details)
        log.write(f"Pipeline failed: {message}", LogLevel.ERROR, details=details)
        self._store.finalize(execution_id, ExecutionStatus.FAILED, self._clock.now())
        logger.error("execution_failed", execution_id=execution_id, node_id=node_id, error=message)


def _output_ref(output: NodeOutput) -> dict[str, Any]:
    match output:
        case FileReference():
            return output.as_ref()
        case Summary(data=data):
            return dict(data)
    raise TypeError(f"Output of type {type(output).__name__} must be persisted before recording")


@contextmanager
def _closing(stream: Iterator[Any]) -> Iterator[None]:
    """Release a lazy output even if persisting fails before it is pulled."""
    try:
        yield
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            close()
