# src/dataconductor/engine/scheduler.py
"""Scheduler: the periodic tick that turns due schedules into queued runs.

Every tick reads the catalog, asks is_due() for each scheduled pipeline
against its last run start, and submits due pipelines to the JobQueue.
The tick itself never runs a pipeline and never blocks on one.

A pipeline that is still queued or running from an earlier tick is not
submitted again.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from datetime import datetime
from threading import Event, Lock, Thread
from typing import TYPE_CHECKING, Any

from dataconductor.core.catalog import PipelineCatalog, ScheduledPipeline
from dataconductor.core.logging import get_logger
from dataconductor.engine.clock import DEFAULT_CLOCK, Clock
from dataconductor.engine.schedule import is_due

if TYPE_CHECKING:
    from dataconductor.core.persistence import ExecutionStore
    from dataconductor.engine.job_queue import JobQueue
    from dataconductor.engine.orchestrator import PipelineOrchestrator, RunResult
    from dataconductor.engine.sync import SyncStep

logger = get_logger(__name__)

DEFAULT_TICK_SECONDS = 60.0


class PipelineJob:
    """Unit of queued work: sync, then run the pipeline.

    A run without a trigger file still executes, so the missing input is
    recorded as a FAILED execution rather than silently skipped.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        catalog: PipelineCatalog,
        sync: SyncStep,
        *,
        debug: bool = False,
    ) -> None:
        self._orchestrator = orchestrator
        self._catalog = catalog
        self._sync = sync
        self._debug = debug

    def __call__(self, pipeline: ScheduledPipeline) -> RunResult:
        trigger_file = self._sync(pipeline)
        graph = self._catalog.get_graph(pipeline.pipeline_id)
        logger.info(
            "scheduled_run_starting",
            pipeline_id=pipeline.pipeline_id,
            trigger_file=str(trigger_file) if trigger_file else None,
        )
        return self._orchestrator.run(pipeline.pipeline_id, graph, trigger_file, debug=self._debug)


class Scheduler:
    """Evaluates schedules every `tick_seconds` on a background thread.

    Usage:
        scheduler = Scheduler(catalog, store, queue, job)
        scheduler.start()
        ...
        scheduler.stop()

    Tests call tick(now) directly instead of starting the thread.
    """

    def __init__(
        self,
        catalog: PipelineCatalog,
        store: ExecutionStore,
        queue: JobQueue,
        job: Callable[[ScheduledPipeline], Any],
        *,
        clock: Clock | None = None,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be > 0, got {tick_seconds}")
        self._catalog = catalog
        self._store = store
        self._queue = queue
        self._job = job
        self._clock = clock or DEFAULT_CLOCK
        self._tick_seconds = tick_seconds

        self._in_flight: set[str] = set()
        self._in_flight_lock = Lock()
        self._stop_event = Event()
        self._thread: Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def in_flight(self) -> set[str]:
        with self._in_flight_lock:
            return set(self._in_flight)

    def tick(self, now: datetime | None = None) -> list[str]:
        """Submit every due pipeline that is not already in flight.

        Returns:
            Pipeline ids submitted by this tick
        """
        now = now or self._clock.now()
        try:
            pipelines = self._catalog.list_scheduled()
        except Exception as e:
            # A broken catalog must not kill the tick loop; the next tick retries
            logger.error("scheduler_tick_failed", error=str(e), error_type=type(e).__name__)
            return []

        submitted: list[str] = []
        for pipeline in pipelines:
            if pipeline.pipeline_id in self.in_flight():
                logger.debug("pipeline_still_running", pipeline_id=pipeline.pipeline_id)
                continue
            try:
                last_run_at = self._store.last_started_at(pipeline.pipeline_id)
                due = is_due(pipeline.schedule, last_run_at, now)
            except Exception as e:
                # One bad entry must not stop the others or the loop
                logger.error(
                    "schedule_check_failed",
                    pipeline_id=pipeline.pipeline_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if not due:
                continue
            self._submit(pipeline)
            submitted.append(pipeline.pipeline_id)

        logger.debug("scheduler_tick", checked=len(pipelines), submitted=len(submitted))
        return submitted

    def _submit(self, pipeline: ScheduledPipeline) -> None:
        with self._in_flight_lock:
            self._in_flight.add(pipeline.pipeline_id)
        logger.info("pipeline_queued", pipeline_id=pipeline.pipeline_id, name=pipeline.name, schedule=pipeline.schedule)
        try:
            self._queue.submit(functools.partial(self._run_job, pipeline), name=pipeline.pipeline_id)
        except RuntimeError:
            self._release(pipeline.pipeline_id)
            raise

    def _run_job(self, pipeline: ScheduledPipeline) -> Any:
        # Must release before JobQueue marks the job finished
        try:
            return self._job(pipeline)
        finally:
            self._release(pipeline.pipeline_id)

    def _release(self, pipeline_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(pipeline_id)

    def start(self) -> None:
        """Start ticking on a daemon thread. The first tick runs immediately."""
        if self.running:
            logger.warning("scheduler_already_running")
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="conductor-scheduler", daemon=True)
        self._thread.start()
        logger.info("scheduler_started", tick_seconds=self._tick_seconds)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self._tick_seconds)

    def stop(self, timeout: float | None = None) -> None:
        """Stop ticking. Runs already submitted continue in the queue."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("scheduler_stopped")
