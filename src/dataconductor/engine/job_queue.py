# src/dataconductor/engine/job_queue.py
"""Bounded-concurrency job queue.

Admission control for pipeline runs. At most `concurrency` jobs execute
at once; further submissions wait in FIFO order. Submission never blocks.

A failing job is logged and swallowed here: one broken pipeline must not
stop later jobs or the scheduler tick that submitted it. The queue is
process-local and not durable; jobs pending at shutdown are lost.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Condition, Lock
from typing import Any

from dataconductor.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONCURRENCY = 5


class JobQueue:
    """FIFO job queue with a fixed concurrency limit.

    Usage:
        queue = JobQueue(concurrency=5)
        queue.submit(lambda: orchestrator.run(...), name="orders")
        queue.wait_idle()
        queue.shutdown()

        stats = queue.get_stats()
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._concurrency = concurrency
        # ThreadPoolExecutor's work queue is FIFO; max_workers bounds concurrency
        self._pool = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="conductor-job")

        self._stats_lock = Lock()
        self._idle = Condition(self._stats_lock)
        self._pending = 0
        self._active = 0
        self._max_active = 0
        self._completed = 0
        self._failed = 0

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def active(self) -> int:
        """Jobs currently executing."""
        with self._stats_lock:
            return self._active

    @property
    def pending(self) -> int:
        """Jobs submitted and not yet finished (waiting or executing)."""
        with self._stats_lock:
            return self._pending

    def submit(self, job: Callable[[], Any], *, name: str | None = None) -> Future[Any]:
        """Enqueue a job and return immediately.

        The returned future resolves to the job's return value, or to None
        if the job raised (the error is logged, not re-raised).
        """
        job_name = name or getattr(job, "__name__", "job")
        with self._stats_lock:
            self._pending += 1
        logger.debug("job_submitted", job=job_name)
        try:
            return self._pool.submit(self._run, job, job_name)
        except RuntimeError:
            # Pool already shut down
            with self._stats_lock:
                self._pending -= 1
            raise

    def _run(self, job: Callable[[], Any], job_name: str) -> Any:
        with self._stats_lock:
            self._active += 1
            if self._active > self._max_active:
                self._max_active = self._active
        failed = False
        try:
            return job()
        except Exception as e:
            failed = True
            logger.error("job_failed", job=job_name, error=str(e), error_type=type(e).__name__, exc_info=True)
            return None
        finally:
            with self._stats_lock:
                self._active -= 1
                self._pending -= 1
                if failed:
                    self._failed += 1
                else:
                    self._completed += 1
                if self._pending == 0:
                    self._idle.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no jobs are waiting or executing.

        Returns:
            True if idle, False if the timeout elapsed first
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs.

        Args:
            wait: If True, wait for queued and running jobs to complete
        """
        self._pool.shutdown(wait=wait, cancel_futures=not wait)

    def get_stats(self) -> dict[str, int]:
        with self._stats_lock:
            return {
                "concurrency": self._concurrency,
                "pending": self._pending,
                "active": self._active,
                "max_active": self._max_active,
                "completed": self._completed,
                "failed": self._failed,
            }
