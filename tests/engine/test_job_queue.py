# tests/engine/test_job_queue.py
"""Tests for the bounded-concurrency job queue."""

import threading
import time

import pytest

from dataconductor.engine.job_queue import JobQueue


class TestJobQueue:
    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError, match="concurrency"):
            JobQueue(concurrency=0)

    def test_never_exceeds_concurrency(self) -> None:
        """3N slow jobs against a limit of N: at most N ever run together."""
        n = 3
        queue = JobQueue(concurrency=n)
        lock = threading.Lock()
        running = 0
        peak = 0

        def job() -> None:
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
            time.sleep(0.02)
            with lock:
                running -= 1

        for _ in range(3 * n):
            queue.submit(job)

        assert queue.wait_idle(timeout=10)
        queue.shutdown()

        stats = queue.get_stats()
        assert peak <= n
        assert stats["max_active"] <= n
        assert stats["completed"] == 3 * n
        assert stats["failed"] == 0
        assert stats["pending"] == 0

    def test_failing_job_is_counted_and_does_not_stop_others(self) -> None:
        queue = JobQueue(concurrency=1)
        results: list[str] = []

        def boom() -> None:
            raise RuntimeError("pipeline exploded")

        failed = queue.submit(boom, name="broken")
        ok = queue.submit(lambda: results.append("ran"), name="fine")

        assert failed.result(timeout=5) is None
        ok.result(timeout=5)
        queue.shutdown()

        assert results == ["ran"]
        assert queue.get_stats()["failed"] == 1
        assert queue.get_stats()["completed"] == 1

    def test_jobs_start_in_submission_order(self) -> None:
        queue = JobQueue(concurrency=1)
        order: list[int] = []

        for i in range(5):
            queue.submit(lambda i=i: order.append(i))

        queue.wait_idle(timeout=5)
        queue.shutdown()

        assert order == [0, 1, 2, 3, 4]

    def test_future_carries_return_value(self) -> None:
        queue = JobQueue()

        assert queue.submit(lambda: 42).result(timeout=5) == 42
        queue.shutdown()

    def test_submit_after_shutdown_raises_and_keeps_counts(self) -> None:
        queue = JobQueue()
        queue.shutdown()

        with pytest.raises(RuntimeError):
            queue.submit(lambda: None)

        assert queue.pending == 0
