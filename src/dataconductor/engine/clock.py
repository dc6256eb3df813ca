# src/dataconductor/engine/clock.py
"""Clock abstraction for testable time-dependent logic.

Schedules, run timestamps and filename tokens all read wall-clock time
through a Clock so tests can pin "now" without sleeping.

Production code uses SystemClock (the default).
Tests inject MockClock to control time advancement.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract wall clock.

    Implementations:
    - SystemClock: Uses datetime.now(UTC) (production)
    - MockClock: Returns controllable times (testing)
    """

    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Production clock using the system wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock(datetime(2024, 1, 1, 12, 0, tzinfo=UTC))
        clock.advance(minutes=15)
        assert is_due("15", last_run, clock.now())
    """

    def __init__(self, start: datetime | None = None) -> None:
        """Initialize mock clock at a given time.

        Args:
            start: Initial time (default 2024-01-01T00:00:00Z). Naive values are taken as UTC.
        """
        start = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._current = start if start.tzinfo is not None else start.replace(tzinfo=UTC)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 0.0, *, minutes: float = 0.0) -> None:
        """Advance mock time.

        Raises:
            ValueError: If the total advance is negative.
        """
        delta = timedelta(seconds=seconds, minutes=minutes)
        if delta < timedelta(0):
            raise ValueError(f"Cannot advance time by negative amount: {delta}")
        self._current += delta

    def set(self, value: datetime) -> None:
        """Set mock time to an absolute value (may move backwards)."""
        self._current = value if value.tzinfo is not None else value.replace(tzinfo=UTC)


DEFAULT_CLOCK: Clock = SystemClock()
