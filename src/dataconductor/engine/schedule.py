# src/dataconductor/engine/schedule.py
"""Schedule due-evaluation.

A schedule string is either:
- a non-negative integer: run every N minutes, measured from the last
  run truncated to the start of its minute
- a cron expression: run when the most recent fire time strictly before
  now is later than the last run

is_due() never raises. A malformed schedule is logged and reported as
not due, so one bad pipeline cannot stop a scheduler tick.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from croniter import CroniterError, croniter

from dataconductor.contracts.errors import ScheduleFormatError
from dataconductor.core.logging import get_logger

logger = get_logger(__name__)

_MINUTES_PATTERN = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ScheduleSpec:
    """Parsed schedule: exactly one of interval_minutes / cron is set."""

    raw: str
    interval_minutes: int | None = None
    cron: str | None = None

    @property
    def is_interval(self) -> bool:
        return self.interval_minutes is not None


def parse_schedule(value: str) -> ScheduleSpec:
    """Parse a schedule string.

    Raises:
        ScheduleFormatError: If the value is neither integer minutes nor valid cron
    """
    raw = value.strip() if isinstance(value, str) else ""
    if not raw:
        raise ScheduleFormatError("Schedule is empty")
    if _MINUTES_PATTERN.match(raw):
        return ScheduleSpec(raw=raw, interval_minutes=int(raw))
    if raw.lstrip("-").isdigit():
        raise ScheduleFormatError(f"Schedule interval must be non-negative minutes, got {raw!r}")
    try:
        valid = croniter.is_valid(raw)
    except (CroniterError, ValueError) as e:
        raise ScheduleFormatError(f"Invalid cron expression: {raw!r}") from e
    if not valid:
        raise ScheduleFormatError(f"Invalid cron expression: {raw!r}")
    return ScheduleSpec(raw=raw, cron=raw)


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def next_due_at(spec: ScheduleSpec, last_run_at: datetime) -> datetime:
    """Earliest time at which the schedule becomes due again after last_run_at.

    Raises:
        OverflowError: If the next time is past the datetime range
    """
    last_run_at = _utc(last_run_at)
    if spec.interval_minutes is not None:
        truncated = last_run_at.replace(second=0, microsecond=0)
        return truncated + timedelta(minutes=spec.interval_minutes)
    # Next fire strictly after last_run_at; due once now passes it
    nxt: datetime = croniter(spec.cron, last_run_at).get_next(datetime)
    return _utc(nxt)


def is_due(schedule: str | ScheduleSpec, last_run_at: datetime | None, now: datetime) -> bool:
    """Decide whether a recurring schedule should fire now.

    Args:
        schedule: Raw schedule string or parsed spec
        last_run_at: Start of the most recent run, or None if never run
        now: Current time; naive datetimes are taken as UTC

    Returns:
        True if due. False for malformed schedules (logged as a warning).
    """
    try:
        spec = schedule if isinstance(schedule, ScheduleSpec) else parse_schedule(schedule)
    except ScheduleFormatError as e:
        logger.warning("invalid_schedule", schedule=schedule, error=str(e))
        return False

    if last_run_at is None:
        return True

    now = _utc(now)
    last_run_at = _utc(last_run_at)

    try:
        if spec.interval_minutes is not None:
            return now >= next_due_at(spec, last_run_at)
        # Latest fire time strictly before now; croniter steps back from `now`
        prev_fire: datetime = _utc(croniter(spec.cron, now).get_prev(datetime))
    except (CroniterError, OverflowError, ValueError) as e:
        # e.g. "0 0 31 2 *" never fires; huge intervals overflow datetime
        logger.warning("invalid_schedule", schedule=spec.raw, error=str(e))
        return False
    return prev_fire > last_run_at
