"""Schedule evaluation: next due time, overdue state, and schedule validation.

Everything here is pure: no I/O and no clock reads unless ``now`` is omitted
from a validation call. All arithmetic happens in UTC.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

from croniter import croniter
from loguru import logger

from nagbot.core.schedule.types import (
    ChoreWithLastCompletion,
    CronSchedule,
    DueInfo,
    IntervalSchedule,
    OnceInAWhileSchedule,
    Schedule,
)

# Interval bounds (1 day .. 1 year)
MIN_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 365

# Minimum gap between two consecutive cron occurrences
MIN_CRON_INTERVAL = timedelta(hours=1)


class ScheduleValidationError(ValueError):
    """Raised when a schedule is rejected at creation/update time."""


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def next_cron_occurrence(expression: str, after: datetime) -> datetime:
    """First occurrence of ``expression`` strictly after ``after`` (UTC).

    Raises ``ValueError`` if the expression cannot be parsed.
    """
    try:
        occurrence = croniter(expression, _utc(after)).get_next(datetime)
    except (ValueError, KeyError) as e:
        raise ValueError(f"Invalid cron expression '{expression}': {e}") from e
    return _utc(occurrence)


# ════════════════════════════════════════════════════════════
# DUE COMPUTATION
# ════════════════════════════════════════════════════════════


def compute_due_info(chore: ChoreWithLastCompletion, now: datetime) -> DueInfo | None:
    """Compute the next due time for a single chore.

    Returns None when the stored schedule cannot be evaluated; the caller is
    expected to skip the chore rather than fail the batch.
    """
    schedule = chore.schedule
    if isinstance(schedule, CronSchedule):
        return _compute_cron_due(chore, schedule, _utc(now))
    if isinstance(schedule, IntervalSchedule):
        return _compute_interval_due(chore, schedule, _utc(now))
    if isinstance(schedule, OnceInAWhileSchedule):
        return DueInfo(chore=chore, next_due=None, is_overdue=False)
    return None


def _base_time(chore: ChoreWithLastCompletion) -> datetime:
    # Last completion, or creation if never completed
    return _utc(chore.last_completed_at or chore.created_at)


def _compute_cron_due(
    chore: ChoreWithLastCompletion, schedule: CronSchedule, now: datetime
) -> DueInfo | None:
    try:
        next_due = next_cron_occurrence(schedule.expression, _base_time(chore))
    except ValueError as e:
        logger.warning(
            f"Failed to parse cron schedule for chore {chore.id} "
            f"('{schedule.expression}'): {e}"
        )
        return None
    return DueInfo(chore=chore, next_due=next_due, is_overdue=next_due <= now)


def _compute_interval_due(
    chore: ChoreWithLastCompletion, schedule: IntervalSchedule, now: datetime
) -> DueInfo | None:
    due_date = _base_time(chore).date() + timedelta(days=schedule.days)
    try:
        at = time(schedule.hour or 0, schedule.minute or 0, tzinfo=timezone.utc)
    except ValueError as e:
        logger.warning(f"Invalid interval time for chore {chore.id}: {e}")
        return None
    next_due = datetime.combine(due_date, at)
    return DueInfo(chore=chore, next_due=next_due, is_overdue=next_due <= now)


# ════════════════════════════════════════════════════════════
# VALIDATION
# ════════════════════════════════════════════════════════════


def validate_cron_schedule(expression: str, now: datetime | None = None) -> None:
    """Validate a cron schedule string.

    Raises ScheduleValidationError if the expression does not parse, or if
    it would fire more often than once per hour.
    """
    now = _utc(now or datetime.now(timezone.utc))
    try:
        first = next_cron_occurrence(expression, now)
        second = next_cron_occurrence(expression, first)
    except ValueError as e:
        raise ScheduleValidationError(str(e)) from e

    if second - first < MIN_CRON_INTERVAL:
        raise ScheduleValidationError(
            "Schedule is too frequent. Minimum interval is 1 hour."
        )


def validate_interval_schedule(
    days: int, hour: int | None = None, minute: int | None = None
) -> None:
    """Validate an interval schedule's day count and time of day."""
    if days < MIN_INTERVAL_DAYS:
        raise ScheduleValidationError(
            f"Interval must be at least {MIN_INTERVAL_DAYS} day(s)"
        )
    if days > MAX_INTERVAL_DAYS:
        raise ScheduleValidationError(
            f"Interval cannot exceed {MAX_INTERVAL_DAYS} days (1 year)"
        )
    if hour is not None and not 0 <= hour <= 23:
        raise ScheduleValidationError("Hour must be between 0 and 23")
    if minute is not None and not 0 <= minute <= 59:
        raise ScheduleValidationError("Minute must be between 0 and 59")


def validate_schedule(schedule: Schedule, now: datetime | None = None) -> None:
    """Validate any schedule variant. OnceInAWhile is always valid."""
    if isinstance(schedule, CronSchedule):
        validate_cron_schedule(schedule.expression, now)
    elif isinstance(schedule, IntervalSchedule):
        validate_interval_schedule(schedule.days, schedule.hour, schedule.minute)
