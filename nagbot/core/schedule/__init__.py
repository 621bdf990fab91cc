"""Chore schedules: due computation, validation, due-set collection."""

from nagbot.core.schedule.collector import collect_due, get_due_chores
from nagbot.core.schedule.evaluator import (
    ScheduleValidationError,
    compute_due_info,
    validate_schedule,
)
from nagbot.core.schedule.types import (
    Chore,
    ChoreWithLastCompletion,
    Completion,
    CronSchedule,
    DueInfo,
    IntervalSchedule,
    OnceInAWhileSchedule,
    Schedule,
)

__all__ = [
    "Chore",
    "ChoreWithLastCompletion",
    "Completion",
    "CronSchedule",
    "DueInfo",
    "IntervalSchedule",
    "OnceInAWhileSchedule",
    "Schedule",
    "ScheduleValidationError",
    "collect_due",
    "compute_due_info",
    "get_due_chores",
    "validate_schedule",
]
