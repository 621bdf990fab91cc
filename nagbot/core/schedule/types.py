"""Chore and schedule types."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class CronSchedule(BaseModel):
    """Fixed schedule from a cron expression (e.g. ``0 9 * * 1``)."""

    kind: Literal["cron"] = "cron"
    expression: str


class IntervalSchedule(BaseModel):
    """Relative schedule: ``days`` after the last completion, at hour:minute UTC."""

    kind: Literal["interval"] = "interval"
    days: int
    hour: int | None = None
    minute: int | None = None


class OnceInAWhileSchedule(BaseModel):
    """No automatic due date: tracked manually only."""

    kind: Literal["once_in_a_while"] = "once_in_a_while"


Schedule = Annotated[
    Union[CronSchedule, IntervalSchedule, OnceInAWhileSchedule],
    Field(discriminator="kind"),
]


class Chore(BaseModel):
    """A recurring chore: mirrors the SQLite chores table."""

    id: str
    name: str
    description: str | None = None
    schedule: Schedule
    created_at: datetime
    updated_at: datetime


class ChoreWithLastCompletion(Chore):
    """Chore plus the time of its most recent completion, if any."""

    last_completed_at: datetime | None = None


class Completion(BaseModel):
    id: str
    chore_id: str
    completed_at: datetime
    notes: str | None = None
    created_at: datetime


class DueInfo(BaseModel):
    """Derived due state of a chore at a given instant. Never persisted."""

    chore: ChoreWithLastCompletion
    next_due: datetime | None = None
    is_overdue: bool = False
