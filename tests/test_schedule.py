"""Tests for nagbot.core.schedule (evaluator, validation, collector)."""

from datetime import datetime, timedelta, timezone

import pytest

from nagbot.core.schedule import (
    ChoreWithLastCompletion,
    CronSchedule,
    IntervalSchedule,
    OnceInAWhileSchedule,
    ScheduleValidationError,
    collect_due,
    compute_due_info,
    validate_schedule,
)
from nagbot.core.schedule.evaluator import (
    next_cron_occurrence,
    validate_cron_schedule,
    validate_interval_schedule,
)

UTC = timezone.utc


def _chore(schedule, created_at, last_completed_at=None, chore_id="c1", name="chore"):
    return ChoreWithLastCompletion(
        id=chore_id,
        name=name,
        schedule=schedule,
        created_at=created_at,
        updated_at=created_at,
        last_completed_at=last_completed_at,
    )


# ── Cron ──────────────────────────────────────────────────


def test_cron_next_occurrence_is_strictly_after_base():
    base = datetime(2024, 3, 10, 9, 0, 30, tzinfo=UTC)
    assert next_cron_occurrence("0 9 * * *", base) == datetime(2024, 3, 11, 9, 0, tzinfo=UTC)


def test_cron_invalid_expression_raises():
    with pytest.raises(ValueError):
        next_cron_occurrence("not a cron", datetime(2024, 1, 1, tzinfo=UTC))


def test_daily_cron_completed_long_ago_is_overdue():
    chore = _chore(
        CronSchedule(expression="0 9 * * *"),
        created_at=datetime(2019, 6, 1, tzinfo=UTC),
        last_completed_at=datetime(2020, 1, 1, 10, 0, tzinfo=UTC),
    )
    info = compute_due_info(chore, datetime(2024, 1, 1, tzinfo=UTC))
    assert info.next_due == datetime(2020, 1, 2, 9, 0, tzinfo=UTC)
    assert info.is_overdue


def test_cron_uses_created_at_when_never_completed():
    created = datetime(2024, 3, 10, 8, 0, tzinfo=UTC)
    chore = _chore(CronSchedule(expression="0 9 * * *"), created_at=created)
    info = compute_due_info(chore, created + timedelta(minutes=30))
    assert info.next_due == datetime(2024, 3, 10, 9, 0, tzinfo=UTC)
    assert not info.is_overdue


def test_cron_due_exactly_now_is_overdue():
    created = datetime(2024, 3, 10, 8, 0, tzinfo=UTC)
    chore = _chore(CronSchedule(expression="0 9 * * *"), created_at=created)
    info = compute_due_info(chore, datetime(2024, 3, 10, 9, 0, tzinfo=UTC))
    assert info.is_overdue


def test_cron_weekday_uses_crontab_numbering():
    # 2024-03-10 is a Sunday; "1" is Monday
    base = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    assert next_cron_occurrence("0 9 * * 1", base) == datetime(2024, 3, 11, 9, 0, tzinfo=UTC)


def test_malformed_stored_cron_yields_none():
    chore = _chore(
        CronSchedule(expression="61 25 * * *"),
        created_at=datetime(2024, 1, 1, tzinfo=UTC),
    )
    assert compute_due_info(chore, datetime(2024, 2, 1, tzinfo=UTC)) is None


# ── Interval ──────────────────────────────────────────────


def test_interval_never_completed_anchors_on_creation():
    created = datetime(2024, 3, 10, 15, 30, tzinfo=UTC)
    chore = _chore(IntervalSchedule(days=1, hour=9), created_at=created)

    info = compute_due_info(chore, created)
    assert info.next_due == datetime(2024, 3, 11, 9, 0, tzinfo=UTC)
    assert not info.is_overdue

    later = compute_due_info(chore, created + timedelta(days=2))
    assert later.is_overdue


def test_interval_completed_now_is_not_overdue():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    chore = _chore(
        IntervalSchedule(days=7, hour=18, minute=15),
        created_at=datetime(2024, 1, 1, tzinfo=UTC),
        last_completed_at=now,
    )
    info = compute_due_info(chore, now)
    assert info.next_due == datetime(2024, 5, 8, 18, 15, tzinfo=UTC)
    assert not info.is_overdue


def test_interval_time_defaults_to_midnight():
    chore = _chore(
        IntervalSchedule(days=3),
        created_at=datetime(2024, 1, 1, 22, 45, tzinfo=UTC),
    )
    info = compute_due_info(chore, datetime(2024, 1, 2, tzinfo=UTC))
    assert info.next_due == datetime(2024, 1, 4, 0, 0, tzinfo=UTC)


def test_interval_uses_utc_calendar_date():
    # 23:30 at UTC-05:00 is already the next day in UTC
    local = timezone(timedelta(hours=-5))
    chore = _chore(
        IntervalSchedule(days=1, hour=9),
        created_at=datetime(2024, 3, 10, 23, 30, tzinfo=local),
    )
    info = compute_due_info(chore, datetime(2024, 3, 11, tzinfo=UTC))
    assert info.next_due == datetime(2024, 3, 12, 9, 0, tzinfo=UTC)


def test_interval_bad_stored_time_yields_none():
    chore = _chore(
        IntervalSchedule(days=1, hour=24),
        created_at=datetime(2024, 1, 1, tzinfo=UTC),
    )
    assert compute_due_info(chore, datetime(2024, 2, 1, tzinfo=UTC)) is None


# ── OnceInAWhile ──────────────────────────────────────────


def test_once_in_a_while_is_never_due():
    chore = _chore(OnceInAWhileSchedule(), created_at=datetime(2000, 1, 1, tzinfo=UTC))
    info = compute_due_info(chore, datetime(2024, 1, 1, tzinfo=UTC))
    assert info.next_due is None
    assert info.is_overdue is False


# ── Validation ────────────────────────────────────────────


def test_cron_frequency_floor():
    now = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    with pytest.raises(ScheduleValidationError, match="too frequent"):
        validate_cron_schedule("* * * * *", now)
    with pytest.raises(ScheduleValidationError):
        validate_cron_schedule("*/30 * * * *", now)
    validate_cron_schedule("0 * * * *", now)
    validate_cron_schedule("0 9 * * 1", now)


def test_cron_unparseable_rejected():
    with pytest.raises(ScheduleValidationError):
        validate_cron_schedule("every day")


def test_interval_bounds():
    with pytest.raises(ScheduleValidationError):
        validate_interval_schedule(0)
    with pytest.raises(ScheduleValidationError):
        validate_interval_schedule(500)
    validate_interval_schedule(1)
    validate_interval_schedule(365)


def test_interval_time_bounds():
    with pytest.raises(ScheduleValidationError):
        validate_interval_schedule(1, hour=24)
    with pytest.raises(ScheduleValidationError):
        validate_interval_schedule(1, minute=60)
    validate_interval_schedule(1, hour=23, minute=59)


def test_validate_schedule_dispatch():
    validate_schedule(OnceInAWhileSchedule())
    with pytest.raises(ScheduleValidationError):
        validate_schedule(IntervalSchedule(days=0))
    with pytest.raises(ScheduleValidationError):
        validate_schedule(CronSchedule(expression="* * * * *"))


# ── Collector ─────────────────────────────────────────────


def test_collect_due_filters_and_sorts():
    now = datetime(2024, 6, 1, tzinfo=UTC)
    old = datetime(2024, 1, 1, tzinfo=UTC)
    chores = [
        _chore(OnceInAWhileSchedule(), created_at=old, chore_id="once"),
        _chore(IntervalSchedule(days=30), created_at=old, chore_id="monthly"),
        _chore(IntervalSchedule(days=7), created_at=old, chore_id="weekly"),
        _chore(IntervalSchedule(days=7), created_at=now, chore_id="fresh"),
        _chore(CronSchedule(expression="bogus"), created_at=old, chore_id="broken"),
    ]

    due = collect_due(chores, now)
    assert [d.chore.id for d in due] == ["weekly", "monthly"]

    everything = collect_due(chores, now, include_upcoming=True)
    assert [d.chore.id for d in everything] == ["weekly", "monthly", "fresh", "once"]


def test_collect_due_ties_keep_input_order():
    now = datetime(2024, 6, 1, tzinfo=UTC)
    old = datetime(2024, 1, 1, tzinfo=UTC)
    chores = [
        _chore(IntervalSchedule(days=1), created_at=old, chore_id="b"),
        _chore(IntervalSchedule(days=1), created_at=old, chore_id="a"),
    ]
    assert [d.chore.id for d in collect_due(chores, now)] == ["b", "a"]


def test_collect_due_empty():
    assert collect_due([], datetime(2024, 1, 1, tzinfo=UTC)) == []
