"""SQLite-backed chore store for nagbot.

4 tables:
    chores, completions, notification_events, notification_deliveries

The store is the single source of truth shared by the event generator, the
delivery dispatcher, and the Telegram callback handler. Deduplication relies
on the UNIQUE constraints below (``ON CONFLICT DO NOTHING``), so concurrent
writers, in-process or across processes, need no extra locking.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from nagbot.core.notifications.types import (
    EVENT_TYPE_DUE,
    NotificationDelivery,
    NotificationEvent,
    PendingDelivery,
)
from nagbot.core.schedule.evaluator import validate_schedule
from nagbot.core.schedule.types import (
    Chore,
    ChoreWithLastCompletion,
    Completion,
    CronSchedule,
    IntervalSchedule,
    OnceInAWhileSchedule,
    Schedule,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(dt: datetime) -> str:
    """Fixed-width UTC ISO string: text order equals time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class ChoreStore:
    """SQLite chore store: single source of truth."""

    def __init__(self, db_path: str = "data/nagbot.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"ChoreStore initialized: {db_path}")

    @contextmanager
    def _get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    # ════════════════════════════════════════════════════════════
    # CHORES
    # ════════════════════════════════════════════════════════════

    def create_chore(
        self,
        name: str,
        schedule: Schedule,
        description: str | None = None,
        created_at: datetime | None = None,
    ) -> Chore:
        """Validate the schedule and insert a new chore.

        ``created_at`` defaults to now; passing an earlier time backdates the
        chore (its schedule is anchored on creation until first completed).
        """
        validate_schedule(schedule)
        chore_id = str(uuid.uuid4())
        created = created_at or _now()
        updated = _now()
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO chores
                   (id, name, description, schedule_type, cron_schedule,
                    interval_days, interval_time_hour, interval_time_minute,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    chore_id, name, description, *_schedule_columns(schedule),
                    _ts(created), _ts(updated),
                ),
            )
            conn.commit()
        logger.info(f"Chore created: {chore_id} ({name}, {schedule.kind})")
        return Chore(
            id=chore_id,
            name=name,
            description=description,
            schedule=schedule,
            created_at=created,
            updated_at=updated,
        )

    def get_chore(self, chore_id: str) -> ChoreWithLastCompletion | None:
        with self._get_conn() as conn:
            row = conn.execute(
                _CHORE_SELECT + " WHERE c.id = ?", (chore_id,)
            ).fetchone()
        return _chore_from_row(row) if row else None

    def update_chore_schedule(self, chore_id: str, schedule: Schedule) -> bool:
        """Validate and replace a chore's schedule. Returns True if the chore existed."""
        validate_schedule(schedule)
        with self._get_conn() as conn:
            cursor = conn.execute(
                """UPDATE chores
                   SET schedule_type = ?, cron_schedule = ?, interval_days = ?,
                       interval_time_hour = ?, interval_time_minute = ?,
                       updated_at = ?
                   WHERE id = ?""",
                (*_schedule_columns(schedule), _ts(_now()), chore_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def delete_chore(self, chore_id: str) -> bool:
        """Delete a chore and (by cascade) its completions and notifications."""
        with self._get_conn() as conn:
            cursor = conn.execute("DELETE FROM chores WHERE id = ?", (chore_id,))
            conn.commit()
        return cursor.rowcount > 0

    def chore_exists(self, chore_id: str) -> bool:
        with self._get_conn() as conn:
            return (
                conn.execute(
                    "SELECT 1 FROM chores WHERE id = ?", (chore_id,)
                ).fetchone()
                is not None
            )

    def count_chores(self) -> int:
        with self._get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM chores").fetchone()[0]

    def list_due_candidates(self) -> list[ChoreWithLastCompletion]:
        """All chores with their last completion time, for due calculation.

        Rows whose schedule columns are inconsistent are logged and skipped.
        """
        with self._get_conn() as conn:
            rows = conn.execute(_CHORE_SELECT + " ORDER BY c.name").fetchall()

        result = []
        for row in rows:
            try:
                result.append(_chore_from_row(row))
            except ValueError as e:
                logger.warning(f"Skipping chore {row['id']}: {e}")
        return result

    # ════════════════════════════════════════════════════════════
    # COMPLETIONS
    # ════════════════════════════════════════════════════════════

    def create_completion(
        self,
        chore_id: str,
        completed_at: datetime | None = None,
        notes: str | None = None,
    ) -> Completion:
        """Record a completion. Raises LookupError if the chore does not exist."""
        completion_id = str(uuid.uuid4())
        now = _now()
        completed = completed_at or now
        with self._get_conn() as conn:
            try:
                conn.execute(
                    """INSERT INTO completions (id, chore_id, completed_at, notes, created_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (completion_id, chore_id, _ts(completed), notes, _ts(now)),
                )
            except sqlite3.IntegrityError as e:
                raise LookupError(f"Chore not found: {chore_id}") from e
            conn.commit()
        logger.info(f"Completion recorded for chore {chore_id}")
        return Completion(
            id=completion_id,
            chore_id=chore_id,
            completed_at=completed,
            notes=notes,
            created_at=now,
        )

    def completion_exists(self, chore_id: str, since: datetime | None = None) -> bool:
        """True if the chore has a completion (at or after ``since``, when given)."""
        with self._get_conn() as conn:
            if since is None:
                row = conn.execute(
                    "SELECT 1 FROM completions WHERE chore_id = ? LIMIT 1",
                    (chore_id,),
                ).fetchone()
            else:
                row = conn.execute(
                    """SELECT 1 FROM completions
                       WHERE chore_id = ? AND completed_at >= ? LIMIT 1""",
                    (chore_id, _ts(since)),
                ).fetchone()
        return row is not None

    def list_completions(self, chore_id: str, limit: int = 20) -> list[Completion]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT * FROM completions WHERE chore_id = ?
                   ORDER BY completed_at DESC LIMIT ?""",
                (chore_id, limit),
            ).fetchall()
        return [
            Completion(
                id=r["id"],
                chore_id=r["chore_id"],
                completed_at=_parse_ts(r["completed_at"]),
                notes=r["notes"],
                created_at=_parse_ts(r["created_at"]),
            )
            for r in rows
        ]

    # ════════════════════════════════════════════════════════════
    # NOTIFICATION EVENTS + DELIVERIES
    # ════════════════════════════════════════════════════════════

    def upsert_due_event_with_deliveries(
        self,
        chore_id: str,
        due_at: datetime,
        title: str,
        body: str,
        channels: Iterable[str],
    ) -> str:
        """Create (or find) the due event and enqueue a pending delivery per channel.

        Runs in a single transaction. An existing event for the same
        (chore_id, due_at) is reused and existing deliveries are left as-is.
        Returns the event id.
        """
        now = _ts(_now())
        due = _ts(due_at)
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO notification_events
                   (id, chore_id, event_type, due_at, title, body, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(chore_id, event_type, due_at) DO NOTHING""",
                (str(uuid.uuid4()), chore_id, EVENT_TYPE_DUE, due, title, body, now),
            )
            event_id = conn.execute(
                """SELECT id FROM notification_events
                   WHERE chore_id = ? AND event_type = ? AND due_at = ?""",
                (chore_id, EVENT_TYPE_DUE, due),
            ).fetchone()["id"]

            for channel in channels:
                conn.execute(
                    """INSERT INTO notification_deliveries
                       (id, event_id, channel, status, attempt_count,
                        created_at, updated_at)
                       VALUES (?, ?, ?, 'pending', 0, ?, ?)
                       ON CONFLICT(event_id, channel) DO NOTHING""",
                    (str(uuid.uuid4()), event_id, channel, now, now),
                )
            conn.commit()
        return event_id

    def list_pending_deliveries(
        self, limit: int, max_attempts: int
    ) -> list[PendingDelivery]:
        """Pending and retryable failed deliveries, oldest due first."""
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT
                       d.id AS delivery_id,
                       d.event_id AS event_id,
                       d.channel AS channel,
                       d.attempt_count AS attempt_count,
                       e.chore_id AS chore_id,
                       e.event_type AS event_type,
                       e.due_at AS due_at,
                       e.title AS title,
                       e.body AS body
                   FROM notification_deliveries d
                   INNER JOIN notification_events e ON e.id = d.event_id
                   WHERE d.status IN ('pending', 'failed')
                     AND d.attempt_count < ?
                   ORDER BY e.due_at ASC, d.created_at ASC, d.rowid ASC
                   LIMIT ?""",
                (max_attempts, limit),
            ).fetchall()
        return [
            PendingDelivery(**{**dict(r), "due_at": _parse_ts(r["due_at"])})
            for r in rows
        ]

    def mark_delivered(self, delivery_id: str) -> bool:
        """Mark a delivery delivered. Returns False if unknown or already delivered."""
        now = _ts(_now())
        with self._get_conn() as conn:
            cursor = conn.execute(
                """UPDATE notification_deliveries
                   SET status = 'delivered', delivered_at = ?, last_attempted_at = ?,
                       last_error = NULL, updated_at = ?
                   WHERE id = ? AND status != 'delivered'""",
                (now, now, now, delivery_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def mark_failed(self, delivery_id: str, error: str) -> bool:
        """Record a failed attempt (attempt_count + 1). Delivered rows are left alone."""
        now = _ts(_now())
        with self._get_conn() as conn:
            cursor = conn.execute(
                """UPDATE notification_deliveries
                   SET status = 'failed', attempt_count = attempt_count + 1,
                       last_error = ?, last_attempted_at = ?, updated_at = ?
                   WHERE id = ? AND status != 'delivered'""",
                (error, now, now, delivery_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def get_event(self, event_id: str) -> NotificationEvent | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM notification_events WHERE id = ?", (event_id,)
            ).fetchone()
        return _event_from_row(row) if row else None

    def list_events(self, chore_id: str | None = None) -> list[NotificationEvent]:
        with self._get_conn() as conn:
            if chore_id:
                rows = conn.execute(
                    """SELECT * FROM notification_events
                       WHERE chore_id = ? ORDER BY due_at""",
                    (chore_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM notification_events ORDER BY due_at"
                ).fetchall()
        return [_event_from_row(r) for r in rows]

    def get_delivery(self, delivery_id: str) -> NotificationDelivery | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM notification_deliveries WHERE id = ?", (delivery_id,)
            ).fetchone()
        return _delivery_from_row(row) if row else None

    def list_deliveries(
        self, event_id: str | None = None, limit: int = 50
    ) -> list[NotificationDelivery]:
        with self._get_conn() as conn:
            if event_id:
                rows = conn.execute(
                    """SELECT * FROM notification_deliveries
                       WHERE event_id = ? ORDER BY created_at, rowid LIMIT ?""",
                    (event_id, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    """SELECT * FROM notification_deliveries
                       ORDER BY created_at DESC, rowid DESC LIMIT ?""",
                    (limit,),
                ).fetchall()
        return [_delivery_from_row(r) for r in rows]

    def delivery_counts(self) -> dict[str, int]:
        """Number of deliveries per status."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM notification_deliveries GROUP BY status"
            ).fetchall()
        return {r["status"]: r["n"] for r in rows}


# ════════════════════════════════════════════════════════════
# ROW MAPPING
# ════════════════════════════════════════════════════════════

_CHORE_SELECT = """
    SELECT
        c.id, c.name, c.description,
        c.schedule_type, c.cron_schedule,
        c.interval_days, c.interval_time_hour, c.interval_time_minute,
        c.created_at, c.updated_at,
        (SELECT MAX(completed_at) FROM completions WHERE chore_id = c.id)
            AS last_completed_at
    FROM chores c
"""


def _schedule_columns(schedule: Schedule) -> tuple[Any, ...]:
    """(schedule_type, cron_schedule, interval_days, hour, minute)."""
    if isinstance(schedule, CronSchedule):
        return ("cron", schedule.expression, None, None, None)
    if isinstance(schedule, IntervalSchedule):
        return ("interval", None, schedule.days, schedule.hour, schedule.minute)
    return ("once_in_a_while", None, None, None, None)


def _schedule_from_row(row: sqlite3.Row) -> Schedule:
    kind = row["schedule_type"]
    if kind == "cron":
        if not row["cron_schedule"]:
            raise ValueError("cron schedule without expression")
        return CronSchedule(expression=row["cron_schedule"])
    if kind == "interval":
        if row["interval_days"] is None:
            raise ValueError("interval schedule without interval_days")
        return IntervalSchedule(
            days=row["interval_days"],
            hour=row["interval_time_hour"],
            minute=row["interval_time_minute"],
        )
    if kind == "once_in_a_while":
        return OnceInAWhileSchedule()
    raise ValueError(f"unknown schedule type '{kind}'")


def _chore_from_row(row: sqlite3.Row) -> ChoreWithLastCompletion:
    return ChoreWithLastCompletion(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        schedule=_schedule_from_row(row),
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        last_completed_at=_parse_ts(row["last_completed_at"]),
    )


def _event_from_row(row: sqlite3.Row) -> NotificationEvent:
    return NotificationEvent(
        id=row["id"],
        chore_id=row["chore_id"],
        event_type=row["event_type"],
        due_at=_parse_ts(row["due_at"]),
        title=row["title"],
        body=row["body"],
        created_at=_parse_ts(row["created_at"]),
    )


def _delivery_from_row(row: sqlite3.Row) -> NotificationDelivery:
    data = dict(row)
    for key in ("last_attempted_at", "delivered_at", "created_at", "updated_at"):
        data[key] = _parse_ts(data[key])
    return NotificationDelivery(**data)


# ════════════════════════════════════════════════════════════
# SQL SCHEMA
# ════════════════════════════════════════════════════════════

_SCHEMA = """
-- 1. Chores (exactly one schedule variant per row)
CREATE TABLE IF NOT EXISTS chores (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    schedule_type TEXT NOT NULL
        CHECK(schedule_type IN ('cron', 'interval', 'once_in_a_while')),
    cron_schedule TEXT,
    interval_days INTEGER
        CHECK(interval_days IS NULL OR (interval_days >= 1 AND interval_days <= 365)),
    interval_time_hour INTEGER
        CHECK(interval_time_hour IS NULL OR (interval_time_hour >= 0 AND interval_time_hour <= 23)),
    interval_time_minute INTEGER
        CHECK(interval_time_minute IS NULL OR (interval_time_minute >= 0 AND interval_time_minute <= 59)),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK(
        (schedule_type = 'cron' AND cron_schedule IS NOT NULL) OR
        (schedule_type = 'interval' AND interval_days IS NOT NULL) OR
        (schedule_type = 'once_in_a_while')
    )
);

-- 2. Completions
CREATE TABLE IF NOT EXISTS completions (
    id TEXT PRIMARY KEY,
    chore_id TEXT NOT NULL REFERENCES chores(id) ON DELETE CASCADE,
    completed_at TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_completions_chore ON completions(chore_id, completed_at);

-- 3. Notification events (one per due occurrence)
CREATE TABLE IF NOT EXISTS notification_events (
    id TEXT PRIMARY KEY,
    chore_id TEXT NOT NULL REFERENCES chores(id) ON DELETE CASCADE,
    event_type TEXT NOT NULL CHECK(event_type IN ('due')),
    due_at TEXT NOT NULL,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(chore_id, event_type, due_at)
);
CREATE INDEX IF NOT EXISTS idx_notification_events_due_at ON notification_events(due_at);

-- 4. Notification deliveries (one per event + channel)
CREATE TABLE IF NOT EXISTS notification_deliveries (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL REFERENCES notification_events(id) ON DELETE CASCADE,
    channel TEXT NOT NULL,
    status TEXT NOT NULL CHECK(status IN ('pending', 'failed', 'delivered')),
    attempt_count INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    last_attempted_at TEXT,
    delivered_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(event_id, channel)
);
CREATE INDEX IF NOT EXISTS idx_notification_deliveries_status
    ON notification_deliveries(status, attempt_count);
"""
