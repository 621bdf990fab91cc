"""Event generator: turn overdue chores into notification events + deliveries."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from loguru import logger

from nagbot.core.schedule.collector import get_due_chores

if TYPE_CHECKING:
    from nagbot.storage.store import ChoreStore


def format_due_message(name: str, due_at: datetime) -> tuple[str, str]:
    """Return (title, body) for a due notification."""
    due_utc = due_at.astimezone(timezone.utc)
    title = f"Chore due: {name}"
    body = f"{name} is due at {due_utc.strftime('%Y-%m-%d %H:%M')} UTC."
    return title, body


def generate_due_events_once(
    store: ChoreStore, channels: Sequence[str], now: datetime | None = None
) -> int:
    """Run one generator tick. Returns the number of chores upserted.

    Safe to repeat: an occurrence already recorded produces no new rows.
    """
    try:
        due = get_due_chores(store, include_upcoming=False, now=now)
    except Exception as e:
        logger.error(f"Failed to load due chores for notifications: {e}")
        return 0

    upserted = 0
    for info in due:
        if info.next_due is None:
            continue
        chore = info.chore
        title, body = format_due_message(chore.name, info.next_due)
        try:
            store.upsert_due_event_with_deliveries(
                chore.id, info.next_due, title, body, channels
            )
        except Exception as e:
            logger.error(f"Failed to create due notification for chore {chore.id}: {e}")
            continue
        upserted += 1

    if upserted:
        logger.debug(f"Notification generator: {upserted} due chore(s) upserted")
    return upserted
