"""Due-set collection: evaluate every chore and order the result."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from nagbot.core.schedule.evaluator import compute_due_info
from nagbot.core.schedule.types import ChoreWithLastCompletion, DueInfo

if TYPE_CHECKING:
    from nagbot.storage.store import ChoreStore


def collect_due(
    chores: Iterable[ChoreWithLastCompletion],
    now: datetime,
    include_upcoming: bool = False,
) -> list[DueInfo]:
    """Evaluate chores and keep the overdue ones (or all, with include_upcoming).

    Sorted by next_due ascending; chores without a due date come last.
    The sort is stable, so ties keep their input order.
    """
    result: list[DueInfo] = []
    for chore in chores:
        info = compute_due_info(chore, now)
        if info is None:
            continue
        if info.is_overdue or include_upcoming:
            result.append(info)

    result.sort(key=lambda d: (d.next_due is None, d.next_due or now))
    return result


def get_due_chores(
    store: ChoreStore, include_upcoming: bool = False, now: datetime | None = None
) -> list[DueInfo]:
    """Read all chores from the store and return the due (or upcoming) set."""
    now = now or datetime.now(timezone.utc)
    return collect_due(store.list_due_candidates(), now, include_upcoming)
