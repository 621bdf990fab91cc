"""NotificationService: APScheduler runtime for the generator and dispatcher loops."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from nagbot.core.notifications.dispatcher import DispatchSummary, dispatch_pending_once
from nagbot.core.notifications.generator import generate_due_events_once

if TYPE_CHECKING:
    from nagbot.core.channels.base import SenderRegistry
    from nagbot.core.config.schema import NotificationsConfig
    from nagbot.storage.store import ChoreStore

GENERATOR_JOB_ID = "notifications:generate"
DISPATCHER_JOB_ID = "notifications:dispatch"


class NotificationService:
    """Runs the two notification loops on one AsyncIOScheduler.

    coalesce + max_instances=1: a tick that overruns its interval never
    overlaps the next one, and missed ticks collapse into a single run.
    The loops share nothing but the store.
    """

    def __init__(
        self,
        store: ChoreStore,
        registry: SenderRegistry,
        config: NotificationsConfig,
    ):
        self.store = store
        self.registry = registry
        self.config = config
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": None,
            },
            timezone=timezone.utc,
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def run_event_generator(self) -> None:
        """Register the generator job (first tick immediately)."""
        self._scheduler.add_job(
            self.generate_once,
            IntervalTrigger(seconds=self.config.poll_interval_s, timezone=timezone.utc),
            id=GENERATOR_JOB_ID,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(
            f"Notification generator scheduled (every {self.config.poll_interval_s}s, "
            f"channels={self.config.channels})"
        )

    def run_dispatcher(self) -> None:
        """Register the dispatcher job (first tick immediately)."""
        self._scheduler.add_job(
            self.dispatch_once,
            IntervalTrigger(
                seconds=self.config.dispatch_interval_s, timezone=timezone.utc
            ),
            id=DISPATCHER_JOB_ID,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(
            f"Notification dispatcher scheduled (every {self.config.dispatch_interval_s}s, "
            f"batch={self.config.batch_size}, max_attempts={self.config.max_attempts})"
        )

    async def start(self) -> None:
        """Register both loops and start the scheduler."""
        self.run_event_generator()
        self.run_dispatcher()
        self._scheduler.start()
        logger.info(
            f"NotificationService started with senders: {self.registry.channels()}"
        )

    async def stop(self) -> None:
        """Shutdown the scheduler. A tick in flight is abandoned, not awaited."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("NotificationService stopped")

    async def generate_once(self) -> int:
        """One generator tick, off the event loop (SQLite calls block)."""
        return await asyncio.to_thread(
            generate_due_events_once, self.store, list(self.config.channels)
        )

    async def dispatch_once(self) -> DispatchSummary:
        """One dispatcher tick."""
        return await dispatch_pending_once(
            self.store,
            self.registry,
            batch_size=self.config.batch_size,
            max_attempts=self.config.max_attempts,
        )
