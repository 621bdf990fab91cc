"""Delivery dispatcher: push pending deliveries through their channel senders."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger
from pydantic import BaseModel

if TYPE_CHECKING:
    from nagbot.core.channels.base import SenderRegistry
    from nagbot.storage.store import ChoreStore


class DispatchSummary(BaseModel):
    """Outcome counts for one dispatcher tick."""

    delivered: int = 0
    failed: int = 0
    unroutable: int = 0

    @property
    def total(self) -> int:
        return self.delivered + self.failed + self.unroutable


async def dispatch_pending_once(
    store: ChoreStore,
    registry: SenderRegistry,
    batch_size: int,
    max_attempts: int,
) -> DispatchSummary:
    """Run one dispatcher tick over at most ``batch_size`` deliveries."""
    summary = DispatchSummary()
    try:
        pending = store.list_pending_deliveries(batch_size, max_attempts)
    except Exception as e:
        logger.error(f"Failed to load pending notification deliveries: {e}")
        return summary

    for delivery in pending:
        sender = registry.get(delivery.channel)
        if sender is None:
            summary.unroutable += 1
            logger.warning(
                f"No sender for channel '{delivery.channel}' "
                f"(delivery {delivery.delivery_id})"
            )
            _record_failure(
                store,
                delivery.delivery_id,
                f"No sender configured for channel: {delivery.channel}",
            )
            continue

        try:
            await sender.send(delivery)
        except Exception as e:
            summary.failed += 1
            logger.warning(
                f"Delivery {delivery.delivery_id} via {delivery.channel} failed "
                f"(attempt {delivery.attempt_count + 1}/{max_attempts}): {e}"
            )
            _record_failure(store, delivery.delivery_id, str(e) or type(e).__name__)
            continue

        summary.delivered += 1
        try:
            store.mark_delivered(delivery.delivery_id)
        except Exception as e:
            logger.error(
                f"Failed to mark delivery {delivery.delivery_id} delivered: {e}"
            )

    if summary.total:
        logger.info(
            f"Dispatcher tick: {summary.delivered} delivered, "
            f"{summary.failed} failed, {summary.unroutable} unroutable"
        )
    return summary


def _record_failure(store: ChoreStore, delivery_id: str, error: str) -> None:
    try:
        store.mark_failed(delivery_id, error)
    except Exception as e:
        logger.error(f"Failed to mark delivery {delivery_id} failed: {e}")
