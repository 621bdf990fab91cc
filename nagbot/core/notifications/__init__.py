"""Notification engine: due-event generation and delivery dispatch."""

from nagbot.core.notifications.dispatcher import DispatchSummary, dispatch_pending_once
from nagbot.core.notifications.generator import format_due_message, generate_due_events_once
from nagbot.core.notifications.types import (
    EVENT_TYPE_DUE,
    NotificationDelivery,
    NotificationEvent,
    PendingDelivery,
)

__all__ = [
    "EVENT_TYPE_DUE",
    "DispatchSummary",
    "NotificationDelivery",
    "NotificationEvent",
    "PendingDelivery",
    "dispatch_pending_once",
    "format_due_message",
    "generate_due_events_once",
]
