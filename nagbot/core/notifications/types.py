"""Notification event and delivery types: mirror the SQLite tables."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

EVENT_TYPE_DUE = "due"

DeliveryStatus = Literal["pending", "failed", "delivered"]


class NotificationEvent(BaseModel):
    """One due occurrence of a chore. Unique per (chore_id, event_type, due_at)."""

    id: str
    chore_id: str
    event_type: Literal["due"] = EVENT_TYPE_DUE
    due_at: datetime
    title: str
    body: str
    created_at: datetime


class NotificationDelivery(BaseModel):
    """Delivery of an event through one channel. Unique per (event_id, channel)."""

    id: str
    event_id: str
    channel: str
    status: DeliveryStatus = "pending"
    attempt_count: int = 0
    last_error: str | None = None
    last_attempted_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PendingDelivery(BaseModel):
    """A deliverable row: delivery joined with its event."""

    delivery_id: str
    event_id: str
    channel: str
    attempt_count: int
    chore_id: str
    event_type: Literal["due"] = EVENT_TYPE_DUE
    due_at: datetime
    title: str
    body: str
