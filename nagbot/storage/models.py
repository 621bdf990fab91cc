"""Pydantic API models: HTTP request/response shapes."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from nagbot.core.schedule.types import DueInfo


# ════════════════════════════════════════════════════════════
# API REQUEST / RESPONSE
# ════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = ""
    notifications_enabled: bool = False
    channels: list[str] = []


class DueChoreResponse(BaseModel):
    chore_id: str
    name: str
    description: str | None = None
    schedule_type: str
    next_due: datetime | None = None
    is_overdue: bool = False
    last_completed_at: datetime | None = None

    @classmethod
    def from_due_info(cls, info: DueInfo) -> DueChoreResponse:
        chore = info.chore
        return cls(
            chore_id=chore.id,
            name=chore.name,
            description=chore.description,
            schedule_type=chore.schedule.kind,
            next_due=info.next_due,
            is_overdue=info.is_overdue,
            last_completed_at=chore.last_completed_at,
        )


class TelegramWebhookResponse(BaseModel):
    ok: bool = True
    result: str | None = None
