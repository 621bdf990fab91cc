"""Core API routes: health, due chores."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger

from nagbot import __version__
from nagbot.api.deps import get_store
from nagbot.core.schedule.collector import get_due_chores
from nagbot.storage.models import DueChoreResponse, HealthResponse
from nagbot.storage.store import ChoreStore

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Health check."""
    notifications = getattr(request.app.state, "notifications", None)
    return HealthResponse(
        status="ok",
        version=__version__,
        notifications_enabled=notifications is not None and notifications.running,
        channels=notifications.registry.channels() if notifications else [],
    )


@router.get("/chores/due", response_model=list[DueChoreResponse])
async def due_chores(
    include_upcoming: bool = Query(default=False),
    store: ChoreStore = Depends(get_store),
):
    """Overdue chores (or every scheduled chore with include_upcoming), soonest first."""
    try:
        due = get_due_chores(store, include_upcoming=include_upcoming)
    except Exception as e:
        logger.error(f"Due chores error: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return [DueChoreResponse.from_due_info(info) for info in due]
