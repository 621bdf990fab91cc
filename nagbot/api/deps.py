"""FastAPI dependency injection: pull singletons from app.state."""

from __future__ import annotations

from fastapi import Request

from nagbot.core.config.schema import Config
from nagbot.storage.store import ChoreStore


def get_config(request: Request) -> Config:
    """Get Config singleton from app state."""
    return request.app.state.config


def get_store(request: Request) -> ChoreStore:
    """Get ChoreStore singleton from app state."""
    return request.app.state.store
