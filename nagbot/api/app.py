"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from nagbot import __version__
from nagbot.api.routes import router as core_router
from nagbot.core.channels.base import build_sender_registry
from nagbot.core.channels.telegram import TelegramCallbackListener
from nagbot.core.channels.telegram import router as telegram_router
from nagbot.core.config.loader import load_config
from nagbot.core.log import setup_logging
from nagbot.core.notifications.service import NotificationService
from nagbot.storage.store import ChoreStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: Config → ChoreStore → senders → NotificationService (+ Telegram listener)."""
    config = load_config()
    setup_logging(config.logging.level, config.logging.json_logs)
    config.validate_notifications()

    store = ChoreStore(str(config.db_path))
    registry = build_sender_registry(config)

    notifications = None
    if config.notifications.enabled:
        notifications = NotificationService(store, registry, config.notifications)
        await notifications.start()
    else:
        logger.info("Notifications disabled")

    telegram = registry.get("telegram")
    listener = None
    listener_task = None
    if telegram is not None and config.channels.telegram.callback_mode == "polling":
        listener = TelegramCallbackListener(
            store, telegram, poll_timeout_s=config.channels.telegram.poll_timeout_s
        )
        listener_task = asyncio.create_task(listener.start())

    app.state.config = config
    app.state.store = store
    app.state.notifications = notifications
    app.state.telegram = telegram

    logger.info(f"nagbot API started (v{__version__})")
    yield

    # Shutdown
    if listener is not None:
        listener.stop()
        listener_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await listener_task
    if notifications is not None:
        await notifications.stop()
    logger.info("nagbot API shutting down")


def create_app() -> FastAPI:
    app = FastAPI(title="nagbot", version=__version__, lifespan=lifespan)
    app.include_router(core_router)
    app.include_router(telegram_router)
    return app


app = create_app()
