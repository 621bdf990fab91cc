"""Tests for nagbot.api."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from nagbot import __version__
from nagbot.api.app import create_app, lifespan
from nagbot.core.config import Config
from nagbot.core.schedule import CronSchedule, IntervalSchedule, OnceInAWhileSchedule
from nagbot.storage.store import ChoreStore


@pytest.fixture
def store(tmp_path):
    return ChoreStore(str(tmp_path / "test.db"))


@pytest.fixture
def app(tmp_path, store):
    """Create test app with state set manually (lifespan does not run)."""
    application = create_app()
    application.state.config = Config(database={"path": str(tmp_path / "test.db")})
    application.state.store = store
    application.state.notifications = None
    application.state.telegram = None
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c


# --- Health ---

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"] == __version__
    assert data["notifications_enabled"] is False
    assert data["channels"] == []


@pytest.mark.asyncio
async def test_health_with_notifications(app, client):
    notifications = MagicMock()
    notifications.running = True
    notifications.registry.channels.return_value = ["telegram"]
    app.state.notifications = notifications

    data = (await client.get("/health")).json()
    assert data["notifications_enabled"] is True
    assert data["channels"] == ["telegram"]


# --- Due chores ---

@pytest.mark.asyncio
async def test_due_chores_empty(client):
    resp = await client.get("/chores/due")
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_due_chores(client, store):
    long_ago = datetime.now(timezone.utc) - timedelta(days=30)
    weekly = store.create_chore("Vacuum", IntervalSchedule(days=7, hour=10), created_at=long_ago)
    daily = store.create_chore("Dishes", CronSchedule(expression="0 9 * * *"), created_at=long_ago)
    store.create_chore("Windows", OnceInAWhileSchedule())
    store.create_chore("Plants", IntervalSchedule(days=3))

    resp = await client.get("/chores/due")
    assert resp.status_code == 200
    data = resp.json()
    assert [d["chore_id"] for d in data] == [daily.id, weekly.id]
    assert all(d["is_overdue"] for d in data)
    assert data[0]["schedule_type"] == "cron"
    assert data[0]["name"] == "Dishes"


@pytest.mark.asyncio
async def test_due_chores_include_upcoming(client, store):
    store.create_chore("Windows", OnceInAWhileSchedule())
    plants = store.create_chore("Plants", IntervalSchedule(days=3))

    resp = await client.get("/chores/due", params={"include_upcoming": "true"})
    data = resp.json()
    assert [d["name"] for d in data] == ["Plants", "Windows"]
    assert data[0]["chore_id"] == plants.id
    assert data[0]["is_overdue"] is False
    assert data[1]["next_due"] is None


# ── Lifespan ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_lifespan_shutdown_waits_for_listener(tmp_path):
    config = Config(
        database={"path": str(tmp_path / "life.db")},
        channels={"telegram": {"enabled": True, "bot_token": "1:abc", "chat_id": "42"}},
    )
    listeners = []

    class _BlockingListener:
        def __init__(self, store, channel, poll_timeout_s=30):
            self.finished = False
            listeners.append(self)

        async def start(self):
            try:
                await asyncio.Event().wait()
            finally:
                self.finished = True

        def stop(self):
            pass

    application = create_app()
    with (
        patch("nagbot.api.app.load_config", return_value=config),
        patch("nagbot.api.app.setup_logging"),
        patch("nagbot.api.app.TelegramCallbackListener", _BlockingListener),
    ):
        async with lifespan(application):
            await asyncio.sleep(0.01)
            assert application.state.telegram is not None
            assert not listeners[0].finished

    assert listeners[0].finished
