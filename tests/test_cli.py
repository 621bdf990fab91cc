"""Tests for nagbot.cli."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from nagbot.cli.commands import app
from nagbot.core.schedule import IntervalSchedule
from nagbot.storage.store import ChoreStore

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the CLI at a tmp database; no config.yaml / .env in cwd."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("NAGBOT_CONFIG", raising=False)
    path = tmp_path / "cli.db"
    monkeypatch.setenv("NAGBOT_DATABASE__PATH", str(path))
    return path


@pytest.fixture
def store(db_path):
    return ChoreStore(str(db_path))


def _overdue(store, name="Dishes"):
    created = datetime.now(timezone.utc) - timedelta(days=5)
    return store.create_chore(name, IntervalSchedule(days=1), created_at=created)


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("run", "status", "due", "chores", "notify"):
        assert name in result.output


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "nagbot v" in result.output


def test_status(store):
    _overdue(store)
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Chores" in result.output
    assert "disabled" in result.output


def test_chores_add_variants(store):
    assert runner.invoke(app, ["chores", "add", "Laundry", "--cron", "0 9 * * 1"]).exit_code == 0
    assert runner.invoke(app, ["chores", "add", "Plants", "--every", "3", "--hour", "8"]).exit_code == 0
    assert runner.invoke(app, ["chores", "add", "Windows", "--once"]).exit_code == 0

    kinds = {c.name: c.schedule.kind for c in store.list_due_candidates()}
    assert kinds == {"Laundry": "cron", "Plants": "interval", "Windows": "once_in_a_while"}


def test_chores_add_requires_one_schedule(store):
    result = runner.invoke(app, ["chores", "add", "X"])
    assert result.exit_code == 1
    result = runner.invoke(app, ["chores", "add", "X", "--once", "--every", "2"])
    assert result.exit_code == 1
    assert store.count_chores() == 0


def test_chores_add_rejects_frequent_cron(store):
    result = runner.invoke(app, ["chores", "add", "Spam", "--cron", "* * * * *"])
    assert result.exit_code == 1
    assert "too frequent" in result.output
    assert store.count_chores() == 0


def test_chores_complete(store):
    chore = _overdue(store)
    result = runner.invoke(app, ["chores", "complete", chore.id, "--notes", "done by hand"])
    assert result.exit_code == 0
    assert store.list_completions(chore.id)[0].notes == "done by hand"


def test_chores_complete_unknown(store):
    result = runner.invoke(app, ["chores", "complete", "nope"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_chores_remove(store):
    chore = _overdue(store)
    assert runner.invoke(app, ["chores", "remove", chore.id]).exit_code == 0
    assert not store.chore_exists(chore.id)


def test_due_lists_overdue(store):
    _overdue(store, "Dishes")
    result = runner.invoke(app, ["due"])
    assert result.exit_code == 0
    assert "Dishes" in result.output


def test_due_empty(store):
    result = runner.invoke(app, ["due"])
    assert result.exit_code == 0
    assert "Nothing due" in result.output


def test_notify_generate_and_dispatch_without_sender(store):
    _overdue(store)
    result = runner.invoke(app, ["notify", "generate"])
    assert result.exit_code == 0
    assert "1 due chore(s)" in result.output

    # Telegram not enabled → delivery is unroutable
    result = runner.invoke(app, ["notify", "dispatch"])
    assert result.exit_code == 0
    assert "Warning: no sender configured for channel(s): telegram" in result.output
    assert "1 unroutable" in result.output

    d = store.list_deliveries()[0]
    assert d.status == "failed"
    assert d.attempt_count == 1

    result = runner.invoke(app, ["notify", "deliveries"])
    assert result.exit_code == 0
    assert "failed" in result.output


def test_notify_dispatch_config_error(store, monkeypatch):
    monkeypatch.setenv("NAGBOT_NOTIFICATIONS__ENABLED", "true")
    result = runner.invoke(app, ["notify", "dispatch"])
    assert result.exit_code == 1
    assert "BOT_TOKEN" in result.output


def test_notify_dispatch_no_warning_when_all_channels_routed(store, monkeypatch):
    monkeypatch.setenv("NAGBOT_CHANNELS__TELEGRAM__ENABLED", "true")
    monkeypatch.setenv("NAGBOT_CHANNELS__TELEGRAM__BOT_TOKEN", "1:abc")
    monkeypatch.setenv("NAGBOT_CHANNELS__TELEGRAM__CHAT_ID", "42")
    result = runner.invoke(app, ["notify", "dispatch"])
    assert result.exit_code == 0
    assert "Warning" not in result.output
    assert "0 delivered" in result.output


def test_missing_config_file_exits(db_path, tmp_path, monkeypatch):
    monkeypatch.setenv("NAGBOT_CONFIG", str(tmp_path / "missing.yaml"))
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_run_starts_uvicorn():
    with patch("uvicorn.run") as mock_run:
        result = runner.invoke(app, ["run", "--port", "9000"])
    assert result.exit_code == 0
    mock_run.assert_called_once_with("nagbot.api.app:app", host="0.0.0.0", port=9000, reload=False)
