"""nagbot CLI: Typer-based command-line interface."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from nagbot import __version__

app = typer.Typer(
    name="nagbot",
    help="nagbot - chore due-date scheduler and notifier",
    no_args_is_help=True,
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"nagbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """nagbot - chore due-date scheduler and notifier."""


def _open_store():
    from nagbot.core.config.loader import load_config
    from nagbot.core.config.schema import ConfigError
    from nagbot.core.log import setup_logging
    from nagbot.storage.store import ChoreStore

    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    setup_logging(config.logging.level, config.logging.json_logs)
    return config, ChoreStore(str(config.db_path))


def _fmt(dt) -> str:
    return dt.strftime("%Y-%m-%d %H:%M") if dt else "-"


# ════════════════════════════════════════════════════════════
# run - start API server (+ notification loops)
# ════════════════════════════════════════════════════════════


@app.command()
def run(
    port: int = typer.Option(8000, "--port", "-p", help="Port number"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host address"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server (uvicorn) with the notification loops."""
    import uvicorn

    console.print(f"[green]Starting nagbot API on {host}:{port}[/green]")
    uvicorn.run("nagbot.api.app:app", host=host, port=port, reload=reload)


# ════════════════════════════════════════════════════════════
# status - config + DB info
# ════════════════════════════════════════════════════════════


@app.command()
def status() -> None:
    """Show configuration and database status."""
    config, store = _open_store()
    counts = store.delivery_counts()

    table = Table(title="nagbot status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("DB Path", config.database.path)
    table.add_row("Chores", str(store.count_chores()))
    table.add_row("Notifications", "enabled" if config.notifications.enabled else "disabled")
    table.add_row("Channels", ", ".join(config.notifications.channels) or "-")
    table.add_row("Telegram", "enabled" if config.telegram_enabled else "disabled")
    for key in ("pending", "failed", "delivered"):
        table.add_row(f"Deliveries {key}", str(counts.get(key, 0)))

    console.print(table)


# ════════════════════════════════════════════════════════════
# due - overdue / upcoming chores
# ════════════════════════════════════════════════════════════


@app.command()
def due(
    upcoming: bool = typer.Option(False, "--upcoming", "-u", help="Include chores not yet due"),
) -> None:
    """List overdue chores (soonest first)."""
    from nagbot.core.schedule.collector import get_due_chores

    _, store = _open_store()
    infos = get_due_chores(store, include_upcoming=upcoming)

    if not infos:
        console.print("[dim]Nothing due.[/dim]")
        return

    table = Table(title="Due chores")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Schedule", style="yellow")
    table.add_column("Next due (UTC)", style="blue")
    table.add_column("Overdue", style="red")

    for info in infos:
        table.add_row(
            info.chore.id,
            info.chore.name,
            info.chore.schedule.kind,
            _fmt(info.next_due),
            "yes" if info.is_overdue else "",
        )

    console.print(table)


# ════════════════════════════════════════════════════════════
# chores - chore management (sub-command group)
# ════════════════════════════════════════════════════════════

chores_app = typer.Typer(help="Manage chores")
app.add_typer(chores_app, name="chores")


@chores_app.command("add")
def chores_add(
    name: str = typer.Argument(help="Chore name"),
    cron: str | None = typer.Option(None, "--cron", help="Cron expression (UTC)"),
    every: int | None = typer.Option(None, "--every", help="Interval in days"),
    hour: int | None = typer.Option(None, "--hour", help="Hour of day for --every (UTC)"),
    minute: int | None = typer.Option(None, "--minute", help="Minute for --every"),
    once: bool = typer.Option(False, "--once", help="Once in a while (no due date)"),
    description: str | None = typer.Option(None, "--description", "-d"),
) -> None:
    """Add a chore with exactly one schedule option."""
    from nagbot.core.schedule.evaluator import ScheduleValidationError
    from nagbot.core.schedule.types import (
        CronSchedule,
        IntervalSchedule,
        OnceInAWhileSchedule,
    )

    chosen = [cron is not None, every is not None, once]
    if sum(chosen) != 1:
        console.print("[red]Pass exactly one of --cron, --every, --once[/red]")
        raise typer.Exit(1)

    if cron is not None:
        schedule = CronSchedule(expression=cron)
    elif every is not None:
        schedule = IntervalSchedule(days=every, hour=hour, minute=minute)
    else:
        schedule = OnceInAWhileSchedule()

    _, store = _open_store()
    try:
        chore = store.create_chore(name, schedule, description=description)
    except ScheduleValidationError as e:
        console.print(f"[red]Invalid schedule: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Chore added:[/green] {chore.id} ({chore.name})")


@chores_app.command("list")
def chores_list() -> None:
    """List all chores."""
    from nagbot.core.schedule.collector import get_due_chores

    _, store = _open_store()
    infos = get_due_chores(store, include_upcoming=True)

    if not infos:
        console.print("[dim]No chores found.[/dim]")
        return

    table = Table(title="Chores")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Schedule", style="yellow")
    table.add_column("Last done (UTC)", style="green")
    table.add_column("Next due (UTC)", style="blue")

    for info in infos:
        table.add_row(
            info.chore.id,
            info.chore.name,
            info.chore.schedule.kind,
            _fmt(info.chore.last_completed_at),
            _fmt(info.next_due),
        )

    console.print(table)


@chores_app.command("complete")
def chores_complete(
    chore_id: str = typer.Argument(help="Chore ID"),
    notes: str | None = typer.Option(None, "--notes", "-n"),
) -> None:
    """Record a completion for a chore."""
    _, store = _open_store()
    try:
        store.create_completion(chore_id, notes=notes)
    except LookupError:
        console.print(f"[red]Chore not found: {chore_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Chore marked done:[/green] {chore_id}")


@chores_app.command("remove")
def chores_remove(
    chore_id: str = typer.Argument(help="Chore ID to remove"),
) -> None:
    """Remove a chore with its completions and notifications."""
    _, store = _open_store()
    if not store.delete_chore(chore_id):
        console.print(f"[red]Chore not found: {chore_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Chore removed:[/green] {chore_id}")


# ════════════════════════════════════════════════════════════
# notify - run single notification ticks (sub-command group)
# ════════════════════════════════════════════════════════════

notify_app = typer.Typer(help="Notification events and deliveries")
app.add_typer(notify_app, name="notify")


@notify_app.command("generate")
def notify_generate() -> None:
    """Run one generator tick: create events for overdue chores."""
    from nagbot.core.notifications.generator import generate_due_events_once

    config, store = _open_store()
    count = generate_due_events_once(store, config.notifications.channels)
    console.print(f"[green]{count} due chore(s) upserted[/green]")


@notify_app.command("dispatch")
def notify_dispatch() -> None:
    """Run one dispatcher tick: send pending deliveries."""
    from nagbot.core.channels.base import build_sender_registry
    from nagbot.core.config.schema import ConfigError
    from nagbot.core.notifications.dispatcher import dispatch_pending_once

    config, store = _open_store()
    try:
        config.validate_notifications()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    registry = build_sender_registry(config)
    unrouted = [c for c in config.notifications.channels if c not in registry]
    if unrouted:
        console.print(
            f"[yellow]Warning: no sender configured for channel(s): {', '.join(unrouted)}; "
            f"their pending deliveries will be marked failed[/yellow]"
        )

    summary = asyncio.run(
        dispatch_pending_once(
            store,
            registry,
            batch_size=config.notifications.batch_size,
            max_attempts=config.notifications.max_attempts,
        )
    )
    console.print(
        f"[green]{summary.delivered} delivered[/green], "
        f"[yellow]{summary.failed} failed[/yellow], "
        f"[red]{summary.unroutable} unroutable[/red]"
    )


@notify_app.command("deliveries")
def notify_deliveries(
    limit: int = typer.Option(20, "--limit", "-l", help="Max rows"),
) -> None:
    """List the most recent deliveries."""
    _, store = _open_store()
    deliveries = store.list_deliveries(limit=limit)

    if not deliveries:
        console.print("[dim]No deliveries found.[/dim]")
        return

    table = Table(title="Deliveries")
    table.add_column("ID", style="cyan")
    table.add_column("Channel", style="blue")
    table.add_column("Status", style="green")
    table.add_column("Attempts", style="yellow")
    table.add_column("Last error", style="red")

    for d in deliveries:
        table.add_row(
            d.id, d.channel, d.status, str(d.attempt_count), d.last_error or ""
        )

    console.print(table)
