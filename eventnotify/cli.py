"""Typer CLI for eventnotify."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .database import get_session
from .dispatcher import process_due_notifications
from .events import UnknownEventError, handle_event
from .crud import list_notifications_for_user
from .reminders import cancel_rsvp_reminders
from .scheduler import start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import (
    ensure_root_token,
    fetch_root_token,
    init_db,
    rotate_root_token,
    upgrade_database,
)
from .utils import humanize_time

app = typer.Typer(help="eventnotify command-line interface")


def _exit_if_readonly(exc: OperationalError, action: str) -> None:
    message = str(getattr(exc, "orig", exc)).lower()
    if "readonly" in message or "read-only" in message:
        typer.secho(
            f"Unable to {action} because the database is read-only. "
            f"Ensure write access to {settings.database_path}.",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("admin-token")
def admin_token() -> None:
    """Print the API bearer token."""
    init_db()
    typer.echo(fetch_root_token())


@app.command("rotate-admin-token")
def rotate_admin_token() -> None:
    """Rotate the API bearer token."""
    try:
        init_db()
        token = rotate_root_token()
    except OperationalError as exc:
        _exit_if_readonly(exc, "rotate the token")
        raise
    typer.echo(token)


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        _exit_if_readonly(exc, "upgrade")
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    ensure_root_token()
    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("dispatch")
def dispatch(
    batch_size: int | None = typer.Option(
        None, "--batch-size", min=1, help="Override the per-tick batch size"
    ),
) -> None:
    """Run one dispatcher tick now."""
    init_db()
    stats = process_due_notifications(batch_size=batch_size)
    typer.echo(f"Dispatch complete: {stats}")
    if stats.get("error"):
        raise typer.Exit(code=1)


@app.command("emit")
def emit(
    name: str = typer.Argument(..., help="Event name, e.g. rsvp/created"),
    data: str = typer.Option("{}", "--data", help="JSON object for event.data"),
) -> None:
    """Deliver a domain event to its handler, as the event bus would."""
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON for --data: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=2)
    init_db()
    try:
        result = handle_event(name, parsed)
    except UnknownEventError:
        typer.secho(f"No handler subscribes to {name!r}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except ValidationError as exc:
        typer.secho(
            f"Invalid data for {name}: {exc.error_count()} error(s)",
            err=True,
            fg=typer.colors.RED,
        )
        for error in exc.errors(include_url=False):
            location = ".".join(str(part) for part in error["loc"]) or "data"
            typer.secho(f"- {location}: {error['msg']}", err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps(result, indent=2, default=str))


@app.command("cancel")
def cancel(
    user_id: str = typer.Argument(..., help="Recipient user id"),
    event_id: str = typer.Argument(..., help="Event id"),
) -> None:
    """Cancel a user's pending reminders for an event."""
    init_db()
    result = cancel_rsvp_reminders({"user_id": user_id, "event_id": event_id})
    typer.echo(f"Cancelled {result.get('cancelled', 0)} pending notification(s).")


@app.command("scheduled")
def scheduled(
    user_id: str = typer.Argument(..., help="Recipient user id"),
    status: str | None = typer.Option(None, "--status", help="Filter by status"),
) -> None:
    """List scheduled notifications for a user."""
    init_db()
    with get_session() as session:
        rows = list_notifications_for_user(session, user_id, status=status)
        if not rows:
            typer.echo("No scheduled notifications.")
            return
        for row in rows:
            typer.echo(
                f"{row.scheduled_for.isoformat()} ({humanize_time(row.scheduled_for)}) "
                f"{row.type} [{row.status}]"
            )


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with the dispatcher scheduler."""
    init_db()
    start_scheduler()
    config = uvicorn.Config(
        "eventnotify.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting eventnotify on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of fake events"
    ),
    max_rsvps: int = typer.Option(
        settings.seed_rsvps_per_event,
        "--max-rsvps",
        min=0,
        help="Maximum RSVPs to attach to each event",
    ),
):
    """Create fake profiles and RSVPs, scheduling their reminder cascades."""
    init_db()
    stats = seed_fake_data(event_count=events, max_rsvps_per_event=max_rsvps)
    typer.echo(
        f"Seed complete: {stats['profiles']} profiles, {stats['rsvps']} RSVPs, "
        f"{stats['scheduled']} notifications scheduled."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    batch_size: int | None = typer.Option(
        None, "--batch-size", min=1, help="Due rows claimed per dispatcher tick"
    ),
    interval_seconds: int | None = typer.Option(
        None, "--interval-seconds", min=1, help="Seconds between dispatcher ticks"
    ),
    feedback_delay_hours: int | None = typer.Option(
        None,
        "--feedback-delay-hours",
        min=1,
        help="Default hours after an event ends before asking for feedback",
    ),
    event_timezone: str | None = typer.Option(
        None, "--event-timezone", help="Timezone used to render event times"
    ),
    push_webhook_url: str | None = typer.Option(
        None, "--push-webhook-url", help="Endpoint receiving push deliveries"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle the background dispatcher",
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None,
        "--config-path",
        help="Path to eventnotify.toml (default: ./eventnotify.toml)",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "dispatch_batch_size": batch_size,
        "dispatch_interval_seconds": interval_seconds,
        "default_feedback_delay_hours": feedback_delay_hours,
        "event_timezone": event_timezone,
        "push_webhook_url": push_webhook_url,
        "enable_scheduler": enable_scheduler,
        "app_host": host,
        "app_port": port,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
