"""Typer CLI for Rallypoint."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .seed import seed_fake_data
from .storage import init_db, upgrade_database

app = typer.Typer(help="Rallypoint command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI application."""
    init_db()
    config = uvicorn.Config(
        "rallypoint.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting Rallypoint on {host}:{port}")
    server.run()


@app.command("seed-data")
def seed_data(
    sections: int = typer.Option(
        settings.seed_sections, "--sections", min=0, help="Number of sections to create"
    ),
    max_members: int = typer.Option(
        settings.seed_members_per_section,
        "--max-members",
        min=0,
        help="Maximum members to add to each section",
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    max_rsvps: int = typer.Option(
        settings.seed_rsvps_per_event,
        "--max-rsvps",
        min=0,
        help="Maximum RSVPs to attach to each event",
    ),
):
    """Populate the database with fake sections and events for testing."""
    init_db()
    stats = seed_fake_data(
        section_count=sections,
        max_members_per_section=max_members,
        event_count=events,
        max_rsvps_per_event=max_rsvps,
    )
    typer.echo(
        f"Seed complete: {stats['sections']} sections, {stats['members']} members, "
        f"{stats['events']} events, {stats['rsvps']} RSVPs created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    strict_capacity: bool | None = typer.Option(
        None,
        "--strict-capacity/--soft-capacity",
        help="Lock the event row while checking RSVP capacity",
    ),
    members_per_page: int | None = typer.Option(
        None, "--members-per-page", min=1, help="Member listing page size"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None,
        "--config-path",
        help="Path to rallypoint.toml (default: ./rallypoint.toml)",
    ),
    seed_sections: int | None = typer.Option(
        None, "--seed-sections", min=0, help="Default seed-data sections"
    ),
    seed_members_per_section: int | None = typer.Option(
        None,
        "--seed-members-per-section",
        min=0,
        help="Default seed-data members/section",
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_rsvps_per_event: int | None = typer.Option(
        None, "--seed-rsvps-per-event", min=0, help="Default seed-data RSVPs per event"
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "strict_capacity": strict_capacity,
        "members_per_page": members_per_page,
        "app_host": host,
        "app_port": port,
        "seed_sections": seed_sections,
        "seed_members_per_section": seed_members_per_section,
        "seed_events": seed_events,
        "seed_rsvps_per_event": seed_rsvps_per_event,
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
