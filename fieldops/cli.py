"""Field Ops CLI - database setup, server and change-feed tools."""

import asyncio
import json
import logging
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from .config import settings

app = typer.Typer(
    name="fieldops",
    help="Field Ops: canvass, dispatch and live contact sync",
    no_args_is_help=True,
)
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", help="Override FIELDOPS_LOG_LEVEL"),
):
    _configure_logging(log_level or settings.log_level)


@app.command("init-db")
def init_db(
    seed: bool = typer.Option(True, "--seed/--no-seed", help="Insert the default custom fields"),
):
    """Apply migrations to the configured database and seed default fields."""
    from alembic import command
    from alembic.config import Config

    from .database import Database
    from .services import custom_field_svc

    console.print(f"[dim]Migrating {settings.database_url}...[/dim]")
    command.upgrade(Config(str(settings.alembic_ini)), "head")

    if seed:
        async def _seed() -> None:
            database = Database.from_settings(settings)
            await database.init()
            try:
                async with database.session() as db:
                    await custom_field_svc.ensure_default_fields(db)
            finally:
                await database.shutdown()

        asyncio.run(_seed())
    console.print("[green]Database ready.[/green]")


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the Field Ops API and live channel."""
    import uvicorn

    console.print(f"[bold cyan]Starting Field Ops at http://{host}:{port}[/bold cyan]")
    uvicorn.run(
        "fieldops.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


def _changes_table(entries: list[dict[str, Any]]) -> Table:
    table = Table(title="Change ledger")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Table")
    table.add_column("Record", justify="right")
    table.add_column("Action")
    table.add_column("Timestamp", style="dim")
    colors = {"INSERT": "green", "UPDATE": "yellow", "DELETE": "red"}
    for entry in entries:
        action = entry["action"]
        table.add_row(
            str(entry["id"]),
            entry["table_name"],
            str(entry["record_id"]),
            f"[{colors.get(action, 'white')}]{action}[/]",
            entry.get("timestamp") or "",
        )
    return table


@app.command("changes")
def changes(
    url: str = typer.Option("http://127.0.0.1:8030", "--url", "-u", help="Server base URL"),
    since: int = typer.Option(0, "--since", "-s", help="Last known change id"),
    table: str = typer.Option(None, "--table", "-t", help="contacts or interactions"),
    resolved: bool = typer.Option(False, "--resolved", help="Show resolved rows as JSON"),
):
    """Show ledger entries (or resolved rows) newer than a change id."""
    from .live.client import BackfillClient

    async def _fetch() -> Any:
        async with BackfillClient(url) as client:
            if resolved:
                return await client.backfill(since, table)
            return await client.poll_for_changes(since, table)

    try:
        result = asyncio.run(_fetch())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if resolved:
        console.print_json(json.dumps(result, default=str))
        return
    if not result:
        console.print(f"[dim]No changes after {since}.[/dim]")
        return
    console.print(_changes_table(result))


@app.command("watch")
def watch(
    url: str = typer.Option("ws://127.0.0.1:8030/live", "--url", "-u", help="Live channel URL"),
    session_id: str = typer.Option("cli", "--session-id", help="Session identifier"),
):
    """Follow the live channel and print every event."""
    from .live.client import LiveClient

    def _print(message: dict) -> None:
        kind = message.get("type")
        if kind == "initialContacts":
            console.print(
                f"[bold]snapshot[/bold] {len(message.get('contacts') or [])} contacts "
                f"@ {message.get('last_change_id')}"
            )
        else:
            rows = message.get("changes") or []
            ids = ", ".join(
                f"{r.get('id')}{' (deleted)' if r.get('deleted') else ''}" for r in rows
            )
            console.print(f"[cyan]{kind}[/cyan] @ {message.get('last_change_id')}: {ids}")

    client = LiveClient(
        url,
        session_id,
        reconnect_delay=settings.live_reconnect_delay_seconds,
        jitter=settings.live_reconnect_jitter_seconds,
        on_message=_print,
    )
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


if __name__ == "__main__":
    app()
