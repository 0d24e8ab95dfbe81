"""Developer CLI for the building catalogue.

Runs the API server and exercises the same service functions the API uses,
against whatever DATABASE_URL points to.
"""

import json

import typer
import uvicorn
from loguru import logger
from rich.console import Console
from rich.json import JSON
from rich.table import Table

from catalogue.buildings.errors import CatalogueError
from catalogue.buildings.service import get_building, get_building_history, like_building, revert_revision
from catalogue.db.session import init_db

DEFAULT_HOST = "127.0.0.1"

app = typer.Typer(help="Building catalogue developer CLI")
console = Console()


def _fail(error: CatalogueError) -> None:
    console.print(f"[bold red]{error.code}[/bold red]: {error.message}")
    raise typer.Exit(code=1)


@app.command()
def server(
    host: str = typer.Option(DEFAULT_HOST, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Run the FastAPI server."""
    logger.info(f"Starting FastAPI server on {host}:{port} (reload={reload})")
    uvicorn.run("catalogue.main:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db_command() -> None:
    """Create database tables."""
    init_db()
    console.print("[green]Database schema ready[/green]")


@app.command()
def show(building_id: int = typer.Argument(..., help="Building id")) -> None:
    """Print a building's current state."""
    try:
        building = get_building(building_id)
    except CatalogueError as e:
        _fail(e)
    console.print(JSON(building.model_dump_json()))


@app.command()
def history(
    building_id: int = typer.Argument(..., help="Building id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries"),
) -> None:
    """Print a building's revision log, newest first."""
    try:
        entries = get_building_history(building_id, limit=limit)
    except CatalogueError as e:
        _fail(e)

    table = Table(title=f"Building {building_id}")
    table.add_column("log_id", justify="right")
    table.add_column("when")
    table.add_column("user")
    table.add_column("forward")
    table.add_column("reverse")
    for entry in entries:
        table.add_row(
            str(entry.log_id),
            entry.log_timestamp.isoformat(timespec="seconds"),
            entry.user_id,
            json.dumps(entry.forward_patch, ensure_ascii=False),
            json.dumps(entry.reverse_patch, ensure_ascii=False) if entry.reverse_patch is not None else "-",
        )
    console.print(table)


@app.command()
def like(
    building_id: int = typer.Argument(..., help="Building id"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="Acting user"),
) -> None:
    """Like a building as a user."""
    try:
        building = like_building(building_id, user_id)
    except CatalogueError as e:
        _fail(e)
    console.print(f"likes_total={building.likes_total} revision_id={building.revision_id}")


@app.command()
def revert(
    building_id: int = typer.Argument(..., help="Building id"),
    log_id: int = typer.Argument(..., help="Log entry to undo"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="Acting user"),
    revision_id: int | None = typer.Option(
        None, "--revision-id", "-r", help="Revision the building is expected at (default: current)"
    ),
) -> None:
    """Undo one edit by re-applying its old values."""
    try:
        if revision_id is None:
            revision_id = get_building(building_id).revision_id
        building = revert_revision(building_id, log_id, revision_id, user_id)
    except CatalogueError as e:
        _fail(e)
    console.print(f"reverted log {log_id}; revision_id={building.revision_id}")


if __name__ == "__main__":
    app()
