import asyncio
import os
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from locallibrary.config import configure_logging, settings
from locallibrary.controllers import CatalogController
from locallibrary.errors import DataAccessError
from locallibrary.fixtures import FixtureError, load_fixture_file
from locallibrary.store import CatalogStore
from locallibrary.ui_helpers import print_list_result, print_stats_result, set_output_mode

console = Console()

app = typer.Typer(help="Local Library catalog CLI")

_state = {"db_file": None}


def _store() -> CatalogStore:
    return CatalogStore(_state["db_file"] or settings.db_file)


@app.callback()
def _global_options(
    db: Optional[str] = typer.Option(None, "--db", help="Catalog database file (defaults to LIBRARY_DB_FILE)"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output mode: plain, json, rich"),
):
    configure_logging()
    _state["db_file"] = db
    if output:
        try:
            set_output_mode(output)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--output") from e


@app.command("init-db")
def cli_init_db():
    """Create the catalog tables."""
    store = _store()
    console.print(f"Database ready: {store.db_file}")


@app.command("load")
def cli_load(file_path: str = typer.Argument(..., help="JSON file with authors, genres, books and copies")):
    """Load catalog records from a JSON file."""
    try:
        counts = load_fixture_file(_store(), file_path)
    except (FixtureError, DataAccessError) as e:
        console.print(f"[bold red]Load failed: {escape(str(e))}[/]")
        raise typer.Exit(code=1)
    console.print(
        f"Loaded {counts['authors']} authors, {counts['genres']} genres, "
        f"{counts['books']} books and {counts['bookinstances']} copies."
    )


@app.command("books")
def cli_books():
    """List all books with their authors."""
    try:
        books = _store().list_books()
    except DataAccessError as e:
        console.print(f"[bold red]Could not list books: {e}[/]")
        raise typer.Exit(code=1)
    print_list_result(books)


@app.command("stats")
def cli_stats():
    """Show the home page counts."""
    outcome = asyncio.run(CatalogController(_store()).index())
    if outcome.context["error"]:
        console.print(f"[bold red]Could not count records: {outcome.context['error']}[/]")
        raise typer.Exit(code=1)
    print_stats_result(outcome.context["data"])


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Port"),
):
    """Start the web app with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/"
    console.print(f"[green]Starting web UI on [link={url}]{url}[/link][/]")

    env = dict(os.environ)
    if _state["db_file"]:
        env["LIBRARY_DB_FILE"] = _state["db_file"]
    args = [
        sys.executable,
        "-m", "uvicorn",
        "--factory", "locallibrary.api:create_app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, env=env, check=False)
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped.[/]")


def main():
    app()


if __name__ == "__main__":
    main()
