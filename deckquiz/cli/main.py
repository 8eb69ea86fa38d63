"""
Typer CLI for the deck-quiz service.

Commands:
    deckquiz db init              - Initialize database tables
    deckquiz db migrate-attempts  - Copy a legacy store into the quiz tables
    deckquiz import DECK FILE     - Import generated questions from JSON
    deckquiz progress DECK        - Show deck mastery progress
    deckquiz serve                - Run the HTTP API
    deckquiz info                 - Show configuration
    deckquiz version              - Show version

Usage:
    deckquiz --help
    deckquiz db init
    deckquiz import networking questions.json --name "Networking basics"
    deckquiz db migrate-attempts --drop-legacy
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from deckquiz import __version__
from deckquiz.exceptions import DeckQuizError
from deckquiz.logging_setup import configure_logging

app = typer.Typer(
    help="deck-quiz CLI: adaptive quiz sessions over generated question decks",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Deck quiz administration."""
    configure_logging(level="DEBUG" if verbose else None)


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management (init, migrate-attempts)")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from deckquiz.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


@db_app.command("migrate-attempts")
def db_migrate_attempts(
    drop_legacy: bool = typer.Option(
        False,
        "--drop-legacy",
        help="Drop the legacy Decks/Questions/Mastery/Attempts tables afterwards",
    ),
) -> None:
    """
    Copy a legacy store (any Attempts column variant) into the quiz tables.

    Rows already copied are skipped, so re-running is safe.
    """
    from deckquiz.db.database import get_engine, init_db
    from deckquiz.db.migrations import migrate_legacy_store

    engine = get_engine()
    init_db(engine)
    report = migrate_legacy_store(engine, drop_legacy=drop_legacy)

    if not report.found:
        rprint("[yellow]No legacy tables found.[/yellow]")
        return

    table = Table(title="Legacy Migration", show_header=True)
    table.add_column("Table", style="cyan")
    table.add_column("Copied", justify="right")
    table.add_row("decks", str(report.decks))
    table.add_row("questions", str(report.questions))
    table.add_row("mastery", str(report.mastery))
    table.add_row("attempts", str(report.attempts))
    table.add_row("[dim]skipped[/dim]", str(report.skipped))
    console.print(table)

    if report.dropped:
        rprint(f"[green]✓[/green] Dropped legacy tables: {', '.join(report.legacy_tables)}")


# ========================================
# DECK COMMANDS
# ========================================


def _service():
    from deckquiz.study import QuizService

    return QuizService.from_settings()


@app.command("import")
def import_deck(
    deck_id: str = typer.Argument(..., help="Deck id"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file: a list of question records"),
    name: str | None = typer.Option(None, "--name", "-n", help="Create the deck with this name if missing"),
    replace: bool = typer.Option(False, "--replace", help="Delete the deck's current questions first"),
) -> None:
    """Import generated questions into a deck."""
    from deckquiz.db.database import init_db

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        rprint(f"[red]Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(code=1)

    records = data.get("questions", []) if isinstance(data, dict) else data
    if not isinstance(records, list):
        rprint("[red]Expected a list of question records[/red]")
        raise typer.Exit(code=1)

    init_db()
    try:
        stored = _service().import_deck(deck_id, records, name=name, replace=replace)
    except DeckQuizError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    rprint(f"[green]✓[/green] Imported {stored} questions into deck {deck_id}")


@app.command("progress")
def progress(deck_id: str = typer.Argument(..., help="Deck id")) -> None:
    """Show completed / mastered counts and attempt accuracy for a deck."""
    try:
        result = _service().deck_progress(deck_id)
    except DeckQuizError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Deck {deck_id}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Questions", str(result.total))
    table.add_row("Completed", str(result.completed))
    table.add_row("Mastered", f"[green]{result.mastered}[/green]")
    table.add_row("Unmastered", f"[yellow]{result.unmastered}[/yellow]")
    table.add_row("Attempts", str(result.attempts))
    table.add_row("Accuracy", f"{result.accuracy:.0%}")
    console.print(table)


# ========================================
# SERVER & INFO
# ========================================


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host (default from config)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from config)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "deckquiz.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("info")
def info() -> None:
    """Show current configuration (non-sensitive)."""
    settings = get_settings()

    table = Table(title="deck-quiz configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    db_url = settings.database_url
    table.add_row("database", db_url.split("@")[-1] if "@" in db_url else db_url)
    for key, value in settings.get_quiz_config().items():
        table.add_row(f"quiz.{key}", str(value))
    for key, value in settings.get_grading_config().items():
        table.add_row(f"grading.{key}", str(value))
    table.add_row("api", f"{settings.api_host}:{settings.api_port}")
    table.add_row("log_level", settings.log_level)
    console.print(table)


@app.command("version")
def version() -> None:
    """Show version."""
    rprint(f"deck-quiz {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
