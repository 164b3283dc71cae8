"""
Coachline CLI - command-line interface for Coachline.

Server management, schema setup and retrieval index maintenance.
"""

import asyncio
import logging

import httpx
import typer
from rich.console import Console
from rich.table import Table

from coachline.logging_config import setup_logging

app = typer.Typer(
    name="coachline",
    help="Coachline - context-aware coaching service",
    no_args_is_help=True,
)

console = Console()


def _init_logging() -> None:
    # Fall back to console logging if the log directory is not writable
    try:
        setup_logging(context="cli")
    except PermissionError:
        logging.basicConfig(level=logging.INFO)
        console.print(
            "[yellow]Warning:[/yellow] Could not write log files, logging to console only"
        )


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """
    Start the FastAPI server.
    """
    import uvicorn

    console.print("[bold green]Starting Coachline API server...[/bold green]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Reload: {reload}")
    console.print(f"\n  API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "coachline.api.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command("init-db")
def init_db_command() -> None:
    """
    Create all tables on the configured database.

    For production databases use `alembic upgrade head` instead.
    """
    from coachline.config import settings
    from coachline.db.connection import check_connection, init_db

    _init_logging()

    if not check_connection():
        console.print(
            f"[bold red]Error:[/bold red] Cannot connect to {settings.database_url}"
        )
        raise typer.Exit(1)

    init_db()
    console.print("[green]✓ Tables created[/green]")


@app.command("reindex-journals")
def reindex_journals(
    user_id: str = typer.Argument(..., help="User whose journal entries to embed"),
) -> None:
    """
    Embed every journal entry of a user into the retrieval index.

    Not billed against the user's usage allowance.
    """
    from coachline.api.dependencies import build_embedding_provider
    from coachline.config import settings
    from coachline.db.connection import SessionLocal, db_session
    from coachline.db.repositories import EmbeddingRepository
    from coachline.retrieval.service import RetrievalService
    from coachline.sources.sql import SqlJournalSource

    _init_logging()

    provider = build_embedding_provider()
    if provider is None:
        console.print(
            "[bold red]Error:[/bold red] Retrieval is disabled or OPENAI_API_KEY is not set"
        )
        raise typer.Exit(1)

    console.print(f"[bold blue]Reindexing journal entries for:[/bold blue] {user_id}")

    with db_session() as session:
        service = RetrievalService(
            EmbeddingRepository(session),
            provider,
            enabled=settings.rag_enabled,
        )
        result = asyncio.run(service.reindex_user(user_id, SqlJournalSource(SessionLocal)))

    for error in result.errors:
        console.print(f"  [red]✗[/red] {error['documentId']}: {error['error']}")

    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Processed: {result.total_processed}")
    console.print(f"  Successful: {result.success_count}")
    console.print(f"  Failed: {result.failed_count}")
    console.print(f"  Duration: {result.duration_ms:.0f}ms")

    if result.failed_count > 0:
        raise typer.Exit(1)


def _api_client(api_url: str, user_id: str) -> httpx.Client:
    return httpx.Client(
        base_url=api_url,
        headers={"X-User-Id": user_id},
        timeout=10.0,
    )


@app.command()
def metrics(
    user_id: str = typer.Option(
        ..., "--user-id", help="User ID sent in the X-User-Id header"
    ),
    api_url: str = typer.Option(
        "http://localhost:8000", "--api-url", help="Base URL of a running Coachline API"
    ),
) -> None:
    """
    Print coaching metrics from a running API server.

    Fetches GET /voice-coach/metrics (last 24 hours) and the recent errors.
    """
    try:
        with _api_client(api_url, user_id) as client:
            response = client.get("/voice-coach/metrics")
            response.raise_for_status()
            body = response.json()
    except httpx.HTTPError as e:
        console.print(f"[bold red]Error:[/bold red] Could not fetch metrics: {e}")
        raise typer.Exit(1)

    summary = body["metrics"]
    period = body.get("period", {})

    table = Table(title="Coaching metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in summary.items():
        if key == "errorRateByType":
            continue
        table.add_row(key, str(value))
    console.print(table)
    if period:
        console.print(f"  Period: {period.get('start')} to {period.get('end')}")

    errors = {k: v for k, v in summary.get("errorRateByType", {}).items() if v}
    if errors:
        console.print("[bold]Errors by type:[/bold]")
        for error_type, count in errors.items():
            console.print(f"  {error_type}: {count}")
    else:
        console.print("[green]✓ No errors recorded[/green]")

    for error in body.get("recentErrors", []):
        console.print(
            f"  [red]✗[/red] {error['timestamp']} {error['errorType']}: "
            f"{error['errorMessage']}"
        )


if __name__ == "__main__":
    app()
