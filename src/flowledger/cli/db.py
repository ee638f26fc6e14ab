"""
CLI: ``flowledger db`` -- schema, health and maintenance commands.
"""

from __future__ import annotations

import typer

from flowledger.cli.utils import console, open_database, output_result
from flowledger.core.retention import (
    RECORD_RETENTION_DAYS,
    SOFT_DELETE_RETENTION_DAYS,
    purge_expired_records,
    purge_soft_deleted,
    table_counts,
)

app = typer.Typer(no_args_is_help=True)

_URL_OPTION = typer.Option(None, "--url", "-u", help="Database URL (default: FLOWLEDGER_DB_URL)")


@app.command()
def init(
    url: str | None = _URL_OPTION,
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create tables, constraints, triggers and views (idempotent)."""
    with open_database(url) as db:
        created = db.create_schema()
        output_result({"backend": db.backend, "created": ", ".join(created) or "-"}, as_json=json_out, title="Schema")


@app.command()
def drop(
    url: str | None = _URL_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Drop every flowledger table. Destroys all data."""
    if not yes:
        typer.confirm("Drop all flowledger tables and their data?", abort=True)
    with open_database(url) as db:
        db.drop_schema()
        console.print("[bold]Schema dropped.[/bold]")


@app.command()
def health(
    url: str | None = _URL_OPTION,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Check database connectivity and pool counters. Exit 1 when unhealthy."""
    with open_database(url) as db:
        report = db.check_health()
        if json_out:
            output_result(report, as_json=True)
        else:
            output_result(
                {
                    "status": report.status,
                    "backend": report.database.backend,
                    "server_time": report.database.server_time,
                    "version": report.database.version,
                    "latency_ms": report.latency_ms,
                    "pool": report.pool.model_dump(),
                    "error": report.error,
                },
                title="Database Health",
            )
        if not report.healthy:
            raise typer.Exit(code=1)


@app.command()
def tables(
    url: str | None = _URL_OPTION,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show row counts for all flowledger tables."""
    with open_database(url) as db:
        output_result(table_counts(db), as_json=json_out, title="Table Counts")


@app.command()
def purge(
    deleted_days: int = typer.Option(
        SOFT_DELETE_RETENTION_DAYS, "--deleted-days", help="Remove rows soft-deleted more than N days ago"
    ),
    records_days: int = typer.Option(
        RECORD_RETENTION_DAYS, "--records-days", help="Remove logs and results older than N days"
    ),
    url: str | None = _URL_OPTION,
    dry_run: bool = typer.Option(False, "--dry-run", help="Count without deleting"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Purge soft-deleted workflows/agents and expired logs/results."""
    with open_database(url) as db:
        results = purge_soft_deleted(db, deleted_days, dry_run=dry_run).results
        results += purge_expired_records(db, records_days, dry_run=dry_run).results
        output_result(results, as_json=json_out, title="Purge (dry run)" if dry_run else "Purge Result")
