"""
Root Typer application for the flowledger CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from flowledger import __version__
from flowledger.core.logging import configure_logging

app = Typer(
    name="flowledger",
    help="flowledger -- persistence and audit core for multi-agent workflows.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"flowledger {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for structured logs (stderr)."),
) -> None:
    """flowledger CLI -- manage the ledger database."""
    configure_logging(level=log_level)


# ── Sub-command registration ─────────────────────────────────────────────

from flowledger.cli.db import app as db_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")


if __name__ == "__main__":
    app()
