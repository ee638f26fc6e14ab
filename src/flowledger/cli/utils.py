"""
CLI utility helpers -- output formatting and database access.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from flowledger.core.errors import FlowLedgerError
from flowledger.core.settings import DatabaseSettings
from flowledger.database import Database

console = Console()
err_console = Console(stderr=True)


# ── Database helper ──────────────────────────────────────────────────────


@contextmanager
def open_database(url: str | None = None) -> Iterator[Database]:
    """Open a :class:`Database` for one command.

    *url* overrides ``FLOWLEDGER_DB_URL``; the other settings still come
    from the environment. Flowledger errors are printed and turned into
    exit code 1.
    """
    try:
        settings = DatabaseSettings(url=url) if url else DatabaseSettings()
        db = Database(settings)
    except FlowLedgerError as exc:
        fail(exc)
    try:
        yield db
    except FlowLedgerError as exc:
        fail(exc)
    finally:
        db.close()


def fail(exc: FlowLedgerError) -> None:
    """Print *exc* and exit with status 1."""
    kind = getattr(exc, "kind", None)
    code = f"{type(exc).__name__}:{kind}" if kind else type(exc).__name__
    err_console.print(f"[bold red]Error[/bold red] ({code}): {exc.message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_result(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a model, dataclass, dict or list of them to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list | tuple):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(list(data), title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*("" if v is None else str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
