"""
SQL dialect abstraction for the two supported backends.

Statements in flowledger are written once, with positional ``?``
placeholders. A :class:`Dialect` turns that text into what the driver
expects and supplies the few expressions that differ per backend
(current timestamp, timestamp parameters, the health round-trip).

Architecture:
    ::

        ┌──────────────────────────────────────────────┐
        │               Dialect protocol               │
        ├──────────────────────┬───────────────────────┤
        │ SQLiteDialect        │ PostgreSQLDialect     │
        │ ?  (qmark, as-is)    │ %s (psycopg2 format)  │
        │ strftime(...'now')   │ clock_timestamp()     │
        │ ISO-8601 text ts     │ timestamptz           │
        └──────────────────────┴───────────────────────┘

Guardrails:
    ❌ DON'T: Interpolate values into statement text
    ✅ DO: Write ``?`` and pass values as parameters

    ❌ DON'T: Use the PostgreSQL jsonb ``?`` operator in statements
    ✅ DO: Use ``jsonb_exists(column, ?)`` instead

Tags:
    flowledger, sql, dialect, placeholders
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%fZ"


_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")


def _skip_to(statement: str, start: int, terminator: str) -> int:
    """Index just past *terminator* at or after *start*, or the end of text."""
    end = statement.find(terminator, start)
    return len(statement) if end == -1 else end + len(terminator)


def _opaque_end(statement: str, i: int, dollar_quotes: bool) -> int | None:
    """End of the literal or comment opening at *i*, or None if none opens there."""
    ch = statement[i]
    if ch in ("'", '"'):
        return _skip_to(statement, i + 1, ch)
    if statement.startswith("--", i):
        return _skip_to(statement, i + 2, "\n")
    if statement.startswith("/*", i):
        return _skip_to(statement, i + 2, "*/")
    if dollar_quotes and ch == "$":
        prev = statement[i - 1] if i else ""
        match = _DOLLAR_TAG.match(statement, i)
        if match and not (prev.isalnum() or prev in "_$"):
            tag = match.group(0)
            return _skip_to(statement, i + len(tag), tag)
    return None


def scan_placeholders(
    statement: str,
    replacement: str | None = None,
    *,
    dollar_quotes: bool = False,
) -> tuple[str, int]:
    """Count ``?`` placeholders in executable SQL text, optionally replacing them.

    Quoted literals and identifiers, ``--`` line comments and ``/* */``
    block comments are skipped. With *dollar_quotes*, PostgreSQL
    ``$$ ... $$`` and ``$tag$ ... $tag$`` bodies are skipped too.

    With *replacement* set (``"%s"``), every placeholder is substituted and
    literal ``%`` characters are doubled so a format-style driver leaves
    them alone.

    Returns
    -------
    tuple[str, int]
        The (possibly rewritten) statement and the placeholder count.
    """
    out: list[str] = []
    count = 0
    i = 0
    while i < len(statement):
        end = _opaque_end(statement, i, dollar_quotes)
        if end is None:
            end = i + 1
            if statement[i] == "?":
                count += 1
                out.append("?" if replacement is None else replacement)
                i = end
                continue
        segment = statement[i:end]
        out.append(segment if replacement is None else segment.replace("%", "%%"))
        i = end
    return "".join(out), count


@runtime_checkable
class Dialect(Protocol):
    """Per-backend SQL differences used by the core."""

    @property
    def name(self) -> str: ...

    def to_driver(self, statement: str) -> tuple[str, int]:
        """Driver-ready statement text and its placeholder count."""
        ...

    def now(self) -> str:
        """SQL expression for the current timestamp."""
        ...

    def timestamp_param(self, value: datetime) -> Any:
        """Parameter value comparable with stored timestamps."""
        ...

    def health_query(self) -> str:
        """Lightweight round-trip returning ``server_time`` and ``version``."""
        ...


class SQLiteDialect:
    """SQLite: qmark placeholders, ISO-8601 millisecond UTC text timestamps."""

    @property
    def name(self) -> str:
        return "sqlite"

    def to_driver(self, statement: str) -> tuple[str, int]:
        return scan_placeholders(statement)

    def now(self) -> str:
        return f"strftime('{SQLITE_TIMESTAMP_FORMAT}', 'now')"

    def timestamp_param(self, value: datetime) -> str:
        value = value.astimezone(UTC)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"

    def health_query(self) -> str:
        return f"SELECT {self.now()} AS server_time, sqlite_version() AS version"


class PostgreSQLDialect:
    """PostgreSQL: ``%s`` placeholders for psycopg2, ``clock_timestamp()``."""

    @property
    def name(self) -> str:
        return "postgresql"

    def to_driver(self, statement: str) -> tuple[str, int]:
        sql, count = scan_placeholders(statement, "%s", dollar_quotes=True)
        # psycopg2 only applies %-formatting when parameters are passed
        return (sql, count) if count else (statement, 0)

    def now(self) -> str:
        return "clock_timestamp()"

    def timestamp_param(self, value: datetime) -> datetime:
        return value.astimezone(UTC)

    def health_query(self) -> str:
        return "SELECT NOW() AS server_time, version() AS version"


_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
}


def get_dialect(name: str) -> Dialect:
    """Look up the dialect for a backend name."""
    try:
        return _DIALECTS[name]
    except KeyError:
        raise ValueError(f"Unsupported backend: {name!r} (supported: {sorted(_DIALECTS)})") from None


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "SQLITE_TIMESTAMP_FORMAT",
    "get_dialect",
    "scan_placeholders",
]
