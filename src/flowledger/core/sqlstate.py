"""Backend error classification.

Maps driver exceptions (wrapped by SQLAlchemy as ``DBAPIError``) onto the
flowledger taxonomy with a stable ``kind`` discriminant. The backend's own
code and message are kept verbatim on the resulting ``QueryError``.

PostgreSQL is classified by SQLSTATE (``pgcode``); SQLite by exception class
and primary message, since it has no SQLSTATE.

Trigger-raised rejections carry a marker prefix in their message so both
backends classify them identically.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from sqlalchemy import exc

from flowledger.core.errors import (
    BackendUnreachable,
    ConstraintViolation,
    FlowLedgerError,
    QueryError,
    StatementCancelled,
    SyntaxOrTypeError,
)

# Message prefixes used by trigger-raised errors
APPEND_ONLY_MARKER = "append_only"
INACTIVE_PARENT_MARKER = "inactive_parent"

# Suffix of CHECK constraints that encode an enum domain (SQLite)
ENUM_CONSTRAINT_SUFFIX = "_enum"

_MAX_STATEMENT_CHARS = 200

_PG_CONSTRAINT_KINDS = {
    "23503": "foreign_key",
    "23505": "unique",
    "23502": "not_null",
    "23514": "check",
}

_PG_UNDEFINED_OBJECT = {"42P01", "42703", "42883", "42704"}
_PG_CONNECTION_CODES = {"57P01", "57P02", "57P03"}
_PG_RETRYABLE_CONFLICTS = {"40001", "40P01", "55P03"}


def truncate_statement(statement: str) -> str:
    statement = " ".join(statement.split())
    if len(statement) > _MAX_STATEMENT_CHARS:
        return statement[:_MAX_STATEMENT_CHARS] + "..."
    return statement


def _marker_kind(message: str) -> str | None:
    if APPEND_ONLY_MARKER in message:
        return "append_only"
    if INACTIVE_PARENT_MARKER in message:
        return "foreign_key"
    return None


def classify_sqlite(orig: BaseException, statement: str) -> FlowLedgerError:
    """Classify a ``sqlite3`` exception."""
    message = str(orig)
    code = getattr(orig, "sqlite_errorname", None) or type(orig).__name__
    lowered = message.lower()
    kwargs: dict[str, Any] = {
        "backend_code": code,
        "backend_message": message,
        "statement": statement,
        "cause": orig,
    }

    if isinstance(orig, sqlite3.IntegrityError):
        kind = _marker_kind(message)
        if kind is None:
            if "foreign key constraint failed" in lowered:
                kind = "foreign_key"
            elif "unique constraint failed" in lowered:
                kind = "unique"
            elif "not null constraint failed" in lowered:
                kind = "not_null"
            elif "check constraint failed" in lowered:
                constraint = message.rsplit(":", 1)[-1].strip()
                kind = "enum" if constraint.endswith(ENUM_CONSTRAINT_SUFFIX) else "check"
            else:
                kind = "check"
        return ConstraintViolation(f"Constraint violation ({kind})", kind=kind, **kwargs)

    if isinstance(orig, sqlite3.OperationalError):
        if lowered == "interrupted":
            return StatementCancelled("Statement interrupted by deadline", **kwargs)
        if "unable to open database" in lowered or "disk i/o error" in lowered:
            return BackendUnreachable(f"SQLite database unavailable: {message}", cause=orig)
        if "database is locked" in lowered or "database table is locked" in lowered:
            return QueryError("Database is locked", kind="lock_timeout", retryable=True, **kwargs)
        if lowered.startswith("no such"):
            return SyntaxOrTypeError("Undefined object", kind="undefined_object", **kwargs)
        return SyntaxOrTypeError("Malformed statement", kind="syntax", **kwargs)

    if isinstance(orig, (sqlite3.ProgrammingError, sqlite3.InterfaceError, sqlite3.DataError)):
        kind = "parameter_count" if "bindings" in lowered else "type"
        return SyntaxOrTypeError(f"Statement rejected ({kind})", kind=kind, **kwargs)

    return QueryError("Backend rejected statement", **kwargs)


def classify_postgres(orig: BaseException, statement: str) -> FlowLedgerError:
    """Classify a psycopg2 exception by SQLSTATE."""
    code: str = getattr(orig, "pgcode", None) or ""
    message = str(orig).strip()
    kwargs: dict[str, Any] = {
        "backend_code": code or None,
        "backend_message": message,
        "statement": statement,
        "cause": orig,
    }

    if code.startswith("23"):
        kind = _marker_kind(message) or _PG_CONSTRAINT_KINDS.get(code, "check")
        diag = getattr(orig, "diag", None)
        constraint = getattr(diag, "constraint_name", None) or ""
        if kind == "check" and constraint.endswith(ENUM_CONSTRAINT_SUFFIX):
            kind = "enum"
        return ConstraintViolation(f"Constraint violation ({kind})", kind=kind, **kwargs)
    if code == "22P02" and "enum" in message:
        return ConstraintViolation("Constraint violation (enum)", kind="enum", **kwargs)
    if code == "57014":
        return StatementCancelled("Statement cancelled by timeout", **kwargs)
    if code.startswith("08") or code in _PG_CONNECTION_CODES:
        return BackendUnreachable(f"PostgreSQL connection failure: {message}", cause=orig)
    if code in _PG_RETRYABLE_CONFLICTS:
        return QueryError("Transaction conflict", kind="conflict", retryable=True, **kwargs)
    if code.startswith("22"):
        return SyntaxOrTypeError("Invalid value for column type", kind="type", **kwargs)
    if code in _PG_UNDEFINED_OBJECT:
        return SyntaxOrTypeError("Undefined object", kind="undefined_object", **kwargs)
    if code.startswith("42"):
        return SyntaxOrTypeError("Malformed statement", kind="syntax", **kwargs)
    return QueryError("Backend rejected statement", **kwargs)


def translate_error(error: exc.DBAPIError, statement: str, backend: str) -> FlowLedgerError:
    """Translate a SQLAlchemy-wrapped driver error for *backend*."""
    if error.connection_invalidated:
        return BackendUnreachable(f"Connection lost: {error.orig}", cause=error.orig)
    statement = truncate_statement(statement)
    if backend == "postgresql":
        return classify_postgres(error.orig, statement)
    return classify_sqlite(error.orig, statement)


__all__ = [
    "APPEND_ONLY_MARKER",
    "INACTIVE_PARENT_MARKER",
    "ENUM_CONSTRAINT_SUFFIX",
    "classify_postgres",
    "classify_sqlite",
    "translate_error",
    "truncate_statement",
]
