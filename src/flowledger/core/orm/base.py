"""Declarative base, portable column types and per-dialect server defaults.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map`` so
mapped columns use plain Python types. Server-side defaults that differ per
backend (UUID generation, current timestamp) are ``FunctionElement``
subclasses with one ``@compiles`` rendering per dialect.

* ``str``   → ``Text``
* ``int``   → ``Integer``
* ``datetime.datetime`` → ``DateTime(timezone=True)``
* ``dict`` / ``list``   → ``JSON`` (``JSONB`` on PostgreSQL)
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql.expression import FunctionElement

from flowledger.core.dialect import SQLITE_TIMESTAMP_FORMAT
from flowledger.core.sqlstate import ENUM_CONSTRAINT_SUFFIX

JSONDocument = JSON().with_variant(postgresql.JSONB(), "postgresql")
UUIDText = Text().with_variant(postgresql.UUID(as_uuid=False), "postgresql")
Timestamp = DateTime(timezone=True)


class LedgerBase(DeclarativeBase):
    """Shared declarative base for every flowledger table."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: Timestamp,
        dict: JSONDocument,
        list: JSONDocument,
    }


class new_uuid(FunctionElement):
    """Backend-generated UUIDv4 text."""

    type = UUIDText
    inherit_cache = True


@compiles(new_uuid, "postgresql")
def _pg_new_uuid(element: Any, compiler: Any, **kw: Any) -> str:
    return "uuid_generate_v4()"


@compiles(new_uuid, "sqlite")
def _sqlite_new_uuid(element: Any, compiler: Any, **kw: Any) -> str:
    # xxxxxxxx-xxxx-4xxx-[89ab]xxx-xxxxxxxxxxxx
    return (
        "(lower(hex(randomblob(4))) || '-' || lower(hex(randomblob(2))) || '-4' || "
        "substr(lower(hex(randomblob(2))), 2) || '-' || "
        "substr('89ab', 1 + (abs(random()) % 4), 1) || "
        "substr(lower(hex(randomblob(2))), 2) || '-' || lower(hex(randomblob(6))))"
    )


class utc_now(FunctionElement):
    """Current UTC timestamp as stored by the backend."""

    type = Timestamp
    inherit_cache = True


@compiles(utc_now)
def _default_utc_now(element: Any, compiler: Any, **kw: Any) -> str:
    return "CURRENT_TIMESTAMP"


@compiles(utc_now, "postgresql")
def _pg_utc_now(element: Any, compiler: Any, **kw: Any) -> str:
    return "now()"


@compiles(utc_now, "sqlite")
def _sqlite_utc_now(element: Any, compiler: Any, **kw: Any) -> str:
    return f"(strftime('{SQLITE_TIMESTAMP_FORMAT}', 'now'))"


def enum_check(table: str, column: str, values: tuple[str, ...]) -> CheckConstraint:
    """Named CHECK constraint enforcing an enum domain where native enums don't exist.

    PostgreSQL uses the native enum type instead, so the constraint is only
    emitted for SQLite.
    """
    allowed = ", ".join(f"'{value}'" for value in values)
    return CheckConstraint(
        f"{column} IN ({allowed})",
        name=f"ck_{table}_{column}{ENUM_CONSTRAINT_SUFFIX}",
    ).ddl_if(dialect="sqlite")


__all__ = [
    "LedgerBase",
    "JSONDocument",
    "UUIDText",
    "Timestamp",
    "new_uuid",
    "utc_now",
    "enum_check",
]
