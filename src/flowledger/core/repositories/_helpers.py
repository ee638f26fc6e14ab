"""Shared helpers for repository classes.

Tags:
    flowledger, repository, helpers

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class RowView(str, Enum):
    """Which rows a read sees with respect to soft deletion."""

    ACTIVE = "active"
    DELETED = "deleted"
    ALL = "all"


_VIEW_CLAUSES = {
    RowView.ACTIVE: "deleted_at IS NULL",
    RowView.DELETED: "deleted_at IS NOT NULL",
    RowView.ALL: None,
}


def view_clause(view: RowView | str) -> str | None:
    """SQL fragment selecting the rows visible in *view* (``None`` for all)."""
    return _VIEW_CLAUSES[RowView(view)]


def _build_where(
    conditions: dict[str, Any],
    *,
    extra_clauses: list[str | None] | None = None,
) -> tuple[str, tuple]:
    """Build a WHERE clause from a conditions dict.

    Returns ``(where_fragment, params_tuple)``.  Skips ``None`` values.
    ``extra_clauses`` are appended literally (no params); ``None`` entries
    are ignored.
    """
    parts: list[str] = []
    params: list[Any] = []
    for col, val in conditions.items():
        if val is None:
            continue
        parts.append(f"{col} = ?")
        params.append(val)
    if extra_clauses:
        parts.extend(clause for clause in extra_clauses if clause)
    where = " AND ".join(parts) if parts else "1=1"
    return where, tuple(params)


def to_json(value: Any) -> str | None:
    """Serialize a document parameter; ``None`` stays ``NULL``."""
    if value is None:
        return None
    return json.dumps(value)


def _assignments(fields: dict[str, Any], json_columns: frozenset[str]) -> tuple[list[str], list[Any]]:
    columns: list[str] = []
    params: list[Any] = []
    for column, value in fields.items():
        columns.append(f"{column} = ?")
        params.append(to_json(value) if column in json_columns else value)
    return columns, params
