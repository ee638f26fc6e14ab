"""Base repository over the transaction coordinator.

Provides :class:`BaseRepository` -- the shared plumbing for the workflow,
agent, log, result and history repositories. Every statement goes through a
:class:`~flowledger.core.transaction.Transaction`, so repositories never
touch connections directly.

Each public repository method accepts an optional ``tx``. Passed in, the
method joins that transaction; omitted, the method runs in a transaction of
its own.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                       BaseRepository                               │
    │                                                                    │
    │   coordinator: TransactionCoordinator                              │
    │                                                                    │
    │   _within(tx, work)          → joins tx or runs its own            │
    │   query(tx, sql, params)     → list[dict]                          │
    │   query_one(tx, sql, params) → dict | None                         │
    │   insert(tx, table, data)    → Rows                                │
    └────────────────────────────────────────────────────────────────────┘

Usage:
    >>> def create_with_agent(tx):
    ...     wf = db.workflows.create("etl", tx=tx)
    ...     db.agents.create(wf.id, "reader", "processing", tx=tx)
    ...     return wf.id
    >>> db.run_transaction(create_with_agent)

Tags:
    repository, database, transactions
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from flowledger.core.executor import Rows
from flowledger.core.transaction import Transaction, TransactionCoordinator

T = TypeVar("T")


class BaseRepository:
    """Statement helpers shared by all repositories.

    Parameters:
        coordinator: Runs the repository's own transactions.
        allow_deleted: Let updates and status transitions reach
            soft-deleted rows.  When ``False`` (the default) such rows are
            invisible to mutations and raise ``RowNotFound``.
    """

    def __init__(self, coordinator: TransactionCoordinator, *, allow_deleted: bool = False) -> None:
        self.coordinator = coordinator
        self.allow_deleted = allow_deleted

    def _within(self, tx: Transaction | None, work: Callable[[Transaction], T]) -> T:
        if tx is not None:
            return work(tx)
        return self.coordinator.run(work)

    # -- Query helpers -----------------------------------------------------

    def query(self, tx: Transaction, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a SELECT and return rows as dicts."""
        return tx.execute(sql, params).rows

    def query_one(self, tx: Transaction, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Execute a SELECT and return the first row as a dict (or None)."""
        return tx.execute(sql, params).first()

    def count(self, tx: Transaction, table: str, where: str, params: Sequence[Any] = ()) -> int:
        row = self.query_one(tx, f"SELECT COUNT(*) AS cnt FROM {table} WHERE {where}", params)
        return int((row or {}).get("cnt", 0))

    # -- Insert helpers ----------------------------------------------------

    def insert(self, tx: Transaction, table: str, data: dict[str, Any]) -> Rows:
        """Insert a single row from a dict.

        Column names come from ``data.keys()``; values are bound as
        positional parameters.  ``None`` values are left out so the column
        default applies.
        """
        data = {column: value for column, value in data.items() if value is not None}
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        return tx.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(data.values()))


__all__ = ["BaseRepository"]
