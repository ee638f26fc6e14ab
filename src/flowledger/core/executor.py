"""
Query executor: the single choke point for SQL and parameters.

Manifesto:
    Every statement the core issues passes through ``QueryExecutor.execute``.
    Statements are written with positional ``?`` placeholders and values are
    always handed to the driver for binding; nothing is ever spliced into
    statement text. Backend errors come back as typed ``QueryError``
    subclasses carrying the backend's code and message verbatim. The
    executor never retries: whether a failure is worth retrying is the
    caller's decision, guided by ``error.retryable``.

Features:
    - **Positional binding:** ``?`` placeholders, rewritten per driver
    - **Parameter count check:** mismatch fails before reaching the backend
    - **Typed rows:** :class:`Rows` with column names, dict rows, rowcount
    - **Deadlines:** expired deadlines never execute; running statements
      are interrupted (SQLite progress handler, PostgreSQL
      ``statement_timeout``)
    - **Statement logging:** truncated text, duration, row count

Examples:
    >>> executor = QueryExecutor()
    >>> with pool.connection() as handle:
    ...     rows = executor.execute(handle, "SELECT ? AS answer", (42,))
    >>> rows.scalar()
    42

Tags:
    flowledger, sql, executor, parameter-binding
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import exc

from flowledger.core.deadline import Deadline
from flowledger.core.dialect import Dialect, get_dialect
from flowledger.core.errors import StatementCancelled, SyntaxOrTypeError
from flowledger.core.logging import get_logger
from flowledger.core.pool import PooledConnection
from flowledger.core.sqlstate import translate_error, truncate_statement

logger = get_logger(__name__)

# SQLite virtual-machine instructions between deadline checks
_PROGRESS_INTERVAL = 1000


def _options(params: tuple[Any, ...]) -> dict[str, Any]:
    # Without parameters the cursor gets the bare statement, so format-style
    # drivers leave literal % alone
    return {} if params else {"no_parameters": True}


@dataclass
class Rows:
    """Result of one statement: column names, rows as dicts, affected count."""

    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = -1

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> dict[str, Any]:
        return self.rows[index]

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        """First column of the first row, or ``None``."""
        if not self.rows:
            return None
        return self.rows[0][self.columns[0]]


class QueryExecutor:
    """Runs parameterized statements on a borrowed connection."""

    def execute(
        self,
        handle: PooledConnection,
        statement: str,
        parameters: Sequence[Any] = (),
        *,
        deadline: Deadline | None = None,
    ) -> Rows:
        """Execute *statement* with positional *parameters* on *handle*.

        Raises
        ------
        SyntaxOrTypeError
            Placeholder/parameter count mismatch, malformed statement or
            type error.
        ConstraintViolation
            The backend rejected the write.
        StatementCancelled
            *deadline* expired before or during execution.
        BackendUnreachable
            The connection failed underneath the statement.
        """
        if isinstance(parameters, (str, bytes)):
            raise TypeError("parameters must be a sequence of values, not a string")
        params = tuple(parameters)
        dialect = get_dialect(handle.backend)
        sql, expected = dialect.to_driver(statement)

        if expected != len(params):
            raise SyntaxOrTypeError(
                f"Statement has {expected} placeholder(s) but {len(params)} parameter(s) were given",
                kind="parameter_count",
                statement=truncate_statement(statement),
            )
        if deadline is not None and deadline.expired:
            raise StatementCancelled(
                f"Deadline of {deadline.timeout}s expired before execution",
                statement=truncate_statement(statement),
            )

        start = time.perf_counter()
        try:
            with self._bounded(handle, dialect, deadline):
                result = handle.connection.exec_driver_sql(sql, params, execution_options=_options(params))
                if result.returns_rows:
                    columns = list(result.keys())
                    rows = [dict(row._mapping) for row in result]
                else:
                    columns, rows = [], []
                rowcount = result.rowcount
        except exc.DBAPIError as e:
            error = translate_error(e, statement, handle.backend)
            logger.error(
                "statement_failed",
                statement=truncate_statement(statement),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                error_type=type(error).__name__,
                kind=getattr(error, "kind", None),
                backend_code=getattr(error, "backend_code", None),
            )
            raise error from e

        logger.debug(
            "statement_executed",
            statement=truncate_statement(statement),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            rows=len(rows) if columns else rowcount,
        )
        return Rows(columns=columns, rows=rows, rowcount=rowcount)

    @contextmanager
    def _bounded(self, handle: PooledConnection, dialect: Dialect, deadline: Deadline | None) -> Iterator[None]:
        """Interrupt the statement if *deadline* passes while it runs."""
        if deadline is None:
            yield
            return

        if dialect.name == "sqlite":
            dbapi = handle.dbapi_connection
            expires_at = deadline.expires_at
            dbapi.set_progress_handler(lambda: 1 if time.monotonic() >= expires_at else 0, _PROGRESS_INTERVAL)
            try:
                yield
            finally:
                dbapi.set_progress_handler(None, 0)
        else:
            millis = max(1, int(deadline.remaining() * 1000))
            # SET LOCAL only lasts until the enclosing transaction ends
            handle.connection.exec_driver_sql(f"SET LOCAL statement_timeout = {millis}")
            yield


__all__ = ["QueryExecutor", "Rows"]
