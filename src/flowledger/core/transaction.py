"""
Transaction coordinator: all-or-nothing units of work.

Manifesto:
    A unit of work is caller-supplied logic that must either commit as a
    whole or leave no trace. The coordinator owns the protocol so callers
    cannot get it wrong:

        acquire ─► BEGIN ─► unit_of_work(tx) ─► COMMIT ─► release
                                    │
                                    └─ any exception ─► ROLLBACK ─► release ─► re-raise

    The caller sees its own exception, unchanged (the same object). The one
    exception is cancellation: when the deadline interrupts a statement the
    coordinator raises ``TransactionAborted`` chained to the interruption,
    after the rollback has already happened.

Guardrails:
    ❌ DON'T: Call ``run()`` (or ``query()``) from inside a unit of work
    ✅ DO: Issue every statement through the ``Transaction`` handle

    ❌ DON'T: Keep the ``Transaction`` handle after ``run()`` returns
    ✅ DO: Return plain values from the unit of work

Examples:
    >>> coordinator = TransactionCoordinator(pool)
    >>> def create(tx):
    ...     tx.execute("INSERT INTO workflows (id, name) VALUES (?, ?)", ("w1", "etl"))
    ...     return tx.execute("SELECT count(*) AS n FROM workflows").scalar()
    >>> coordinator.run(create)
    1

Tags:
    flowledger, transactions, atomicity, rollback
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Sequence
from contextvars import ContextVar
from typing import Any, TypeVar

from sqlalchemy import exc

from flowledger.core.deadline import Deadline
from flowledger.core.dialect import Dialect, get_dialect
from flowledger.core.errors import NestedTransactionError, StatementCancelled, TransactionAborted
from flowledger.core.executor import QueryExecutor, Rows
from flowledger.core.logging import LogContext, get_logger
from flowledger.core.pool import ConnectionPool, PooledConnection
from flowledger.core.sqlstate import translate_error

logger = get_logger(__name__)

T = TypeVar("T")

_active_transaction: ContextVar[Transaction | None] = ContextVar(
    "flowledger_active_transaction", default=None
)


class Transaction:
    """Handle passed to a unit of work; bound to one exclusive connection."""

    def __init__(
        self,
        handle: PooledConnection,
        executor: QueryExecutor,
        deadline: Deadline | None = None,
    ):
        self.id = uuid.uuid4().hex[:12]
        self._handle = handle
        self._executor = executor
        self._deadline = deadline
        self._open = True
        self.statements = 0

    @property
    def backend(self) -> str:
        return self._handle.backend

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self._handle.backend)

    @property
    def is_open(self) -> bool:
        return self._open

    def execute(self, statement: str, parameters: Sequence[Any] = ()) -> Rows:
        """Run one statement inside this transaction."""
        if not self._open:
            raise NestedTransactionError(
                f"Transaction {self.id} has finished; its handle cannot be reused"
            )
        self.statements += 1
        return self._executor.execute(self._handle, statement, parameters, deadline=self._deadline)

    def _close(self) -> None:
        self._open = False

    def __repr__(self) -> str:
        return f"Transaction(id={self.id!r}, open={self._open}, statements={self.statements})"


def current_transaction() -> Transaction | None:
    """The transaction active in this context, if any."""
    return _active_transaction.get()


class TransactionCoordinator:
    """Runs units of work under BEGIN/COMMIT/ROLLBACK on a pooled connection."""

    def __init__(self, pool: ConnectionPool, executor: QueryExecutor | None = None):
        self._pool = pool
        self._executor = executor or QueryExecutor()

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def run(self, unit_of_work: Callable[[Transaction], T], *, timeout: float | None = None) -> T:
        """Run *unit_of_work* atomically and return its result.

        Parameters
        ----------
        unit_of_work:
            Called with a :class:`Transaction`; everything it executes
            commits together or not at all.
        timeout:
            Deadline in seconds covering connection acquisition and every
            statement. Expiry rolls back and raises ``TransactionAborted``.

        Raises
        ------
        NestedTransactionError
            A transaction is already active in this context.
        PoolExhausted, BackendUnreachable
            No connection could be obtained; nothing was started.
        TransactionAborted
            The deadline cancelled the work; rollback already performed.
        """
        if _active_transaction.get() is not None:
            raise NestedTransactionError(
                "A transaction is already active in this context; "
                "issue statements through its Transaction handle instead"
            )

        deadline = Deadline.after(timeout)
        handle = self._pool.acquire(deadline=deadline)
        tx = Transaction(handle, self._executor, deadline)
        token = _active_transaction.set(tx)
        start = time.perf_counter()
        try:
            with LogContext(transaction_id=tx.id):
                try:
                    sa_transaction = handle.connection.begin()
                except exc.DBAPIError as e:
                    raise translate_error(e, "BEGIN", handle.backend) from e
                try:
                    result = unit_of_work(tx)
                except BaseException as error:
                    tx._close()
                    self._rollback(handle, sa_transaction)
                    logger.info(
                        "transaction_rolled_back",
                        error_type=type(error).__name__,
                        statements=tx.statements,
                        duration_ms=round((time.perf_counter() - start) * 1000, 2),
                    )
                    if isinstance(error, StatementCancelled):
                        raise TransactionAborted(
                            f"Transaction {tx.id} cancelled: {error.message}",
                            cause=error,
                        ) from error
                    raise

                tx._close()
                try:
                    sa_transaction.commit()
                except exc.DBAPIError as e:
                    self._rollback(handle, sa_transaction)
                    raise translate_error(e, "COMMIT", handle.backend) from e

                logger.debug(
                    "transaction_committed",
                    statements=tx.statements,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )
                return result
        finally:
            _active_transaction.reset(token)
            self._pool.release(handle)

    def query(self, statement: str, parameters: Sequence[Any] = (), *, timeout: float | None = None) -> Rows:
        """Run a single statement in its own transaction."""
        return self.run(lambda tx: tx.execute(statement, parameters), timeout=timeout)

    def _rollback(self, handle: PooledConnection, sa_transaction: Any) -> None:
        if not sa_transaction.is_active:
            return
        try:
            sa_transaction.rollback()
        except Exception as rollback_error:  # noqa: BLE001
            # A connection that cannot roll back must not go back into the pool
            logger.error("rollback_failed", error=str(rollback_error))
            handle.connection.invalidate()


__all__ = [
    "Transaction",
    "TransactionCoordinator",
    "current_transaction",
]
