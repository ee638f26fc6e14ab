"""
The flowledger boundary: one object owning the pool and everything built on it.

Manifesto:
    Applications should not assemble pools, executors, coordinators and
    repositories by hand. ``Database`` wires them from one
    ``DatabaseSettings`` and owns their lifetime: constructing it creates the
    pool, ``close()`` disposes it. There is no module-level instance; tests
    and applications construct as many as they need.

Architecture:
    ::

        Database(settings)
          ├── pool         ConnectionPool (bounded, observable)
          ├── executor     QueryExecutor (parameter binding, error typing)
          ├── coordinator  TransactionCoordinator (BEGIN/COMMIT/ROLLBACK)
          ├── monitor      HealthMonitor (never raises)
          └── workflows / agents / logs / results / history  (repositories)

Examples:
    >>> with Database.from_url("sqlite:///./ledger.db") as db:
    ...     db.create_schema()
    ...     wf = db.workflows.create("nightly-etl")
    ...     db.workflows.change_status(wf.id, "running", reason="scheduler")
    ...     [h.status for h in db.history.for_workflow(wf.id)]
    ['running']

Tags:
    flowledger, facade, lifecycle
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from flowledger.core.executor import QueryExecutor, Rows
from flowledger.core.health import HealthMonitor, HealthReport
from flowledger.core.logging import get_logger
from flowledger.core.pool import ConnectionPool, PoolStats
from flowledger.core.repositories import (
    AgentRepository,
    LogRepository,
    ResultRepository,
    StatusHistoryRepository,
    WorkflowRepository,
)
from flowledger.core.schema import create_schema, drop_schema
from flowledger.core.settings import DatabaseSettings
from flowledger.core.transaction import Transaction, TransactionCoordinator

logger = get_logger(__name__)

T = TypeVar("T")


class Database:
    """Pool, executor, coordinator, health monitor and repositories for one backend.

    Parameters
    ----------
    settings:
        Connection and pool configuration. Read from the environment
        (``FLOWLEDGER_DB_*``) when omitted.
    """

    def __init__(self, settings: DatabaseSettings | None = None):
        self.settings = settings or DatabaseSettings()
        self.pool = ConnectionPool(self.settings)
        self.executor = QueryExecutor()
        self.coordinator = TransactionCoordinator(self.pool, self.executor)
        self.monitor = HealthMonitor(self.pool, self.executor)

        allow_deleted = self.settings.allow_transitions_on_deleted
        self.workflows = WorkflowRepository(self.coordinator, allow_deleted=allow_deleted)
        self.agents = AgentRepository(self.coordinator, allow_deleted=allow_deleted)
        self.logs = LogRepository(self.coordinator)
        self.results = ResultRepository(self.coordinator)
        self.history = StatusHistoryRepository(self.coordinator)

    @classmethod
    def from_url(cls, url: str, **overrides: Any) -> Database:
        """Build a ``Database`` for *url*, overriding other settings by keyword."""
        return cls(DatabaseSettings(url=url, **overrides))

    @property
    def backend(self) -> str:
        return self.pool.backend

    # ── statements ───────────────────────────────────────────────────

    def query(self, statement: str, parameters: Sequence[Any] = (), *, timeout: float | None = None) -> Rows:
        """Run one statement in its own transaction."""
        return self.coordinator.query(statement, parameters, timeout=timeout)

    def run_transaction(self, unit_of_work: Callable[[Transaction], T], *, timeout: float | None = None) -> T:
        """Run *unit_of_work* atomically; see :meth:`TransactionCoordinator.run`."""
        return self.coordinator.run(unit_of_work, timeout=timeout)

    # ── schema / health ──────────────────────────────────────────────

    def create_schema(self) -> list[str]:
        return create_schema(self.pool)

    def drop_schema(self) -> None:
        drop_schema(self.pool)

    def check_health(self) -> HealthReport:
        return self.monitor.check_health()

    def pool_stats(self) -> PoolStats:
        return self.pool.stats()

    # ── lifecycle ────────────────────────────────────────────────────

    def close(self) -> None:
        self.pool.dispose()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database(backend={self.backend!r}, url={self.settings.masked_url()!r})"


__all__ = ["Database"]
