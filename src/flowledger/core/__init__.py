"""flowledger core -- persistence and audit primitives.

Architecture::

    Layer 1 -- Errors, configuration, logging
        errors.py          Typed error hierarchy (FlowLedgerError, QueryError)
        settings.py        DatabaseSettings (pydantic-settings)
        logging.py         structlog configuration and helpers

    Layer 2 -- Connections and statements
        pool.py            ConnectionPool over a SQLAlchemy QueuePool
        dialect.py         Placeholder rewriting and per-backend SQL
        sqlstate.py        Driver error classification
        executor.py        QueryExecutor, the single choke point for SQL
        transaction.py     TransactionCoordinator (all-or-nothing units of work)

    Layer 3 -- Schema and audit
        orm/               Declarative tables, trigger DDL
        schema.py          create_schema / drop_schema
        repositories/      Workflow, agent, log, result and history access

    Layer 4 -- Operations
        health.py          HealthMonitor and FastAPI health router
        retention.py       Purge of soft-deleted and expired rows

Tags:
    flowledger, core, package-overview
"""

from flowledger.core.errors import (
    BackendUnreachable,
    ConstraintViolation,
    FlowLedgerError,
    NestedTransactionError,
    PoolExhausted,
    QueryError,
    RowNotFound,
    StatementCancelled,
    SyntaxOrTypeError,
    TransactionAborted,
)
from flowledger.core.settings import DatabaseSettings

__all__ = [
    "BackendUnreachable",
    "ConstraintViolation",
    "DatabaseSettings",
    "FlowLedgerError",
    "NestedTransactionError",
    "PoolExhausted",
    "QueryError",
    "RowNotFound",
    "StatementCancelled",
    "SyntaxOrTypeError",
    "TransactionAborted",
]
