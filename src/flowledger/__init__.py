"""
flowledger -- transactional persistence and status-history audit for
multi-agent workflows.

Quick start::

    from flowledger import Database

    with Database.from_url("sqlite:///./ledger.db") as db:
        db.create_schema()
        wf = db.workflows.create("nightly-etl")
        db.workflows.change_status(wf.id, "running", reason="scheduler")
"""

__version__ = "0.1.0"

from flowledger.core.errors import (  # noqa: E402
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
from flowledger.core.settings import DatabaseSettings  # noqa: E402
from flowledger.database import Database  # noqa: E402

__all__ = [
    "BackendUnreachable",
    "ConstraintViolation",
    "Database",
    "DatabaseSettings",
    "FlowLedgerError",
    "NestedTransactionError",
    "PoolExhausted",
    "QueryError",
    "RowNotFound",
    "StatementCancelled",
    "SyntaxOrTypeError",
    "TransactionAborted",
    "__version__",
]
