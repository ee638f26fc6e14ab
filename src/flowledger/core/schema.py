"""
Schema installation: tables, enum types, constraints, indexes, triggers, views.

Manifesto:
    The backend is the last line of defence for data integrity. Enum domains,
    progress ranges, foreign keys and append-only rules are declared in the
    schema so that no caller (including ones that bypass the repositories)
    can write invalid state.

    ``create_schema`` is safe to call on every start-up: tables and indexes
    are created with ``checkfirst``, triggers and views with
    ``IF NOT EXISTS`` / ``CREATE OR REPLACE``. Everything runs in a single
    transaction, so a failure leaves the database untouched.

Usage::

    pool = ConnectionPool(DatabaseSettings(url="sqlite:///./ledger.db"))
    create_schema(pool)

Tags:
    flowledger, schema, ddl, constraints, triggers
"""

from __future__ import annotations

from sqlalchemy import exc, inspect
from sqlalchemy.engine import Connection

from flowledger.core.logging import get_logger
from flowledger.core.orm import tables as _tables  # noqa: F401  (registers the tables)
from flowledger.core.orm.base import LedgerBase
from flowledger.core.orm.triggers import create_statements, drop_statements, extension_statements
from flowledger.core.pool import ConnectionPool
from flowledger.core.sqlstate import translate_error

logger = get_logger(__name__)

_NO_PARAMETERS = {"no_parameters": True}


def _run_ddl(connection: Connection, statements: list[str], backend: str) -> None:
    for ddl in statements:
        try:
            connection.exec_driver_sql(ddl, execution_options=_NO_PARAMETERS)
        except exc.DBAPIError as e:
            raise translate_error(e, ddl, backend) from e


def create_schema(pool: ConnectionPool) -> list[str]:
    """Create every table, trigger and view that does not exist yet.

    Returns
    -------
    list[str]
        Names of the tables that were newly created.
    """
    with pool.connection() as handle:
        connection = handle.connection
        with connection.begin():
            existing = set(inspect(connection).get_table_names())
            _run_ddl(connection, extension_statements(handle.backend), handle.backend)
            try:
                LedgerBase.metadata.create_all(bind=connection, checkfirst=True)
            except exc.DBAPIError as e:
                raise translate_error(e, "CREATE TABLE", handle.backend) from e
            _run_ddl(connection, create_statements(handle.backend), handle.backend)

    created = [name for name in LedgerBase.metadata.tables if name not in existing]
    logger.info("schema_created", backend=pool.backend, created=created)
    return created


def drop_schema(pool: ConnectionPool) -> None:
    """Drop views, triggers, tables and enum types. Destroys all data."""
    with pool.connection() as handle:
        connection = handle.connection
        with connection.begin():
            _run_ddl(connection, drop_statements(handle.backend), handle.backend)
            try:
                LedgerBase.metadata.drop_all(bind=connection, checkfirst=True)
            except exc.DBAPIError as e:
                raise translate_error(e, "DROP TABLE", handle.backend) from e
    logger.warning("schema_dropped", backend=pool.backend)


def schema_tables() -> list[str]:
    """Names of the tables managed by flowledger, parents first."""
    return [table.name for table in LedgerBase.metadata.sorted_tables]


__all__ = ["create_schema", "drop_schema", "schema_tables"]
