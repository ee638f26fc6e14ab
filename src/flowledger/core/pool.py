"""
Connection pool: a bounded set of live backend connections.

Manifesto:
    Database connections are expensive (TCP handshake, auth, TLS) and the
    backend caps how many it accepts. The pool keeps warm connections ready,
    refuses to grow past ``max_size``, and makes saturation visible through
    ``stats()`` instead of letting callers hang forever.

    - **Bounded:** at most ``max_size`` connections, ``acquire()`` waits at
      most ``acquire_timeout`` seconds and then raises ``PoolExhausted``
    - **Observable:** ``stats()`` reports total / idle / in-use / waiting
      without blocking
    - **Self-healing:** dead connections are detected by a pre-ping on
      checkout and replaced transparently
    - **Explicit lifetime:** the pool is a constructed object, disposed by
      its owner; there is no module-level pool

Architecture:
    ::

        acquire(timeout) ──► slot semaphore (max_size, counts waiters)
                                   │
                                   ▼
                         SQLAlchemy QueuePool
                   ┌─────────┬─────────┬─────────┬─────────┐
                   │  conn1  │  conn2  │  conn3  │ overflow│
                   │  (idle) │ (in-use)│  (idle) │ (closed │
                   │         │         │         │ on idle)│
                   └─────────┴─────────┴─────────┴─────────┘
                   pool_size = min_size, max_overflow = max - min

    Connections above ``min_size`` are overflow connections: QueuePool
    closes them as soon as they are returned, so the idle set never exceeds
    the minimum. Idle connections older than ``idle_timeout`` are discarded
    on the next checkout.

Examples:
    >>> pool = ConnectionPool(DatabaseSettings(url="sqlite:///./ledger.db"))
    >>> with pool.connection() as handle:
    ...     handle.connection.exec_driver_sql("SELECT 1")
    >>> pool.stats().in_use
    0
    >>> pool.dispose()

Guardrails:
    - ALWAYS release what you acquire (prefer ``with pool.connection()``)
    - NEVER share a handle between threads
    - In-memory SQLite is rejected: each pooled connection would open its
      own private database

Tags:
    connection-pool, sqlalchemy, queuepool, flowledger
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import create_engine, event, exc
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.pool import QueuePool

from flowledger.core.deadline import Deadline
from flowledger.core.errors import BackendUnreachable, InvalidConfigError, PoolExhausted
from flowledger.core.logging import get_logger
from flowledger.core.settings import DatabaseSettings

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time pool counters. ``total == idle + in_use`` always holds."""

    total: int
    idle: int
    in_use: int
    waiting: int
    min_size: int
    max_size: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class PooledConnection:
    """Exclusive handle on one pooled connection, valid until released."""

    def __init__(self, connection: Connection, backend: str):
        self.id = uuid.uuid4().hex[:12]
        self._connection = connection
        self.backend = backend
        self.acquired_at = time.monotonic()
        self.released = False

    @property
    def connection(self) -> Connection:
        """The SQLAlchemy connection. Raises once the handle was released."""
        if self.released:
            raise RuntimeError(f"connection handle {self.id} was already released")
        return self._connection

    @property
    def dbapi_connection(self) -> Any:
        """The raw driver connection (``sqlite3.Connection`` / psycopg2 connection)."""
        return self.connection.connection.dbapi_connection

    def __repr__(self) -> str:
        state = "released" if self.released else "held"
        return f"PooledConnection(id={self.id!r}, backend={self.backend!r}, {state})"


def create_pool_engine(settings: DatabaseSettings) -> Engine:
    """Create the SQLAlchemy engine backing a :class:`ConnectionPool`.

    SQLite connections get foreign keys, WAL and a busy timeout, and driver
    autocommit so the explicit ``BEGIN`` emitted on transaction start is the
    only transaction boundary. PostgreSQL connections get the configured
    session ``statement_timeout``.
    """
    url: URL = settings.resolved_url()
    backend = url.get_backend_name()
    connect_args: dict[str, Any] = {}

    if backend == "sqlite":
        if url.database in (None, "", ":memory:"):
            raise InvalidConfigError(
                "url",
                settings.masked_url(),
                "In-memory SQLite cannot be pooled; use a file-backed database",
            )
        connect_args = {"check_same_thread": False, "timeout": settings.connect_timeout}
    elif backend == "postgresql":
        connect_args = {"connect_timeout": int(settings.connect_timeout)}
        if settings.statement_timeout:
            connect_args["options"] = f"-c statement_timeout={int(settings.statement_timeout * 1000)}"

    engine = create_engine(
        url,
        echo=settings.echo,
        poolclass=QueuePool,
        pool_size=settings.pool_min_size,
        max_overflow=settings.pool_max_size - settings.pool_min_size,
        pool_timeout=settings.acquire_timeout,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if backend == "sqlite":

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            # pysqlite must not emit its own BEGIN; see the "begin" hook below
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _do_begin(conn: Connection) -> None:
            conn.exec_driver_sql("BEGIN")

    idle_timeout = settings.idle_timeout

    @event.listens_for(engine, "checkin")
    def _mark_idle(_dbapi_connection: Any, record: Any) -> None:
        record.info["idle_since"] = time.monotonic()

    @event.listens_for(engine, "checkout")
    def _reap_stale(_dbapi_connection: Any, record: Any, _proxy: Any) -> None:
        idle_since = record.info.pop("idle_since", None)
        if idle_since is not None and time.monotonic() - idle_since > idle_timeout:
            logger.debug("connection_reaped", idle_seconds=round(time.monotonic() - idle_since, 1))
            # The pool invalidates the record and retries with a fresh connection
            raise exc.DisconnectionError("idle connection exceeded idle_timeout")

    @event.listens_for(engine, "connect")
    def _log_connect(_dbapi_connection: Any, _rec: Any) -> None:
        logger.debug("connection_opened", backend=backend)

    return engine


class ConnectionPool:
    """Bounded pool of backend connections with non-blocking statistics.

    Parameters
    ----------
    settings:
        Pool bounds, timeouts and backend URL.
    engine:
        Pre-built engine (tests); created from *settings* when omitted.
    """

    def __init__(self, settings: DatabaseSettings, *, engine: Engine | None = None):
        self.settings = settings
        self._engine = engine or create_pool_engine(settings)
        self.backend = self._engine.dialect.name
        self._slots = threading.BoundedSemaphore(settings.pool_max_size)
        self._lock = threading.Lock()
        self._waiting = 0
        self._closed = False
        logger.info(
            "pool_created",
            url=settings.masked_url(),
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
        )

    @classmethod
    def from_url(cls, url: str, **overrides: Any) -> ConnectionPool:
        return cls(DatabaseSettings(url=url, **overrides))

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._closed

    # ── acquire / release ────────────────────────────────────────────

    def acquire(self, timeout: float | None = None, *, deadline: Deadline | None = None) -> PooledConnection:
        """Borrow a connection for exclusive use.

        Waits at most *timeout* seconds (default ``acquire_timeout``), further
        capped by *deadline*.

        Raises
        ------
        PoolExhausted
            No connection became free in time.
        BackendUnreachable
            A new connection could not be opened.
        """
        if self._closed:
            raise BackendUnreachable("Connection pool is closed")

        wait = self.settings.acquire_timeout if timeout is None else timeout
        if deadline is not None:
            wait = deadline.cap(wait)

        with self._lock:
            self._waiting += 1
        try:
            got_slot = self._slots.acquire(timeout=wait)
        finally:
            with self._lock:
                self._waiting -= 1

        if not got_slot:
            stats = self.stats()
            logger.warning("pool_exhausted", wait_seconds=wait, **stats.to_dict())
            raise PoolExhausted(
                f"No connection available within {wait:.2f}s "
                f"(in_use={stats.in_use}, max_size={stats.max_size})"
            )

        try:
            connection = self._engine.connect()
        except exc.TimeoutError as e:
            self._slots.release()
            raise PoolExhausted(f"Pool checkout timed out: {e}", cause=e) from e
        except exc.DBAPIError as e:
            self._slots.release()
            logger.error("backend_unreachable", error=str(e.orig))
            raise BackendUnreachable(f"Cannot connect to backend: {e.orig}", cause=e) from e

        return PooledConnection(connection, self.backend)

    def release(self, handle: PooledConnection) -> None:
        """Return *handle* to the idle set. Releasing twice is a no-op."""
        if handle.released:
            return
        handle.released = True
        try:
            handle._connection.close()
        finally:
            self._slots.release()
        logger.debug(
            "connection_released",
            handle=handle.id,
            held_ms=round((time.monotonic() - handle.acquired_at) * 1000, 2),
        )

    @contextmanager
    def connection(self, timeout: float | None = None, *, deadline: Deadline | None = None) -> Iterator[PooledConnection]:
        """``acquire()`` for the duration of a ``with`` block."""
        handle = self.acquire(timeout, deadline=deadline)
        try:
            yield handle
        finally:
            self.release(handle)

    # ── introspection / lifecycle ────────────────────────────────────

    def stats(self) -> PoolStats:
        """Current counters; never blocks on the pool."""
        pool = self._engine.pool
        idle = pool.checkedin() if isinstance(pool, QueuePool) else 0
        in_use = max(0, pool.checkedout()) if isinstance(pool, QueuePool) else 0
        return PoolStats(
            total=idle + in_use,
            idle=idle,
            in_use=in_use,
            waiting=self._waiting,
            min_size=self.settings.pool_min_size,
            max_size=self.settings.pool_max_size,
        )

    def dispose(self) -> None:
        """Close every idle connection and refuse further acquires."""
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()
        logger.info("pool_disposed")

    def __enter__(self) -> ConnectionPool:
        return self

    def __exit__(self, *args: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"ConnectionPool(backend={self.backend!r}, url={self.settings.masked_url()!r})"


__all__ = [
    "ConnectionPool",
    "PoolStats",
    "PooledConnection",
    "create_pool_engine",
]
