"""Database health monitoring for flowledger.

Provides:

- **Response models** -- ``HealthReport``, ``DatabaseStatus``, ``PoolSnapshot``
  and ``LivenessResponse``, the JSON envelope returned by every health probe.
- **``HealthMonitor``** -- one lightweight round trip to the backend plus a
  snapshot of the pool counters. ``check_health()`` never raises: every
  failure is folded into an ``unhealthy`` report.
- **``create_health_router()``** -- FastAPI endpoints ``/health``,
  ``/health/ready`` and ``/health/live``.

Quick start::

    from flowledger.core.health import HealthMonitor, create_health_router

    monitor = HealthMonitor(pool)
    report = monitor.check_health()
    report.status            # "healthy" | "unhealthy"

    app.include_router(create_health_router(monitor))
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from flowledger.core.deadline import Deadline
from flowledger.core.dialect import get_dialect
from flowledger.core.executor import QueryExecutor
from flowledger.core.logging import get_logger
from flowledger.core.pool import ConnectionPool

logger = get_logger(__name__)

DEFAULT_HEALTH_TIMEOUT = 5.0


# ── Response Models ──────────────────────────────────────────────────────


class DatabaseStatus(BaseModel):
    """Backend reachability and identity as seen by the health round trip."""

    backend: str
    reachable: bool = False
    server_time: str | None = None
    version: str | None = None


class PoolSnapshot(BaseModel):
    """Pool counters at the time of the check."""

    total: int = 0
    idle: int = 0
    in_use: int = 0
    waiting: int = 0
    min_size: int = 0
    max_size: int = 0


class HealthReport(BaseModel):
    """Health envelope returned by :meth:`HealthMonitor.check_health`.

    Fields
    ──────
    status     : ``healthy`` | ``unhealthy``
    database   : Reachability, server time and version
    pool       : Connection counters (total / idle / in_use / waiting)
    timestamp  : ISO-8601 UTC time the check ran
    latency_ms : Round-trip time including connection acquisition
    error      : Failure description when ``unhealthy``
    """

    status: Literal["healthy", "unhealthy"] = "healthy"
    database: DatabaseStatus
    pool: PoolSnapshot = Field(default_factory=PoolSnapshot)
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    latency_ms: float | None = None
    error: str | None = None

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


class LivenessResponse(BaseModel):
    """Response for liveness probes -- always ``{"status": "alive"}``."""

    status: str = "alive"


# ── Monitor ──────────────────────────────────────────────────────────────


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class HealthMonitor:
    """Samples backend reachability and pool saturation.

    Parameters
    ----------
    pool : ConnectionPool
        Pool whose backend and counters are reported.
    executor : QueryExecutor | None
        Executor for the round trip (a fresh one by default).
    timeout : float
        Upper bound in seconds for acquiring a connection and running the
        round trip.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        executor: QueryExecutor | None = None,
        timeout: float = DEFAULT_HEALTH_TIMEOUT,
    ):
        self._pool = pool
        self._executor = executor or QueryExecutor()
        self.timeout = timeout

    def check_health(self) -> HealthReport:
        """Run one round trip; report ``unhealthy`` instead of raising."""
        database = DatabaseStatus(backend=self._pool.backend)
        start = time.perf_counter()
        error: str | None = None
        try:
            deadline = Deadline.after(self.timeout)
            with self._pool.connection(deadline=deadline) as handle:
                dialect = get_dialect(handle.backend)
                row = self._executor.execute(handle, dialect.health_query(), deadline=deadline).first() or {}
                # End the implicit read transaction before the connection goes back
                handle.connection.rollback()
            database.reachable = True
            database.server_time = _as_text(row.get("server_time"))
            database.version = _as_text(row.get("version"))
        except Exception as exc:  # noqa: BLE001
            error = f"{type(exc).__name__}: {exc}"[:200]
            logger.warning("health_check_failed", error=error)

        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        report = HealthReport(
            status="healthy" if error is None else "unhealthy",
            database=database,
            pool=PoolSnapshot(**self._pool.stats().to_dict()),
            latency_ms=latency_ms,
            error=error,
        )
        logger.debug("health_checked", status=report.status, latency_ms=latency_ms)
        return report

    async def async_check_health(self) -> HealthReport:
        """:meth:`check_health` on a worker thread, for async callers."""
        return await asyncio.to_thread(self.check_health)


# ── Router Factory ───────────────────────────────────────────────────────


def create_health_router(monitor: HealthMonitor, prefix: str = "/health"):
    """Create a FastAPI ``APIRouter`` exposing the monitor.

    Endpoints created
    -----------------
    ``GET {prefix}``         Full report -- 503 when unhealthy.
    ``GET {prefix}/ready``   Readiness probe -- same report, 503 when unhealthy.
    ``GET {prefix}/live``    Liveness probe -- always 200.

    Returns
    -------
    fastapi.APIRouter
    """
    from fastapi import APIRouter  # noqa: PLC0415
    from fastapi.responses import JSONResponse  # noqa: PLC0415

    router = APIRouter(tags=["health"])

    async def _respond() -> JSONResponse:
        report = await monitor.async_check_health()
        code = 200 if report.healthy else 503
        return JSONResponse(content=report.model_dump(), status_code=code)

    @router.get(prefix, response_model=HealthReport)
    async def health() -> JSONResponse:
        """Backend round trip plus pool counters."""
        return await _respond()

    @router.get(f"{prefix}/ready", response_model=HealthReport)
    async def readiness() -> JSONResponse:
        """Readiness probe -- 503 while the database is unreachable."""
        return await _respond()

    @router.get(f"{prefix}/live", response_model=LivenessResponse)
    async def liveness() -> LivenessResponse:
        """Liveness probe -- always 200 if the process is running."""
        return LivenessResponse()

    return router


__all__ = [
    "DatabaseStatus",
    "HealthMonitor",
    "HealthReport",
    "LivenessResponse",
    "PoolSnapshot",
    "create_health_router",
]
