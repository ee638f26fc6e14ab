"""Data retention and purge utilities.

Soft delete never removes rows; this module is the only place where ledger
rows are physically deleted:

- **Soft-deleted workflows and agents** older than the retention period
  (default 30 days). Their logs, results and status history go with them
  through ``ON DELETE CASCADE``. A workflow still referenced by an agent
  that is not itself eligible is kept.
- **Log entries and agent results** older than the retention period
  (default 90 days), whether or not their agent still exists.

Status history of live rows is never purged.

Each purge runs in a single transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from flowledger.core.logging import get_logger
from flowledger.core.transaction import Transaction

if TYPE_CHECKING:
    from flowledger.database import Database

logger = get_logger(__name__)

SOFT_DELETE_RETENTION_DAYS = 30
RECORD_RETENTION_DAYS = 90

_SOFT_DELETABLE = ("workflows", "agents")
_ALL_TABLES = (
    "workflows",
    "agents",
    "workflow_status_history",
    "agent_status_history",
    "log_entries",
    "agent_results",
)


@dataclass
class PurgeResult:
    """Result of a purge operation on one table."""

    table: str
    deleted: int
    cutoff: str


@dataclass
class RetentionReport:
    """Aggregated results of a retention run."""

    results: list[PurgeResult] = field(default_factory=list)
    total_deleted: int = 0
    dry_run: bool = False

    def add(self, result: PurgeResult) -> None:
        self.results.append(result)
        self.total_deleted += result.deleted

    def to_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "total_deleted": self.total_deleted,
            "results": [vars(r) for r in self.results],
        }


@dataclass
class TableCount:
    """Row counts for one table; ``active``/``deleted`` only for soft-deletable tables."""

    table: str
    total: int
    active: int | None = None
    deleted: int | None = None


def compute_cutoff(days: int) -> datetime:
    """UTC instant *days* before now. Rows older than this are eligible."""
    if days < 0:
        raise ValueError(f"retention days must be >= 0, got {days}")
    return datetime.now(UTC) - timedelta(days=days)


def _purge(
    tx: Transaction,
    table: str,
    where: str,
    cutoff: datetime,
    dry_run: bool,
) -> PurgeResult:
    params = (tx.dialect.timestamp_param(cutoff),) * where.count("?")
    if dry_run:
        deleted = int(tx.execute(f"SELECT COUNT(*) AS cnt FROM {table} WHERE {where}", params).scalar())
    else:
        deleted = tx.execute(f"DELETE FROM {table} WHERE {where}", params).rowcount  # noqa: S608
    logger.info("retention_purged", table=table, deleted=deleted, cutoff=cutoff.isoformat(), dry_run=dry_run)
    return PurgeResult(table=table, deleted=deleted, cutoff=cutoff.isoformat())


def purge_soft_deleted(
    db: Database,
    older_than_days: int = SOFT_DELETE_RETENTION_DAYS,
    *,
    dry_run: bool = False,
) -> RetentionReport:
    """Physically remove agents, then workflows, soft-deleted before the cutoff."""
    cutoff = compute_cutoff(older_than_days)

    def work(tx: Transaction) -> RetentionReport:
        report = RetentionReport(dry_run=dry_run)
        report.add(_purge(tx, "agents", "deleted_at IS NOT NULL AND deleted_at < ?", cutoff, dry_run))
        report.add(
            _purge(
                tx,
                "workflows",
                "deleted_at IS NOT NULL AND deleted_at < ? "
                "AND NOT EXISTS (SELECT 1 FROM agents a WHERE a.workflow_id = workflows.id "
                "AND (a.deleted_at IS NULL OR a.deleted_at >= ?))",
                cutoff,
                dry_run,
            )
        )
        return report

    return db.run_transaction(work)


def purge_expired_records(
    db: Database,
    older_than_days: int = RECORD_RETENTION_DAYS,
    *,
    dry_run: bool = False,
) -> RetentionReport:
    """Remove log entries and agent results older than the cutoff."""
    cutoff = compute_cutoff(older_than_days)

    def work(tx: Transaction) -> RetentionReport:
        report = RetentionReport(dry_run=dry_run)
        for table in ("log_entries", "agent_results"):
            report.add(_purge(tx, table, "timestamp < ?", cutoff, dry_run))
        return report

    return db.run_transaction(work)


def table_counts(db: Database) -> list[TableCount]:
    """Row counts for every ledger table.

    Useful for monitoring before/after purge operations.
    """

    def work(tx: Transaction) -> list[TableCount]:
        counts = []
        for table in _ALL_TABLES:
            if table in _SOFT_DELETABLE:
                row = tx.execute(
                    f"SELECT COUNT(*) AS total, "
                    f"COALESCE(SUM(CASE WHEN deleted_at IS NULL THEN 1 ELSE 0 END), 0) AS active "
                    f"FROM {table}"
                ).first() or {}
                total, active = int(row.get("total", 0)), int(row.get("active", 0))
                counts.append(TableCount(table=table, total=total, active=active, deleted=total - active))
            else:
                total = int(tx.execute(f"SELECT COUNT(*) AS total FROM {table}").scalar() or 0)
                counts.append(TableCount(table=table, total=total))
        return counts

    return db.run_transaction(work)


__all__ = [
    "PurgeResult",
    "RetentionReport",
    "TableCount",
    "compute_cutoff",
    "purge_expired_records",
    "purge_soft_deleted",
    "table_counts",
]
