"""Shared lifecycle operations for soft-deletable, status-bearing rows.

Workflows and agents have the same shape: a ``status`` whose transitions are
audited by the backend, mutable fields, and soft-delete columns
(``deleted_at``, ``deleted_by``, ``delete_reason``). This module holds the
operations common to both.

Tags:
    flowledger, repository, soft-delete, status

Doc-Types:
    api-reference
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar

from flowledger.core.errors import RowNotFound
from flowledger.core.logging import get_logger
from flowledger.core.repositories._helpers import RowView, _assignments, view_clause
from flowledger.core.repositories.base import BaseRepository
from flowledger.core.repositories.models import LedgerRecord
from flowledger.core.transaction import Transaction

logger = get_logger(__name__)


class LifecycleRepository(BaseRepository):
    """Get / update / change_status / soft_delete / restore for one table."""

    TABLE: ClassVar[str]
    ENTITY: ClassVar[str]
    RECORD: ClassVar[type[LedgerRecord]]
    UPDATABLE: ClassVar[frozenset[str]]
    JSON_COLUMNS: ClassVar[frozenset[str]]
    TERMINAL_STATUSES: ClassVar[frozenset[str]]

    # -- reads -----------------------------------------------------------------

    def _fetch(self, tx: Transaction, entity_id: str, view: RowView | str) -> dict[str, Any] | None:
        clause = view_clause(view)
        where = "id = ?" if clause is None else f"id = ? AND {clause}"
        return self.query_one(tx, f"SELECT * FROM {self.TABLE} WHERE {where}", (entity_id,))

    def _load(self, tx: Transaction, entity_id: str, view: RowView | str = RowView.ACTIVE) -> Any:
        row = self._fetch(tx, entity_id, view)
        if row is None:
            raise RowNotFound(self.ENTITY, entity_id)
        return self.RECORD.model_validate(row)

    def get(self, entity_id: str, *, view: RowView | str = RowView.ACTIVE, tx: Transaction | None = None) -> Any:
        """Fetch one row visible in *view*; raises ``RowNotFound`` otherwise."""
        return self._within(tx, lambda t: self._load(t, entity_id, view))

    def exists(self, entity_id: str, *, view: RowView | str = RowView.ACTIVE, tx: Transaction | None = None) -> bool:
        return self._within(tx, lambda t: self._fetch(t, entity_id, view) is not None)

    # -- writes ----------------------------------------------------------------

    def _mutation_view(self) -> RowView:
        return RowView.ALL if self.allow_deleted else RowView.ACTIVE

    def _update_row(self, tx: Transaction, entity_id: str, assignments: list[str], params: list[Any]) -> Any:
        clause = view_clause(self._mutation_view())
        where = "id = ?" if clause is None else f"id = ? AND {clause}"
        result = tx.execute(
            f"UPDATE {self.TABLE} SET {', '.join(assignments)} WHERE {where}",
            (*params, entity_id),
        )
        if result.rowcount == 0:
            raise RowNotFound(self.ENTITY, entity_id)
        return self._load(tx, entity_id, RowView.ALL)

    def update(self, entity_id: str, *, tx: Transaction | None = None, **fields: Any) -> Any:
        """Update mutable columns of an active row.

        Unknown column names raise ``ValueError`` before anything is sent to
        the backend. Values are validated by the schema (enum domains,
        progress range).
        """
        unknown = set(fields) - self.UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update {self.ENTITY} field(s): {', '.join(sorted(unknown))}")
        if not fields:
            return self.get(entity_id, tx=tx)
        assignments, params = _assignments(fields, self.JSON_COLUMNS)
        return self._within(tx, lambda t: self._update_row(t, entity_id, assignments, params))

    def change_status(
        self,
        entity_id: str,
        status: str,
        reason: str | None = None,
        *,
        tx: Transaction | None = None,
        **fields: Any,
    ) -> Any:
        """Move the row to *status*; the backend appends the history row.

        *reason* is stored as ``status_change_reason`` and recorded with the
        transition. Reaching a terminal status stamps ``completed_at``.
        Extra *fields* (``progress``, ``current_phase``, ...) are written in
        the same statement, so the history snapshot reflects them.
        """
        unknown = set(fields) - self.UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update {self.ENTITY} field(s): {', '.join(sorted(unknown))}")

        def work(t: Transaction) -> Any:
            assignments, params = _assignments(
                {"status": status, "status_change_reason": reason, **fields}, self.JSON_COLUMNS
            )
            if status in self.TERMINAL_STATUSES:
                assignments.append(f"completed_at = {t.dialect.now()}")
            record = self._update_row(t, entity_id, assignments, params)
            logger.info(f"{self.ENTITY}_status_changed", entity_id=entity_id, status=status, reason=reason)
            return record

        return self._within(tx, work)

    def _soft_delete_rows(
        self,
        tx: Transaction,
        where: str,
        params: tuple[Any, ...],
        deleted_at: Any,
        deleted_by: str,
        reason: str | None,
    ) -> int:
        result = tx.execute(
            f"UPDATE {self.TABLE} SET deleted_at = ?, deleted_by = ?, delete_reason = ? "
            f"WHERE {where} AND deleted_at IS NULL",
            (deleted_at, deleted_by, reason, *params),
        )
        return result.rowcount

    def _deletion_stamp(self, tx: Transaction) -> Any:
        return tx.dialect.timestamp_param(datetime.now(UTC))

    def soft_delete(
        self,
        entity_id: str,
        deleted_by: str = "system",
        reason: str | None = None,
        *,
        tx: Transaction | None = None,
    ) -> Any:
        """Mark an active row deleted. Rows are never physically removed here."""

        def work(t: Transaction) -> Any:
            deleted = self._soft_delete_rows(
                t, "id = ?", (entity_id,), self._deletion_stamp(t), deleted_by, reason
            )
            if deleted == 0:
                raise RowNotFound(self.ENTITY, entity_id)
            logger.info(f"{self.ENTITY}_soft_deleted", entity_id=entity_id, deleted_by=deleted_by)
            return self._load(t, entity_id, RowView.DELETED)

        return self._within(tx, work)

    def restore(self, entity_id: str, *, tx: Transaction | None = None) -> Any:
        """Clear the soft-delete columns of a deleted row."""

        def work(t: Transaction) -> Any:
            result = t.execute(
                f"UPDATE {self.TABLE} SET deleted_at = NULL, deleted_by = NULL, delete_reason = NULL "
                f"WHERE id = ? AND deleted_at IS NOT NULL",
                (entity_id,),
            )
            if result.rowcount == 0:
                raise RowNotFound(self.ENTITY, entity_id, f"{self.ENTITY} is not deleted: {entity_id}")
            logger.info(f"{self.ENTITY}_restored", entity_id=entity_id)
            return self._load(t, entity_id, RowView.ACTIVE)

        return self._within(tx, work)


__all__ = ["LifecycleRepository"]
