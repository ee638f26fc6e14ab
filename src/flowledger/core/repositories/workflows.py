"""Workflow repository -- the ``workflows`` table.

Tags:
    flowledger, repository, workflow

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from typing import Any

from flowledger.core.errors import RowNotFound
from flowledger.core.logging import get_logger
from flowledger.core.orm.tables import TERMINAL_WORKFLOW_STATUSES
from flowledger.core.repositories._helpers import RowView, _build_where, to_json, view_clause
from flowledger.core.repositories.lifecycle import LifecycleRepository
from flowledger.core.repositories.models import Workflow
from flowledger.core.transaction import Transaction

logger = get_logger(__name__)

CASCADE_REASON_PREFIX = "Workflow deleted: "


class WorkflowRepository(LifecycleRepository):
    """CRUD, status transitions and soft deletion for workflows.

    Soft-deleting a workflow soft-deletes its active agents in the same
    transaction; restoring it brings back the agents removed by that
    cascade.
    """

    TABLE = "workflows"
    ENTITY = "workflow"
    RECORD = Workflow
    UPDATABLE = frozenset(
        {
            "name",
            "description",
            "priority",
            "progress",
            "estimated_time_remaining",
            "completed_tasks",
            "total_tasks",
            "current_phase",
            "tags",
            "configuration",
            "metadata",
            "metrics",
        }
    )
    JSON_COLUMNS = frozenset({"tags", "configuration", "metadata", "metrics"})
    TERMINAL_STATUSES = TERMINAL_WORKFLOW_STATUSES

    # -- writes ----------------------------------------------------------------

    def create(
        self,
        name: str,
        *,
        description: str | None = None,
        priority: str | None = None,
        creator: str | None = None,
        tags: list[str] | None = None,
        configuration: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        total_tasks: int | None = None,
        current_phase: str | None = None,
        estimated_time_remaining: int | None = None,
        workflow_id: str | None = None,
        tx: Transaction | None = None,
    ) -> Workflow:
        """Insert a workflow; omitted columns take their schema defaults."""
        workflow_id = workflow_id or str(uuid.uuid4())
        data = {
            "id": workflow_id,
            "name": name,
            "description": description,
            "priority": priority,
            "creator": creator,
            "tags": to_json(tags),
            "configuration": to_json(configuration),
            "metadata": to_json(metadata),
            "total_tasks": total_tasks,
            "current_phase": current_phase,
            "estimated_time_remaining": estimated_time_remaining,
        }

        def work(t: Transaction) -> Workflow:
            self.insert(t, self.TABLE, data)
            return self._load(t, workflow_id)

        workflow = self._within(tx, work)
        logger.info("workflow_created", workflow_id=workflow.id, name=name)
        return workflow

    def soft_delete(
        self,
        entity_id: str,
        deleted_by: str = "system",
        reason: str | None = None,
        *,
        tx: Transaction | None = None,
    ) -> Workflow:
        """Soft-delete the workflow and its active agents atomically."""

        def work(t: Transaction) -> Workflow:
            stamp = self._deletion_stamp(t)
            if self._soft_delete_rows(t, "id = ?", (entity_id,), stamp, deleted_by, reason) == 0:
                raise RowNotFound(self.ENTITY, entity_id)
            agents = t.execute(
                "UPDATE agents SET deleted_at = ?, deleted_by = ?, delete_reason = ? "
                "WHERE workflow_id = ? AND deleted_at IS NULL",
                (stamp, deleted_by, CASCADE_REASON_PREFIX + (reason or "No reason provided"), entity_id),
            ).rowcount
            logger.info("workflow_soft_deleted", workflow_id=entity_id, deleted_by=deleted_by, agents=agents)
            return self._load(t, entity_id, RowView.DELETED)

        return self._within(tx, work)

    def restore(self, entity_id: str, *, tx: Transaction | None = None) -> Workflow:
        """Restore the workflow and the agents its deletion cascaded to."""

        def work(t: Transaction) -> Workflow:
            row = self._fetch(t, entity_id, RowView.DELETED)
            if row is None:
                raise RowNotFound(self.ENTITY, entity_id, f"workflow is not deleted: {entity_id}")
            t.execute(
                "UPDATE workflows SET deleted_at = NULL, deleted_by = NULL, delete_reason = NULL WHERE id = ?",
                (entity_id,),
            )
            agents = t.execute(
                "UPDATE agents SET deleted_at = NULL, deleted_by = NULL, delete_reason = NULL "
                "WHERE workflow_id = ? AND deleted_at = ? AND delete_reason LIKE ?",
                (entity_id, row["deleted_at"], CASCADE_REASON_PREFIX + "%"),
            ).rowcount
            logger.info("workflow_restored", workflow_id=entity_id, agents=agents)
            return self._load(t, entity_id, RowView.ACTIVE)

        return self._within(tx, work)

    # -- reads -----------------------------------------------------------------

    def list(
        self,
        *,
        status: str | None = None,
        priority: str | None = None,
        creator: str | None = None,
        view: RowView | str = RowView.ACTIVE,
        limit: int = 50,
        offset: int = 0,
        tx: Transaction | None = None,
    ) -> tuple[list[Workflow], int]:
        """List workflows with optional filters.  Returns ``(rows, total)``."""
        where, params = _build_where(
            {"status": status, "priority": priority, "creator": creator},
            extra_clauses=[view_clause(view)],
        )

        def work(t: Transaction) -> tuple[list[Workflow], int]:
            total = self.count(t, self.TABLE, where, params)
            rows = self.query(
                t,
                f"SELECT * FROM {self.TABLE} WHERE {where} "
                f"ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                (*params, limit, offset),
            )
            return [Workflow.model_validate(row) for row in rows], total

        return self._within(tx, work)


__all__ = ["WorkflowRepository", "CASCADE_REASON_PREFIX"]
