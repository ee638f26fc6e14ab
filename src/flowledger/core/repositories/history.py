"""Status history repository -- read side of the audit trail.

History rows are written only by the backend triggers installed with the
schema (see :mod:`flowledger.core.orm.triggers`); this repository reads
them. There are no write methods.

Tags:
    flowledger, repository, audit, status-history

Doc-Types:
    api-reference
"""

from __future__ import annotations

from flowledger.core.repositories.base import BaseRepository
from flowledger.core.repositories.models import StatusChange
from flowledger.core.transaction import Transaction


class StatusHistoryRepository(BaseRepository):
    """Ordered status transitions for workflows and agents."""

    def _history(
        self,
        table: str,
        fk: str,
        entity_id: str,
        limit: int | None,
        tx: Transaction | None,
    ) -> list[StatusChange]:
        sql = (
            f"SELECT id, {fk} AS entity_id, status, previous_status, reason, metadata, timestamp "
            f"FROM {table} WHERE {fk} = ? ORDER BY timestamp ASC, id"
        )
        params: tuple = (entity_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)

        def work(t: Transaction) -> list[StatusChange]:
            return [StatusChange.model_validate(row) for row in self.query(t, sql, params)]

        return self._within(tx, work)

    def for_workflow(
        self, workflow_id: str, *, limit: int | None = None, tx: Transaction | None = None
    ) -> list[StatusChange]:
        """Transitions of one workflow, oldest first."""
        return self._history("workflow_status_history", "workflow_id", workflow_id, limit, tx)

    def for_agent(
        self, agent_id: str, *, limit: int | None = None, tx: Transaction | None = None
    ) -> list[StatusChange]:
        """Transitions of one agent, oldest first."""
        return self._history("agent_status_history", "agent_id", agent_id, limit, tx)

    def latest_for_workflow(self, workflow_id: str, *, tx: Transaction | None = None) -> StatusChange | None:
        def work(t: Transaction) -> StatusChange | None:
            row = self.query_one(
                t,
                "SELECT id, workflow_id AS entity_id, status, previous_status, reason, metadata, timestamp "
                "FROM workflow_status_history WHERE workflow_id = ? ORDER BY timestamp DESC, id DESC LIMIT 1",
                (workflow_id,),
            )
            return StatusChange.model_validate(row) if row else None

        return self._within(tx, work)


__all__ = ["StatusHistoryRepository"]
