"""Log and result repositories -- ``log_entries`` and ``agent_results``.

Both tables are append-only: rows are inserted and read, never updated
(the backend rejects UPDATE). ``workflow_id`` is copied from the owning
agent at insert time.

Tags:
    flowledger, repository, logs, results, append-only

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from typing import Any

from flowledger.core.errors import RowNotFound
from flowledger.core.repositories._helpers import _build_where, to_json
from flowledger.core.repositories.base import BaseRepository
from flowledger.core.repositories.models import AgentResult, LogEntry
from flowledger.core.transaction import Transaction


class _AgentChildRepository(BaseRepository):
    TABLE = ""

    def _append(self, tx: Transaction, agent_id: str, columns: dict[str, Any]) -> str:
        """Insert a row owned by active *agent_id*, taking ``workflow_id`` from the agent."""
        agent = self.query_one(
            tx,
            "SELECT workflow_id FROM agents WHERE id = ? AND deleted_at IS NULL",
            (agent_id,),
        )
        if agent is None:
            raise RowNotFound("agent", agent_id)
        row_id = str(uuid.uuid4())
        self.insert(
            tx,
            self.TABLE,
            {"id": row_id, "agent_id": agent_id, "workflow_id": agent["workflow_id"], **columns},
        )
        return row_id

    def _list(
        self,
        tx: Transaction,
        conditions: dict[str, Any],
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        where, params = _build_where(conditions)
        total = self.count(tx, self.TABLE, where, params)
        rows = self.query(
            tx,
            f"SELECT * FROM {self.TABLE} WHERE {where} ORDER BY timestamp DESC, id LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        return rows, total


class LogRepository(_AgentChildRepository):
    """Append and read agent log entries."""

    TABLE = "log_entries"

    def append(
        self,
        agent_id: str,
        level: str,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        error_info: dict[str, Any] | None = None,
        tx: Transaction | None = None,
    ) -> LogEntry:
        def work(t: Transaction) -> LogEntry:
            row_id = self._append(
                t,
                agent_id,
                {
                    "level": level,
                    "message": message,
                    "context": to_json(context or {}),
                    "error_info": to_json(error_info),
                },
            )
            row = self.query_one(t, f"SELECT * FROM {self.TABLE} WHERE id = ?", (row_id,))
            return LogEntry.model_validate(row)

        return self._within(tx, work)

    def list_for_agent(
        self,
        agent_id: str,
        *,
        level: str | None = None,
        limit: int = 100,
        offset: int = 0,
        tx: Transaction | None = None,
    ) -> tuple[list[LogEntry], int]:
        """Newest first.  Returns ``(rows, total)``."""

        def work(t: Transaction) -> tuple[list[LogEntry], int]:
            rows, total = self._list(t, {"agent_id": agent_id, "level": level}, limit, offset)
            return [LogEntry.model_validate(row) for row in rows], total

        return self._within(tx, work)

    def list_for_workflow(
        self,
        workflow_id: str,
        *,
        level: str | None = None,
        limit: int = 100,
        offset: int = 0,
        tx: Transaction | None = None,
    ) -> tuple[list[LogEntry], int]:
        def work(t: Transaction) -> tuple[list[LogEntry], int]:
            rows, total = self._list(t, {"workflow_id": workflow_id, "level": level}, limit, offset)
            return [LogEntry.model_validate(row) for row in rows], total

        return self._within(tx, work)


class ResultRepository(_AgentChildRepository):
    """Append and read agent results."""

    TABLE = "agent_results"

    def append(
        self,
        agent_id: str,
        type: str,
        data: dict[str, Any] | list[Any],
        *,
        metadata: dict[str, Any] | None = None,
        quality_metrics: dict[str, Any] | None = None,
        execution_time: int | None = None,
        memory_usage: int | None = None,
        cpu_usage: float | None = None,
        tx: Transaction | None = None,
    ) -> AgentResult:
        if not isinstance(data, (dict, list)):
            raise TypeError("result data must be a JSON object or array")
        columns = {
            "type": type,
            "data": to_json(data),
            "metadata": to_json(metadata or {}),
            "execution_time": execution_time,
            "memory_usage": memory_usage,
            "cpu_usage": cpu_usage,
        }
        if quality_metrics is not None:
            columns["quality_metrics"] = to_json(quality_metrics)

        def work(t: Transaction) -> AgentResult:
            row_id = self._append(t, agent_id, columns)
            row = self.query_one(t, f"SELECT * FROM {self.TABLE} WHERE id = ?", (row_id,))
            return AgentResult.model_validate(row)

        return self._within(tx, work)

    def list_for_agent(
        self,
        agent_id: str,
        *,
        type: str | None = None,
        limit: int = 100,
        offset: int = 0,
        tx: Transaction | None = None,
    ) -> tuple[list[AgentResult], int]:
        """Newest first.  Returns ``(rows, total)``."""

        def work(t: Transaction) -> tuple[list[AgentResult], int]:
            rows, total = self._list(t, {"agent_id": agent_id, "type": type}, limit, offset)
            return [AgentResult.model_validate(row) for row in rows], total

        return self._within(tx, work)


__all__ = ["LogRepository", "ResultRepository"]
