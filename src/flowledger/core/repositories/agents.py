"""Agent repository -- the ``agents`` table.

Tags:
    flowledger, repository, agent

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from typing import Any

from flowledger.core.logging import get_logger
from flowledger.core.orm.tables import TERMINAL_AGENT_STATUSES
from flowledger.core.repositories._helpers import RowView, _build_where, to_json, view_clause
from flowledger.core.repositories.lifecycle import LifecycleRepository
from flowledger.core.repositories.models import Agent
from flowledger.core.transaction import Transaction

logger = get_logger(__name__)


class AgentRepository(LifecycleRepository):
    """CRUD, status transitions and soft deletion for agents.

    The backend rejects agents whose workflow does not exist (foreign key)
    or is soft-deleted (insert trigger); both surface as
    ``ConstraintViolation`` with kind ``foreign_key``.
    """

    TABLE = "agents"
    ENTITY = "agent"
    RECORD = Agent
    UPDATABLE = frozenset(
        {
            "name",
            "description",
            "progress",
            "estimated_time_remaining",
            "current_phase",
            "capabilities",
            "tools",
            "metadata",
            "execution_context",
            "performance",
        }
    )
    JSON_COLUMNS = frozenset({"capabilities", "tools", "metadata", "execution_context", "performance"})
    TERMINAL_STATUSES = TERMINAL_AGENT_STATUSES

    def create(
        self,
        workflow_id: str,
        name: str,
        type: str,
        *,
        description: str | None = None,
        capabilities: list[str] | None = None,
        tools: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        execution_context: dict[str, Any] | None = None,
        current_phase: str | None = None,
        estimated_time_remaining: int | None = None,
        agent_id: str | None = None,
        tx: Transaction | None = None,
    ) -> Agent:
        """Insert an agent under *workflow_id*; omitted columns take their defaults."""
        agent_id = agent_id or str(uuid.uuid4())
        data = {
            "id": agent_id,
            "workflow_id": workflow_id,
            "name": name,
            "type": type,
            "description": description,
            "capabilities": to_json(capabilities),
            "tools": to_json(tools),
            "metadata": to_json(metadata),
            "execution_context": to_json(execution_context),
            "current_phase": current_phase,
            "estimated_time_remaining": estimated_time_remaining,
        }

        def work(t: Transaction) -> Agent:
            self.insert(t, self.TABLE, data)
            return self._load(t, agent_id)

        agent = self._within(tx, work)
        logger.info("agent_created", agent_id=agent.id, workflow_id=workflow_id, type=type)
        return agent

    def list(
        self,
        *,
        workflow_id: str | None = None,
        status: str | None = None,
        type: str | None = None,
        view: RowView | str = RowView.ACTIVE,
        limit: int = 50,
        offset: int = 0,
        tx: Transaction | None = None,
    ) -> tuple[list[Agent], int]:
        """List agents with optional filters.  Returns ``(rows, total)``."""
        where, params = _build_where(
            {"workflow_id": workflow_id, "status": status, "type": type},
            extra_clauses=[view_clause(view)],
        )

        def work(t: Transaction) -> tuple[list[Agent], int]:
            total = self.count(t, self.TABLE, where, params)
            rows = self.query(
                t,
                f"SELECT * FROM {self.TABLE} WHERE {where} "
                f"ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                (*params, limit, offset),
            )
            return [Agent.model_validate(row) for row in rows], total

        return self._within(tx, work)


__all__ = ["AgentRepository"]
