"""Typed records returned by the repositories.

Rows come back from the driver in backend-specific shapes: SQLite returns
JSON documents as text and timestamps as ISO-8601 strings, PostgreSQL
returns ``dict``/``list`` and aware ``datetime`` values. The models accept
both and expose one shape.

Tags:
    flowledger, repository, models, pydantic

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LedgerRecord(BaseModel):
    """Base for rows read from the ledger tables."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    json_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def _decode_documents(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        decoded = dict(data)
        for name in cls.json_fields:
            value = decoded.get(name)
            if isinstance(value, (str, bytes)):
                decoded[name] = json.loads(value)
        return decoded


class Workflow(LedgerRecord):
    json_fields = frozenset({"tags", "configuration", "metadata", "metrics"})

    id: str
    name: str
    description: str | None = None
    status: str
    priority: str
    progress: int = 0
    estimated_time_remaining: int | None = None
    completed_tasks: int = 0
    total_tasks: int = 1
    current_phase: str | None = None
    creator: str = "system"
    tags: list[str] = Field(default_factory=list)
    configuration: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    metrics: dict[str, Any] = Field(default_factory=dict)
    status_change_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    delete_reason: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Agent(LedgerRecord):
    json_fields = frozenset({"capabilities", "tools", "metadata", "execution_context", "performance"})

    id: str
    workflow_id: str
    name: str
    description: str | None = None
    type: str
    status: str
    progress: int = 0
    estimated_time_remaining: int | None = None
    current_phase: str | None = None
    capabilities: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    status_change_reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    execution_context: dict[str, Any] = Field(default_factory=dict)
    performance: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    delete_reason: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class LogEntry(LedgerRecord):
    json_fields = frozenset({"context", "error_info"})

    id: str
    agent_id: str
    workflow_id: str | None = None
    level: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    error_info: dict[str, Any] | None = None
    timestamp: datetime


class AgentResult(LedgerRecord):
    json_fields = frozenset({"data", "metadata", "quality_metrics"})

    id: str
    agent_id: str
    workflow_id: str | None = None
    type: str
    data: dict[str, Any] | list[Any]
    metadata: dict[str, Any] = Field(default_factory=dict)
    quality_metrics: dict[str, Any] = Field(default_factory=dict)
    execution_time: int | None = None
    memory_usage: int | None = None
    cpu_usage: float | None = None
    timestamp: datetime


class StatusChange(LedgerRecord):
    """One row of a status-history table (workflow or agent)."""

    json_fields = frozenset({"metadata"})

    id: str
    entity_id: str
    status: str
    previous_status: str | None = None
    reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


__all__ = [
    "Agent",
    "AgentResult",
    "LedgerRecord",
    "LogEntry",
    "StatusChange",
    "Workflow",
]
