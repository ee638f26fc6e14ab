"""Workflow, agent, log, result and status-history table definitions.

Enum domains are native enum types on PostgreSQL and named CHECK
constraints (``ck_<table>_<column>_enum``) on SQLite. Indexes follow
``idx_<table>_<column>``; those on workflows and agents only cover active
(not soft-deleted) rows.

Tags:
    flowledger, orm, sqlalchemy, tables, schema

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime
import json

from sqlalchemy import CheckConstraint, Enum, Float, ForeignKey, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from flowledger.core.orm.base import (
    JSONDocument,
    LedgerBase,
    Timestamp,
    UUIDText,
    enum_check,
    new_uuid,
    utc_now,
)

# --- enum domains ---------------------------------------------------------

WORKFLOW_STATUSES = ("pending", "running", "paused", "completed", "failed", "cancelled")
AGENT_STATUSES = ("idle", "running", "waiting", "completed", "failed", "timeout")
AGENT_TYPES = ("analysis", "processing", "monitoring", "optimization", "communication", "validation")
PRIORITIES = ("low", "medium", "high", "critical")
LOG_LEVELS = ("debug", "info", "warn", "error", "fatal")
RESULT_TYPES = ("data", "metric", "insight", "recommendation", "alert")

TERMINAL_WORKFLOW_STATUSES = frozenset({"completed", "failed", "cancelled"})
TERMINAL_AGENT_STATUSES = frozenset({"completed", "failed", "timeout"})


def _enum_type(name: str, values: tuple[str, ...]) -> Enum:
    return Enum(
        *values,
        name=name,
        native_enum=True,
        create_constraint=False,
        metadata=LedgerBase.metadata,
    )


WorkflowStatusType = _enum_type("workflow_status", WORKFLOW_STATUSES)
AgentStatusType = _enum_type("agent_status", AGENT_STATUSES)
AgentTypeType = _enum_type("agent_type", AGENT_TYPES)
PriorityType = _enum_type("priority", PRIORITIES)
LogLevelType = _enum_type("log_level", LOG_LEVELS)
ResultTypeType = _enum_type("result_type", RESULT_TYPES)

# --- default JSON documents ------------------------------------------------

DEFAULT_WORKFLOW_METRICS = {
    "executionTime": 0,
    "successRate": 0,
    "errorRate": 0,
    "throughput": 0,
    "costMetrics": {"totalCost": 0, "costPerExecution": 0},
    "resourceUsage": {"cpuUsage": 0, "memoryUsage": 0, "storageUsage": 0},
}

DEFAULT_EXECUTION_CONTEXT = {
    "environment": "production",
    "version": "1.0.0",
    "configuration": {},
    "dependencies": [],
}

DEFAULT_AGENT_PERFORMANCE = {
    "executionTime": 0,
    "responseTime": 0,
    "successRate": 0,
    "errorCount": 0,
    "resourceUsage": {"cpu": 0, "memory": 0, "apiCalls": 0, "tokens": 0},
    "qualityScore": 0,
}

DEFAULT_QUALITY_METRICS = {
    "accuracy": 0,
    "completeness": 0,
    "relevance": 0,
    "confidence": 0,
}

_ACTIVE = text("deleted_at IS NULL")


def _json_default(document: dict | list) -> str:
    return json.dumps(document)


def _active_index(table: str, column: str) -> Index:
    return Index(
        f"idx_{table}_{column}",
        column,
        sqlite_where=_ACTIVE,
        postgresql_where=_ACTIVE,
    )


def _timeline_index(table: str, column: str) -> Index:
    return Index(f"idx_{table}_{column}", column, "timestamp")


# --- tables -----------------------------------------------------------------


class WorkflowTable(LedgerBase):
    __tablename__ = "workflows"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_workflows_progress_range"),
        CheckConstraint(
            "completed_tasks >= 0 AND total_tasks >= 0 AND completed_tasks <= total_tasks",
            name="ck_workflows_task_counts",
        ),
        enum_check("workflows", "status", WORKFLOW_STATUSES),
        enum_check("workflows", "priority", PRIORITIES),
        _active_index("workflows", "status"),
        _active_index("workflows", "creator"),
        _active_index("workflows", "created_at"),
        _active_index("workflows", "priority"),
        Index(
            "idx_workflows_tags",
            "tags",
            postgresql_using="gin",
            postgresql_where=_ACTIVE,
        ).ddl_if(dialect="postgresql"),
    )

    id: Mapped[str] = mapped_column(UUIDText, primary_key=True, server_default=new_uuid())
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(WorkflowStatusType, nullable=False, server_default="pending")
    priority: Mapped[str] = mapped_column(PriorityType, nullable=False, server_default="medium")
    progress: Mapped[int] = mapped_column(nullable=False, server_default="0")
    estimated_time_remaining: Mapped[int | None] = mapped_column()
    completed_tasks: Mapped[int] = mapped_column(nullable=False, server_default="0")
    total_tasks: Mapped[int] = mapped_column(nullable=False, server_default="1")
    current_phase: Mapped[str | None] = mapped_column(Text)
    creator: Mapped[str] = mapped_column(Text, nullable=False, server_default="system")
    tags: Mapped[list] = mapped_column(JSONDocument, nullable=False, server_default="[]")
    configuration: Mapped[dict] = mapped_column(JSONDocument, nullable=False, server_default="{}")
    metadata_: Mapped[dict] = mapped_column("metadata", JSONDocument, nullable=False, server_default="{}")
    metrics: Mapped[dict] = mapped_column(
        JSONDocument, nullable=False, server_default=_json_default(DEFAULT_WORKFLOW_METRICS)
    )
    status_change_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())
    updated_at: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())
    completed_at: Mapped[datetime.datetime | None] = mapped_column(Timestamp)

    deleted_at: Mapped[datetime.datetime | None] = mapped_column(Timestamp)
    deleted_by: Mapped[str | None] = mapped_column(Text)
    delete_reason: Mapped[str | None] = mapped_column(Text)


class AgentTable(LedgerBase):
    __tablename__ = "agents"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_agents_progress_range"),
        enum_check("agents", "type", AGENT_TYPES),
        enum_check("agents", "status", AGENT_STATUSES),
        _active_index("agents", "workflow_id"),
        _active_index("agents", "status"),
        _active_index("agents", "type"),
        _active_index("agents", "created_at"),
    )

    id: Mapped[str] = mapped_column(UUIDText, primary_key=True, server_default=new_uuid())
    workflow_id: Mapped[str] = mapped_column(
        UUIDText, ForeignKey("workflows.id", ondelete="RESTRICT"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    type: Mapped[str] = mapped_column(AgentTypeType, nullable=False)
    status: Mapped[str] = mapped_column(AgentStatusType, nullable=False, server_default="idle")
    progress: Mapped[int] = mapped_column(nullable=False, server_default="0")
    estimated_time_remaining: Mapped[int | None] = mapped_column()
    current_phase: Mapped[str | None] = mapped_column(Text)
    capabilities: Mapped[list] = mapped_column(JSONDocument, nullable=False, server_default="[]")
    tools: Mapped[list] = mapped_column(JSONDocument, nullable=False, server_default="[]")
    status_change_reason: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONDocument, nullable=False, server_default="{}")
    execution_context: Mapped[dict] = mapped_column(
        JSONDocument, nullable=False, server_default=_json_default(DEFAULT_EXECUTION_CONTEXT)
    )
    performance: Mapped[dict] = mapped_column(
        JSONDocument, nullable=False, server_default=_json_default(DEFAULT_AGENT_PERFORMANCE)
    )

    created_at: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())
    updated_at: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())
    completed_at: Mapped[datetime.datetime | None] = mapped_column(Timestamp)

    deleted_at: Mapped[datetime.datetime | None] = mapped_column(Timestamp)
    deleted_by: Mapped[str | None] = mapped_column(Text)
    delete_reason: Mapped[str | None] = mapped_column(Text)


class WorkflowStatusHistoryTable(LedgerBase):
    """Append-only; rows are written by the workflows update trigger."""

    __tablename__ = "workflow_status_history"
    __table_args__ = (
        enum_check("workflow_status_history", "status", WORKFLOW_STATUSES),
        _timeline_index("workflow_status_history", "workflow_id"),
    )

    id: Mapped[str] = mapped_column(UUIDText, primary_key=True, server_default=new_uuid())
    workflow_id: Mapped[str] = mapped_column(
        UUIDText, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(WorkflowStatusType, nullable=False)
    previous_status: Mapped[str | None] = mapped_column(WorkflowStatusType)
    reason: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONDocument, nullable=False, server_default="{}")
    timestamp: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())


class AgentStatusHistoryTable(LedgerBase):
    """Append-only; rows are written by the agents update trigger."""

    __tablename__ = "agent_status_history"
    __table_args__ = (
        enum_check("agent_status_history", "status", AGENT_STATUSES),
        _timeline_index("agent_status_history", "agent_id"),
    )

    id: Mapped[str] = mapped_column(UUIDText, primary_key=True, server_default=new_uuid())
    agent_id: Mapped[str] = mapped_column(
        UUIDText, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(AgentStatusType, nullable=False)
    previous_status: Mapped[str | None] = mapped_column(AgentStatusType)
    reason: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONDocument, nullable=False, server_default="{}")
    timestamp: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())


class LogEntryTable(LedgerBase):
    __tablename__ = "log_entries"
    __table_args__ = (
        enum_check("log_entries", "level", LOG_LEVELS),
        _timeline_index("log_entries", "agent_id"),
        _timeline_index("log_entries", "workflow_id"),
        _timeline_index("log_entries", "level"),
    )

    id: Mapped[str] = mapped_column(UUIDText, primary_key=True, server_default=new_uuid())
    agent_id: Mapped[str] = mapped_column(
        UUIDText, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    workflow_id: Mapped[str | None] = mapped_column(
        UUIDText, ForeignKey("workflows.id", ondelete="CASCADE")
    )
    level: Mapped[str] = mapped_column(LogLevelType, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[dict] = mapped_column(JSONDocument, nullable=False, server_default="{}")
    error_info: Mapped[dict | None] = mapped_column(JSONDocument)
    timestamp: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())


class AgentResultTable(LedgerBase):
    __tablename__ = "agent_results"
    __table_args__ = (
        enum_check("agent_results", "type", RESULT_TYPES),
        _timeline_index("agent_results", "agent_id"),
        _timeline_index("agent_results", "workflow_id"),
        _timeline_index("agent_results", "type"),
    )

    id: Mapped[str] = mapped_column(UUIDText, primary_key=True, server_default=new_uuid())
    agent_id: Mapped[str] = mapped_column(
        UUIDText, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    workflow_id: Mapped[str | None] = mapped_column(
        UUIDText, ForeignKey("workflows.id", ondelete="CASCADE")
    )
    type: Mapped[str] = mapped_column(ResultTypeType, nullable=False)
    data: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONDocument, nullable=False, server_default="{}")
    quality_metrics: Mapped[dict] = mapped_column(
        JSONDocument, nullable=False, server_default=_json_default(DEFAULT_QUALITY_METRICS)
    )
    execution_time: Mapped[int | None] = mapped_column()
    memory_usage: Mapped[int | None] = mapped_column()
    cpu_usage: Mapped[float | None] = mapped_column(Float)
    timestamp: Mapped[datetime.datetime] = mapped_column(Timestamp, nullable=False, server_default=utc_now())


ALL_TABLES = (
    WorkflowTable,
    AgentTable,
    WorkflowStatusHistoryTable,
    AgentStatusHistoryTable,
    LogEntryTable,
    AgentResultTable,
)

APPEND_ONLY_TABLES = (
    "workflow_status_history",
    "agent_status_history",
    "log_entries",
    "agent_results",
)


__all__ = [
    "WORKFLOW_STATUSES",
    "AGENT_STATUSES",
    "AGENT_TYPES",
    "PRIORITIES",
    "LOG_LEVELS",
    "RESULT_TYPES",
    "TERMINAL_WORKFLOW_STATUSES",
    "TERMINAL_AGENT_STATUSES",
    "DEFAULT_WORKFLOW_METRICS",
    "DEFAULT_EXECUTION_CONTEXT",
    "DEFAULT_AGENT_PERFORMANCE",
    "DEFAULT_QUALITY_METRICS",
    "WorkflowTable",
    "AgentTable",
    "WorkflowStatusHistoryTable",
    "AgentStatusHistoryTable",
    "LogEntryTable",
    "AgentResultTable",
    "ALL_TABLES",
    "APPEND_ONLY_TABLES",
]
