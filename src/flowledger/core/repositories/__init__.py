"""Domain repositories over the transaction coordinator.

Each repository owns the SQL for one area of the ledger and returns typed
records. Every method accepts an optional ``tx`` to join a caller's
transaction.

Tags:
    flowledger, repository

Doc-Types:
    package-overview
"""

from __future__ import annotations

from ._helpers import RowView
from .agents import AgentRepository
from .history import StatusHistoryRepository
from .models import Agent, AgentResult, LogEntry, StatusChange, Workflow
from .records import LogRepository, ResultRepository
from .workflows import WorkflowRepository

__all__ = [
    "Agent",
    "AgentRepository",
    "AgentResult",
    "LogEntry",
    "LogRepository",
    "ResultRepository",
    "RowView",
    "StatusChange",
    "StatusHistoryRepository",
    "Workflow",
    "WorkflowRepository",
]
