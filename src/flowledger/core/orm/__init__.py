"""SQLAlchemy 2.0 declarative tables for flowledger.

Modules
-------
base        LedgerBase (declarative base), portable types, per-dialect defaults
tables      Workflow, agent, log, result and status-history tables
triggers    Trigger and view DDL per backend

Tags:
    flowledger, orm, sqlalchemy, declarative

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from flowledger.core.orm.base import LedgerBase
from flowledger.core.orm.tables import *  # noqa: F401,F403

__all__ = [
    "LedgerBase",
    "WorkflowTable",
    "AgentTable",
    "WorkflowStatusHistoryTable",
    "AgentStatusHistoryTable",
    "LogEntryTable",
    "AgentResultTable",
]
