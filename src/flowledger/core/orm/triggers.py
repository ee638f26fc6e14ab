"""
Backend-native triggers and views installed alongside the tables.

Manifesto:
    The audit trail must not depend on callers remembering to write it.
    Every UPDATE of a workflow or agent row goes through a trigger that:

    1. advances ``updated_at`` strictly (``max(now, previous + 1 tick)``)
    2. appends exactly one status-history row when ``status`` changed,
       stamped with the new ``updated_at``

    Both happen inside the caller's statement, so a rollback removes them
    together with the change that caused them.

    Further triggers reject UPDATEs of append-only rows, and reject
    inserting, moving or restoring an agent under a soft-deleted workflow.
    Their messages start with the markers in :mod:`flowledger.core.sqlstate`
    so both backends classify the rejection identically.

Architecture:
    ::

        SQLite                                 PostgreSQL
        ──────                                 ──────────
        AFTER UPDATE trigger:                  BEFORE UPDATE: bump updated_at
          UPDATE ... SET updated_at            AFTER UPDATE: insert history
          INSERT history (if status changed)   (plpgsql functions)
        RAISE(ABORT, '<marker>: ...')          RAISE EXCEPTION ... USING ERRCODE

    SQLite runs with recursive triggers disabled, so the trigger's own
    UPDATE of ``updated_at`` does not fire it again.

Tags:
    flowledger, triggers, audit, status-history, ddl
"""

from __future__ import annotations

from flowledger.core.dialect import SQLITE_TIMESTAMP_FORMAT
from flowledger.core.orm.tables import APPEND_ONLY_TABLES
from flowledger.core.sqlstate import APPEND_ONLY_MARKER, INACTIVE_PARENT_MARKER

# (table, history table, foreign key column in the history table)
AUDITED_TABLES = (
    ("workflows", "workflow_status_history", "workflow_id"),
    ("agents", "agent_status_history", "agent_id"),
)

VIEWS = {
    "active_workflows": "SELECT * FROM workflows WHERE deleted_at IS NULL",
    "active_agents": "SELECT * FROM agents WHERE deleted_at IS NULL",
}

_SQLITE_NOW = f"strftime('{SQLITE_TIMESTAMP_FORMAT}', 'now')"


# =============================================================================
# SQLITE
# =============================================================================


def _sqlite_audit_trigger(table: str, history: str, fk: str) -> str:
    return f"""
CREATE TRIGGER IF NOT EXISTS trg_{table}_audit
AFTER UPDATE ON {table}
FOR EACH ROW
BEGIN
    UPDATE {table}
    SET updated_at = CASE
        WHEN {_SQLITE_NOW} > OLD.updated_at THEN {_SQLITE_NOW}
        ELSE strftime('{SQLITE_TIMESTAMP_FORMAT}', OLD.updated_at, '+0.001 seconds')
    END
    WHERE id = NEW.id;

    INSERT INTO {history} ({fk}, status, previous_status, reason, metadata, timestamp)
    SELECT NEW.id, NEW.status, OLD.status, NEW.status_change_reason,
           json_object('progress', NEW.progress, 'current_phase', NEW.current_phase),
           t.updated_at
    FROM {table} AS t
    WHERE t.id = NEW.id AND OLD.status IS NOT NEW.status;
END
"""


def _sqlite_active_parent_triggers() -> list[str]:
    condition = (
        "EXISTS (SELECT 1 FROM workflows "
        "WHERE id = NEW.workflow_id AND deleted_at IS NOT NULL)"
    )
    body = f"SELECT RAISE(ABORT, '{INACTIVE_PARENT_MARKER}: workflow is soft-deleted');"
    return [
        f"""
CREATE TRIGGER IF NOT EXISTS trg_agents_active_workflow_insert
BEFORE INSERT ON agents
FOR EACH ROW WHEN {condition}
BEGIN
    {body}
END
""",
        f"""
CREATE TRIGGER IF NOT EXISTS trg_agents_active_workflow_update
BEFORE UPDATE OF workflow_id, deleted_at ON agents
FOR EACH ROW WHEN NEW.deleted_at IS NULL
    AND (NEW.workflow_id IS NOT OLD.workflow_id OR OLD.deleted_at IS NOT NULL)
    AND {condition}
BEGIN
    {body}
END
""",
    ]


def _sqlite_append_only_trigger(table: str) -> str:
    return f"""
CREATE TRIGGER IF NOT EXISTS trg_{table}_append_only
BEFORE UPDATE ON {table}
FOR EACH ROW
BEGIN
    SELECT RAISE(ABORT, '{APPEND_ONLY_MARKER}: {table} rows cannot be modified');
END
"""


def sqlite_statements() -> list[str]:
    statements = [_sqlite_audit_trigger(*audited) for audited in AUDITED_TABLES]
    statements.extend(_sqlite_active_parent_triggers())
    statements.extend(_sqlite_append_only_trigger(table) for table in APPEND_ONLY_TABLES)
    statements.extend(f"CREATE VIEW IF NOT EXISTS {name} AS {query}" for name, query in VIEWS.items())
    return statements


# =============================================================================
# POSTGRESQL
# =============================================================================

_PG_TOUCH_FUNCTION = """
CREATE OR REPLACE FUNCTION flowledger_touch_updated_at() RETURNS trigger AS $$
BEGIN
    NEW.updated_at := GREATEST(clock_timestamp(), OLD.updated_at + interval '1 microsecond');
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""


def _pg_history_function(table: str, history: str, fk: str) -> str:
    return f"""
CREATE OR REPLACE FUNCTION flowledger_record_{table}_status() RETURNS trigger AS $$
BEGIN
    IF NEW.status IS DISTINCT FROM OLD.status THEN
        INSERT INTO {history} ({fk}, status, previous_status, reason, metadata, timestamp)
        VALUES (
            NEW.id, NEW.status, OLD.status, NEW.status_change_reason,
            jsonb_build_object('progress', NEW.progress, 'current_phase', NEW.current_phase),
            NEW.updated_at
        );
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""


_PG_ACTIVE_PARENT_FUNCTION = f"""
CREATE OR REPLACE FUNCTION flowledger_check_active_workflow() RETURNS trigger AS $$
BEGIN
    -- updates only matter when they move or reactivate an active agent
    IF TG_OP = 'UPDATE' THEN
        IF NEW.deleted_at IS NOT NULL
           OR (NEW.workflow_id IS NOT DISTINCT FROM OLD.workflow_id AND OLD.deleted_at IS NULL) THEN
            RETURN NEW;
        END IF;
    END IF;
    IF EXISTS (
        SELECT 1 FROM workflows WHERE id = NEW.workflow_id AND deleted_at IS NOT NULL
    ) THEN
        RAISE EXCEPTION '{INACTIVE_PARENT_MARKER}: workflow is soft-deleted'
            USING ERRCODE = 'foreign_key_violation';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""

_PG_APPEND_ONLY_FUNCTION = f"""
CREATE OR REPLACE FUNCTION flowledger_reject_update() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION USING
        MESSAGE = '{APPEND_ONLY_MARKER}: ' || TG_TABLE_NAME || ' rows cannot be modified',
        ERRCODE = 'integrity_constraint_violation';
END;
$$ LANGUAGE plpgsql
"""

PG_FUNCTIONS = (
    "flowledger_touch_updated_at",
    "flowledger_record_workflows_status",
    "flowledger_record_agents_status",
    "flowledger_check_active_workflow",
    "flowledger_reject_update",
)


def _pg_trigger(name: str, timing: str, table: str, function: str) -> list[str]:
    return [
        f"DROP TRIGGER IF EXISTS {name} ON {table}",
        f"CREATE TRIGGER {name} {timing} ON {table} FOR EACH ROW EXECUTE FUNCTION {function}()",
    ]


def postgresql_statements() -> list[str]:
    statements = [_PG_TOUCH_FUNCTION, _PG_ACTIVE_PARENT_FUNCTION, _PG_APPEND_ONLY_FUNCTION]
    for table, history, fk in AUDITED_TABLES:
        statements.append(_pg_history_function(table, history, fk))
        statements += _pg_trigger(f"trg_{table}_touch", "BEFORE UPDATE", table, "flowledger_touch_updated_at")
        statements += _pg_trigger(
            f"trg_{table}_status_history", "AFTER UPDATE", table, f"flowledger_record_{table}_status"
        )
    statements += _pg_trigger(
        "trg_agents_active_workflow",
        "BEFORE INSERT OR UPDATE OF workflow_id, deleted_at",
        "agents",
        "flowledger_check_active_workflow",
    )
    for table in APPEND_ONLY_TABLES:
        statements += _pg_trigger(f"trg_{table}_append_only", "BEFORE UPDATE", table, "flowledger_reject_update")
    statements.extend(f"CREATE OR REPLACE VIEW {name} AS {query}" for name, query in VIEWS.items())
    return statements


# =============================================================================
# DISPATCH
# =============================================================================


def create_statements(backend: str) -> list[str]:
    """DDL creating every trigger and view for *backend*; safe to re-run."""
    if backend == "postgresql":
        return postgresql_statements()
    return sqlite_statements()


def drop_statements(backend: str) -> list[str]:
    """DDL removing the views (and PostgreSQL functions) before tables are dropped."""
    statements = [f"DROP VIEW IF EXISTS {name}" for name in VIEWS]
    if backend == "postgresql":
        statements.extend(f"DROP FUNCTION IF EXISTS {name}() CASCADE" for name in PG_FUNCTIONS)
    return statements


def extension_statements(backend: str) -> list[str]:
    """Prerequisites that must exist before the tables are created."""
    if backend == "postgresql":
        return ['CREATE EXTENSION IF NOT EXISTS "uuid-ossp"']
    return []


__all__ = [
    "AUDITED_TABLES",
    "VIEWS",
    "create_statements",
    "drop_statements",
    "extension_statements",
]
