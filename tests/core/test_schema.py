"""Tests for ``flowledger.core.schema``: tables, constraints, triggers, views."""

from __future__ import annotations

import pytest

from flowledger import Database
from flowledger.core.errors import ConstraintViolation, RowNotFound, SyntaxOrTypeError
from flowledger.core.orm.triggers import create_statements, drop_statements
from flowledger.core.schema import create_schema, drop_schema, schema_tables

LEDGER_TABLES = {
    "workflows",
    "agents",
    "workflow_status_history",
    "agent_status_history",
    "log_entries",
    "agent_results",
}


def _sqlite_objects(db, kind: str) -> set[str]:
    rows = db.query("SELECT name FROM sqlite_master WHERE type = ?", (kind,))
    return {row["name"] for row in rows}


class TestCreateSchema:
    def test_fresh_database_creates_every_table(self, make_settings):
        with Database(make_settings()) as fresh:
            created = create_schema(fresh.pool)
        assert set(created) == LEDGER_TABLES

    def test_idempotent(self, db):
        assert db.create_schema() == []
        assert LEDGER_TABLES <= _sqlite_objects(db, "table")

    def test_schema_tables_parents_first(self):
        tables = schema_tables()
        assert set(tables) == LEDGER_TABLES
        assert tables.index("workflows") < tables.index("agents")
        assert tables.index("agents") < tables.index("log_entries")

    def test_indexes(self, db):
        indexes = _sqlite_objects(db, "index")
        for name in (
            "idx_workflows_status",
            "idx_workflows_creator",
            "idx_agents_workflow_id",
            "idx_agents_status",
            "idx_workflow_status_history_workflow_id",
            "idx_log_entries_agent_id",
        ):
            assert name in indexes

    def test_triggers(self, db):
        triggers = _sqlite_objects(db, "trigger")
        assert {"trg_workflows_audit", "trg_agents_audit", "trg_log_entries_append_only"} <= triggers

    def test_views(self, db):
        assert {"active_workflows", "active_agents"} <= _sqlite_objects(db, "view")

    def test_drop_schema(self, db):
        drop_schema(db.pool)
        assert not (LEDGER_TABLES & _sqlite_objects(db, "table"))
        assert not _sqlite_objects(db, "view")


class TestDefaults:
    def test_workflow_defaults(self, db):
        db.query("INSERT INTO workflows (id, name) VALUES (?, ?)", ("w1", "defaults"))
        row = db.query("SELECT * FROM workflows WHERE id = ?", ("w1",)).first()
        assert row["status"] == "pending"
        assert row["priority"] == "medium"
        assert row["progress"] == 0
        assert row["creator"] == "system"
        assert row["created_at"].endswith("Z")
        assert row["deleted_at"] is None

    def test_generated_id(self, db):
        db.query("INSERT INTO workflows (name) VALUES (?)", ("no id",))
        generated = db.query("SELECT id FROM workflows").scalar()
        assert len(generated) == 36
        assert generated[14] == "4"


class TestConstraints:
    def test_unknown_workflow_status(self, db, workflow):
        with pytest.raises(ConstraintViolation) as exc_info:
            db.query("UPDATE workflows SET status = ? WHERE id = ?", ("exploded", workflow.id))
        assert exc_info.value.kind == "enum"

    def test_unknown_agent_type(self, db, workflow):
        with pytest.raises(ConstraintViolation) as exc_info:
            db.agents.create(workflow.id, "x", "wizard")
        assert exc_info.value.kind == "enum"

    @pytest.mark.parametrize("progress", [-1, 101])
    def test_progress_range(self, db, workflow, progress):
        with pytest.raises(ConstraintViolation) as exc_info:
            db.workflows.update(workflow.id, progress=progress)
        assert exc_info.value.kind == "check"

    def test_completed_tasks_bounded_by_total(self, db, workflow):
        with pytest.raises(ConstraintViolation):
            db.workflows.update(workflow.id, completed_tasks=5, total_tasks=2)

    def test_agent_requires_existing_workflow(self, db):
        with pytest.raises(ConstraintViolation) as exc_info:
            db.agents.create("missing-workflow", "x", "processing")
        assert exc_info.value.kind == "foreign_key"

    def test_agent_rejected_under_deleted_workflow(self, db, workflow):
        db.workflows.soft_delete(workflow.id)
        with pytest.raises(ConstraintViolation) as exc_info:
            db.agents.create(workflow.id, "late", "processing")
        assert exc_info.value.kind == "foreign_key"

    def test_agent_not_restored_under_deleted_workflow(self, db, agent):
        db.workflows.soft_delete(agent.workflow_id)
        with pytest.raises(ConstraintViolation) as exc_info:
            db.agents.restore(agent.id)
        assert exc_info.value.kind == "foreign_key"

        assert db.agents.exists(agent.id, view="deleted")
        with pytest.raises(RowNotFound):
            db.agents.change_status(agent.id, "running")
        assert db.history.for_agent(agent.id) == []

    def test_agent_not_moved_under_deleted_workflow(self, db, agent):
        other = db.workflows.create("retired")
        db.workflows.soft_delete(other.id)
        with pytest.raises(ConstraintViolation) as exc_info:
            db.query("UPDATE agents SET workflow_id = ? WHERE id = ?", (other.id, agent.id))
        assert exc_info.value.kind == "foreign_key"

    def test_deleted_agent_may_change_under_deleted_workflow(self, db, agent):
        db.workflows.soft_delete(agent.workflow_id)
        db.query("UPDATE agents SET deleted_by = 'auditor' WHERE id = ?", (agent.id,))
        assert db.agents.get(agent.id, view="deleted").deleted_by == "auditor"

    def test_workflow_with_agents_cannot_be_hard_deleted(self, db, agent):
        with pytest.raises(ConstraintViolation) as exc_info:
            db.query("DELETE FROM workflows WHERE id = ?", (agent.workflow_id,))
        assert exc_info.value.kind == "foreign_key"

    def test_agent_delete_cascades_to_children(self, db, agent):
        db.logs.append(agent.id, "info", "hello")
        db.results.append(agent.id, "insight", {"ok": True})
        db.agents.change_status(agent.id, "running")
        db.query("DELETE FROM agents WHERE id = ?", (agent.id,))
        for table in ("log_entries", "agent_results", "agent_status_history"):
            assert db.query(f"SELECT count(*) FROM {table}").scalar() == 0


class TestAppendOnly:
    @pytest.mark.parametrize(
        "table, assignment",
        [
            ("log_entries", "message = 'edited'"),
            ("agent_results", "type = 'metric'"),
            ("workflow_status_history", "reason = 'edited'"),
            ("agent_status_history", "reason = 'edited'"),
        ],
    )
    def test_update_rejected(self, db, agent, table, assignment):
        db.logs.append(agent.id, "info", "hello")
        db.results.append(agent.id, "insight", {"ok": True})
        db.workflows.change_status(agent.workflow_id, "running")
        db.agents.change_status(agent.id, "running")

        with pytest.raises(ConstraintViolation) as exc_info:
            db.query(f"UPDATE {table} SET {assignment}")
        assert exc_info.value.kind == "append_only"


class TestStatementSets:
    def test_postgresql_statements_use_plpgsql(self):
        statements = create_statements("postgresql")
        assert any("LANGUAGE plpgsql" in s for s in statements)
        assert any("CREATE OR REPLACE VIEW active_workflows" in s for s in statements)

    @pytest.mark.parametrize("backend", ["sqlite", "postgresql"])
    def test_parent_guard_watches_restores(self, backend):
        assert any("UPDATE OF workflow_id, deleted_at" in s for s in create_statements(backend))

    def test_sqlite_statements_are_idempotent(self):
        assert all("IF NOT EXISTS" in s for s in create_statements("sqlite"))

    def test_drop_statements_cover_views(self):
        dropped = " ".join(drop_statements("sqlite"))
        assert "active_workflows" in dropped
        assert "active_agents" in dropped

    def test_unknown_table_after_drop(self, db):
        db.drop_schema()
        with pytest.raises(SyntaxOrTypeError) as exc_info:
            db.query("SELECT * FROM workflows")
        assert exc_info.value.kind == "undefined_object"
