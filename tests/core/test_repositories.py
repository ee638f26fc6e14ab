"""Tests for ``flowledger.core.repositories``: workflows, agents, logs, results."""

from __future__ import annotations

import pytest

from flowledger import Database
from flowledger.core.errors import RowNotFound
from flowledger.core.repositories import RowView
from flowledger.core.repositories.workflows import CASCADE_REASON_PREFIX


# ── Workflows ────────────────────────────────────────────────────────────


class TestWorkflowCreate:
    def test_defaults(self, db):
        wf = db.workflows.create("plain")
        assert wf.status == "pending"
        assert wf.priority == "medium"
        assert wf.progress == 0
        assert wf.total_tasks == 1
        assert wf.tags == []
        assert wf.metrics["successRate"] == 0
        assert wf.created_at.tzinfo is not None
        assert not wf.is_deleted

    def test_documents_round_trip(self, db):
        wf = db.workflows.create(
            "docs",
            priority="high",
            creator="alice",
            tags=["etl", "nightly"],
            configuration={"retries": 3, "nested": {"a": [1, 2]}},
            metadata={"owner": "data-team"},
        )
        fetched = db.workflows.get(wf.id)
        assert fetched.tags == ["etl", "nightly"]
        assert fetched.configuration == {"retries": 3, "nested": {"a": [1, 2]}}
        assert fetched.metadata == {"owner": "data-team"}
        assert fetched.creator == "alice"

    def test_explicit_id(self, db):
        wf = db.workflows.create("fixed", workflow_id="00000000-0000-4000-8000-000000000001")
        assert wf.id == "00000000-0000-4000-8000-000000000001"


class TestWorkflowStatus:
    def test_change_status_records_reason(self, db, workflow):
        updated = db.workflows.change_status(workflow.id, "running", reason="scheduler")
        assert updated.status == "running"
        assert updated.status_change_reason == "scheduler"
        assert updated.completed_at is None

    @pytest.mark.parametrize("terminal", ["completed", "failed", "cancelled"])
    def test_terminal_status_stamps_completed_at(self, db, workflow, terminal):
        updated = db.workflows.change_status(workflow.id, terminal)
        assert updated.completed_at is not None

    def test_unknown_field_rejected_before_backend(self, db, workflow):
        with pytest.raises(ValueError, match="created_at"):
            db.workflows.update(workflow.id, created_at="2020-01-01")

    def test_update_without_fields_returns_row(self, db, workflow):
        assert db.workflows.update(workflow.id).id == workflow.id

    def test_missing_row(self, db):
        with pytest.raises(RowNotFound) as exc_info:
            db.workflows.change_status("nope", "running")
        assert exc_info.value.entity == "workflow"


class TestWorkflowSoftDelete:
    def test_hidden_from_default_view(self, db, workflow):
        deleted = db.workflows.soft_delete(workflow.id, deleted_by="alice", reason="obsolete")
        assert deleted.is_deleted
        assert deleted.deleted_by == "alice"
        assert deleted.delete_reason == "obsolete"
        with pytest.raises(RowNotFound):
            db.workflows.get(workflow.id)
        assert db.workflows.get(workflow.id, view=RowView.DELETED).id == workflow.id
        assert db.workflows.exists(workflow.id, view="all")
        assert not db.workflows.exists(workflow.id)

    def test_row_is_kept(self, db, workflow):
        db.workflows.soft_delete(workflow.id)
        assert db.query("SELECT count(*) FROM workflows").scalar() == 1
        assert db.query("SELECT count(*) FROM active_workflows").scalar() == 0

    def test_delete_twice(self, db, workflow):
        db.workflows.soft_delete(workflow.id)
        with pytest.raises(RowNotFound):
            db.workflows.soft_delete(workflow.id)

    def test_cascades_to_agents(self, db, agent):
        db.workflows.soft_delete(agent.workflow_id, reason="cleanup")
        cascaded = db.agents.get(agent.id, view=RowView.DELETED)
        assert cascaded.delete_reason == CASCADE_REASON_PREFIX + "cleanup"
        assert db.agents.list(workflow_id=agent.workflow_id) == ([], 0)

    def test_transitions_blocked_on_deleted(self, db, workflow):
        db.workflows.soft_delete(workflow.id)
        with pytest.raises(RowNotFound):
            db.workflows.change_status(workflow.id, "running")
        assert db.history.for_workflow(workflow.id) == []

    def test_transitions_allowed_when_configured(self, make_settings):
        with Database(make_settings(allow_transitions_on_deleted=True)) as permissive:
            permissive.create_schema()
            wf = permissive.workflows.create("archived")
            permissive.workflows.soft_delete(wf.id)
            updated = permissive.workflows.change_status(wf.id, "cancelled")
            assert updated.status == "cancelled"
            assert updated.is_deleted


class TestWorkflowRestore:
    def test_restore_brings_back_cascaded_agents(self, db, agent):
        db.workflows.soft_delete(agent.workflow_id)
        restored = db.workflows.restore(agent.workflow_id)
        assert not restored.is_deleted
        assert not db.agents.get(agent.id).is_deleted

    def test_restore_keeps_independently_deleted_agents(self, db, workflow):
        kept = db.agents.create(workflow.id, "kept", "analysis")
        gone = db.agents.create(workflow.id, "gone", "analysis")
        db.agents.soft_delete(gone.id, reason="retired")
        db.workflows.soft_delete(workflow.id)
        db.workflows.restore(workflow.id)
        assert db.agents.exists(kept.id)
        assert db.agents.get(gone.id, view=RowView.DELETED).delete_reason == "retired"

    def test_restore_active_row(self, db, workflow):
        with pytest.raises(RowNotFound, match="not deleted"):
            db.workflows.restore(workflow.id)


class TestWorkflowList:
    def test_filters_and_total(self, db):
        for i in range(5):
            db.workflows.create(f"wf-{i}", priority="high" if i % 2 else "low", creator="bob")
        rows, total = db.workflows.list(priority="high")
        assert total == 2
        assert {w.priority for w in rows} == {"high"}

    def test_pagination(self, db):
        for i in range(5):
            db.workflows.create(f"wf-{i}")
        page, total = db.workflows.list(limit=2, offset=2)
        assert total == 5
        assert len(page) == 2

    def test_views(self, db, workflow):
        other = db.workflows.create("other")
        db.workflows.soft_delete(other.id)
        assert db.workflows.list()[1] == 1
        assert db.workflows.list(view=RowView.DELETED)[0][0].id == other.id
        assert db.workflows.list(view=RowView.ALL)[1] == 2


# ── Agents ───────────────────────────────────────────────────────────────


class TestAgents:
    def test_defaults(self, agent):
        assert agent.status == "idle"
        assert agent.capabilities == ["parse"]
        assert agent.performance["successRate"] == 0
        assert agent.execution_context["environment"] == "production"

    def test_change_status_and_progress(self, db, agent):
        updated = db.agents.change_status(agent.id, "running", reason="picked up", progress=30)
        assert updated.status == "running"
        assert updated.progress == 30

    def test_timeout_is_terminal(self, db, agent):
        assert db.agents.change_status(agent.id, "timeout").completed_at is not None

    def test_update_documents(self, db, agent):
        updated = db.agents.update(agent.id, tools=["sql"], metadata={"shard": 2})
        assert updated.tools == ["sql"]
        assert updated.metadata == {"shard": 2}

    def test_list_by_workflow_and_type(self, db, workflow):
        db.agents.create(workflow.id, "a", "analysis")
        db.agents.create(workflow.id, "b", "monitoring")
        rows, total = db.agents.list(workflow_id=workflow.id, type="monitoring")
        assert total == 1
        assert rows[0].name == "b"

    def test_soft_delete_and_restore(self, db, agent):
        db.agents.soft_delete(agent.id, deleted_by="ops")
        assert not db.agents.exists(agent.id)
        assert db.agents.restore(agent.id).deleted_by is None


# ── Logs and results ─────────────────────────────────────────────────────


class TestLogs:
    def test_append_inherits_workflow(self, db, agent):
        entry = db.logs.append(agent.id, "warn", "slow query", context={"ms": 900})
        assert entry.workflow_id == agent.workflow_id
        assert entry.context == {"ms": 900}
        assert entry.error_info is None

    def test_append_for_unknown_agent(self, db):
        with pytest.raises(RowNotFound):
            db.logs.append("missing", "info", "hello")

    def test_append_for_deleted_agent(self, db, agent):
        db.agents.soft_delete(agent.id, deleted_by="ops")
        with pytest.raises(RowNotFound):
            db.logs.append(agent.id, "info", "too late")
        assert db.logs.list_for_agent(agent.id)[1] == 0

    def test_list_newest_first_with_level_filter(self, db, agent):
        db.logs.append(agent.id, "info", "first")
        db.logs.append(agent.id, "error", "boom", error_info={"type": "ValueError"})
        db.logs.append(agent.id, "info", "third")

        rows, total = db.logs.list_for_agent(agent.id)
        assert total == 3
        assert rows[0].timestamp >= rows[-1].timestamp

        errors, count = db.logs.list_for_agent(agent.id, level="error")
        assert count == 1
        assert errors[0].error_info == {"type": "ValueError"}

    def test_list_for_workflow(self, db, agent):
        db.logs.append(agent.id, "info", "hello")
        assert db.logs.list_for_workflow(agent.workflow_id)[1] == 1


class TestResults:
    def test_append_object_and_array(self, db, agent):
        obj = db.results.append(agent.id, "insight", {"score": 0.9}, execution_time=120, cpu_usage=0.5)
        arr = db.results.append(agent.id, "data", [1, 2, 3])
        assert obj.data == {"score": 0.9}
        assert obj.execution_time == 120
        assert arr.data == [1, 2, 3]
        assert obj.quality_metrics["accuracy"] == 0

    def test_append_for_deleted_agent(self, db, agent):
        db.workflows.soft_delete(agent.workflow_id)
        with pytest.raises(RowNotFound):
            db.results.append(agent.id, "data", {"rows": 1})

    def test_scalar_data_rejected(self, db, agent):
        with pytest.raises(TypeError):
            db.results.append(agent.id, "metric", 42)

    def test_list_by_type(self, db, agent):
        db.results.append(agent.id, "metric", {"v": 1})
        db.results.append(agent.id, "alert", {"v": 2})
        rows, total = db.results.list_for_agent(agent.id, type="alert")
        assert total == 1
        assert rows[0].data == {"v": 2}


# ── Shared transactions ──────────────────────────────────────────────────


class TestSharedTransaction:
    def test_repositories_join_caller_transaction(self, db):
        def work(tx):
            wf = db.workflows.create("joined", tx=tx)
            agent = db.agents.create(wf.id, "reader", "processing", tx=tx)
            db.logs.append(agent.id, "info", "created", tx=tx)
            raise RuntimeError("undo")

        with pytest.raises(RuntimeError):
            db.run_transaction(work)
        assert db.workflows.list()[1] == 0
        assert db.query("SELECT count(*) FROM log_entries").scalar() == 0
