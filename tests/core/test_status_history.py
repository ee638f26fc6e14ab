"""Tests for the status-history recorder: backend triggers on workflows and agents."""

from __future__ import annotations

import threading

import pytest

from flowledger.core.errors import ConstraintViolation


class TestWorkflowHistory:
    def test_creation_records_nothing(self, db, workflow):
        assert db.history.for_workflow(workflow.id) == []

    def test_one_row_per_status_change(self, db, workflow):
        db.workflows.change_status(workflow.id, "running", reason="scheduler")
        history = db.history.for_workflow(workflow.id)
        assert len(history) == 1
        change = history[0]
        assert change.entity_id == workflow.id
        assert change.previous_status == "pending"
        assert change.status == "running"
        assert change.reason == "scheduler"

    def test_unchanged_status_records_nothing(self, db, workflow):
        db.workflows.change_status(workflow.id, "running")
        db.workflows.change_status(workflow.id, "running")
        db.workflows.update(workflow.id, progress=40)
        assert len(db.history.for_workflow(workflow.id)) == 1

    def test_ordered_chain(self, db, workflow):
        for status in ("running", "paused", "running", "completed"):
            db.workflows.change_status(workflow.id, status)
        history = db.history.for_workflow(workflow.id)
        assert [h.status for h in history] == ["running", "paused", "running", "completed"]
        assert [h.previous_status for h in history] == ["pending", "running", "paused", "running"]
        timestamps = [h.timestamp for h in history]
        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == len(timestamps)

    def test_snapshot_metadata(self, db, workflow):
        db.workflows.change_status(workflow.id, "running", progress=25, current_phase="extract")
        change = db.history.latest_for_workflow(workflow.id)
        assert change.metadata == {"progress": 25, "current_phase": "extract"}

    def test_history_timestamp_matches_updated_at(self, db, workflow):
        updated = db.workflows.change_status(workflow.id, "running")
        assert db.history.latest_for_workflow(workflow.id).timestamp == updated.updated_at

    def test_limit(self, db, workflow):
        for status in ("running", "paused", "running"):
            db.workflows.change_status(workflow.id, status)
        assert len(db.history.for_workflow(workflow.id, limit=2)) == 2

    def test_latest_none_without_changes(self, db, workflow):
        assert db.history.latest_for_workflow(workflow.id) is None

    def test_direct_sql_update_is_audited(self, db, workflow):
        db.query("UPDATE workflows SET status = ? WHERE id = ?", ("running", workflow.id))
        assert [h.status for h in db.history.for_workflow(workflow.id)] == ["running"]


class TestUpdatedAt:
    def test_strictly_increases_on_every_update(self, db, workflow):
        seen = [workflow.updated_at]
        for progress in range(1, 6):
            seen.append(db.workflows.update(workflow.id, progress=progress).updated_at)
        assert all(later > earlier for earlier, later in zip(seen, seen[1:]))

    def test_created_at_unchanged(self, db, workflow):
        updated = db.workflows.update(workflow.id, progress=10)
        assert updated.created_at == workflow.created_at


class TestAgentHistory:
    def test_agent_transitions(self, db, agent):
        db.agents.change_status(agent.id, "running", reason="started")
        db.agents.change_status(agent.id, "completed", reason="done")
        history = db.history.for_agent(agent.id)
        assert [(h.previous_status, h.status) for h in history] == [
            ("idle", "running"),
            ("running", "completed"),
        ]
        assert history[-1].reason == "done"

    def test_histories_are_separate(self, db, agent):
        db.agents.change_status(agent.id, "running")
        assert db.history.for_workflow(agent.workflow_id) == []


class TestAtomicity:
    def test_rejected_update_leaves_no_history(self, db, workflow):
        def work(tx):
            db.workflows.change_status(workflow.id, "running", tx=tx)
            db.workflows.update(workflow.id, progress=150, tx=tx)

        with pytest.raises(ConstraintViolation):
            db.run_transaction(work)

        assert db.history.for_workflow(workflow.id) == []
        assert db.workflows.get(workflow.id).status == "pending"

    def test_rolled_back_transition_leaves_no_history(self, db, workflow):
        def work(tx):
            db.workflows.change_status(workflow.id, "running", tx=tx)
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            db.run_transaction(work)
        assert db.history.for_workflow(workflow.id) == []

    def test_concurrent_transitions_each_recorded_once(self, db, workflow):
        agents = [db.agents.create(workflow.id, f"worker-{i}", "processing") for i in range(4)]
        errors = []

        def drive(agent_id):
            try:
                for status in ("running", "waiting", "running", "completed"):
                    db.agents.change_status(agent_id, status)
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=drive, args=(a.id,)) for a in agents]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        for a in agents:
            assert len(db.history.for_agent(a.id)) == 4
        assert db.pool_stats().total <= db.settings.pool_max_size
