"""Tests for ``flowledger.core.transaction``: atomic units of work."""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import event

from flowledger import Database
from flowledger.core.errors import (
    ConstraintViolation,
    NestedTransactionError,
    PoolExhausted,
    QueryError,
    TransactionAborted,
)
from flowledger.core.transaction import current_transaction

_LONG_QUERY = (
    "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < 500000000) "
    "SELECT count(*) FROM c"
)


def _count(db, table: str = "workflows") -> int:
    return db.query(f"SELECT count(*) AS n FROM {table}").scalar()


def _insert_workflow(tx, workflow_id: str, name: str = "wf") -> None:
    tx.execute("INSERT INTO workflows (id, name) VALUES (?, ?)", (workflow_id, name))


class TestCommit:
    def test_returns_unit_of_work_result(self, db):
        assert db.run_transaction(lambda tx: 7) == 7

    def test_all_statements_commit_together(self, db):
        def work(tx):
            _insert_workflow(tx, "w1")
            _insert_workflow(tx, "w2")
            return tx.statements

        assert db.run_transaction(work) == 2
        assert _count(db) == 2

    def test_connection_released_after_commit(self, db):
        db.run_transaction(lambda tx: _insert_workflow(tx, "w1"))
        assert db.pool_stats().in_use == 0

    def test_single_statement_query(self, db):
        assert db.query("SELECT ? + ? AS total", (2, 3)).scalar() == 5


class TestRollback:
    def test_error_rolls_back_everything(self, db):
        class Boom(Exception):
            pass

        error = Boom("stop")

        def work(tx):
            _insert_workflow(tx, "w1")
            raise error

        with pytest.raises(Boom) as exc_info:
            db.run_transaction(work)
        assert exc_info.value is error
        assert _count(db) == 0
        assert db.pool_stats().in_use == 0

    def test_backend_error_rolls_back_earlier_statements(self, db):
        def work(tx):
            _insert_workflow(tx, "w1")
            tx.execute("UPDATE workflows SET progress = ? WHERE id = ?", (150, "w1"))

        with pytest.raises(ConstraintViolation) as exc_info:
            db.run_transaction(work)
        assert exc_info.value.kind == "check"
        assert _count(db) == 0

    def test_keyboard_interrupt_rolls_back(self, db):
        def work(tx):
            _insert_workflow(tx, "w1")
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            db.run_transaction(work)
        assert _count(db) == 0
        assert db.pool_stats().in_use == 0

    def test_handle_unusable_after_finish(self, db):
        captured = []
        db.run_transaction(captured.append)
        tx = captured[0]
        assert not tx.is_open
        with pytest.raises(NestedTransactionError):
            tx.execute("SELECT 1")

    def test_failed_begin_raises_taxonomy_error(self, db):
        def broken_begin(conn):
            conn.exec_driver_sql("SELECT * FROM no_such_table")

        event.listen(db.pool.engine, "begin", broken_begin)
        ran = []
        with pytest.raises(QueryError) as exc_info:
            db.run_transaction(ran.append)
        event.remove(db.pool.engine, "begin", broken_begin)

        assert exc_info.value.context.statement == "BEGIN"
        assert exc_info.value.kind == "undefined_object"
        assert ran == []
        assert db.pool_stats().in_use == 0
        assert _count(db) == 0


class TestNesting:
    def test_nested_run_rejected(self, db):
        def work(tx):
            _insert_workflow(tx, "w1")
            db.run_transaction(lambda inner: None)

        with pytest.raises(NestedTransactionError):
            db.run_transaction(work)
        assert _count(db) == 0

    def test_current_transaction(self, db):
        assert current_transaction() is None
        seen = db.run_transaction(lambda tx: current_transaction() is tx)
        assert seen is True
        assert current_transaction() is None

    def test_other_threads_are_independent(self, db):
        results = []

        def other_thread():
            results.append(db.run_transaction(lambda tx: tx.execute("SELECT 1 AS one").scalar()))

        def work(tx):
            thread = threading.Thread(target=other_thread)
            thread.start()
            thread.join()

        db.run_transaction(work)
        assert results == [1]


class TestDeadlines:
    @pytest.mark.slow
    def test_deadline_aborts_and_rolls_back(self, db):
        def work(tx):
            _insert_workflow(tx, "w1")
            tx.execute(_LONG_QUERY)

        with pytest.raises(TransactionAborted) as exc_info:
            db.run_transaction(work, timeout=0.2)
        assert exc_info.value.cause.kind == "cancelled"
        assert _count(db) == 0

    def test_pool_exhaustion_starts_nothing(self, make_settings):
        small = Database(make_settings(pool_min_size=1, pool_max_size=1, acquire_timeout=0.1))
        small.create_schema()
        try:
            held = small.pool.acquire()
            with pytest.raises(PoolExhausted):
                small.run_transaction(lambda tx: _insert_workflow(tx, "w1"))
            small.pool.release(held)
            assert _count(small) == 0
        finally:
            small.close()
