"""
Shared pytest fixtures for flowledger tests.

This module provides:
- A file-backed SQLite ``Database`` with the schema installed
- Sample workflow and agent rows
- An optional PostgreSQL database when ``FLOWLEDGER_TEST_POSTGRES_URL`` is set

Usage:
    def test_something(db, workflow):
        db.workflows.change_status(workflow.id, "running")
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from flowledger import Database, DatabaseSettings
from flowledger.core.repositories import Agent, Workflow

POSTGRES_URL_ENV = "FLOWLEDGER_TEST_POSTGRES_URL"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow", "postgres"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ledger.db"


@pytest.fixture
def make_settings(db_path: Path) -> Callable[..., DatabaseSettings]:
    """Factory for small-pool settings pointing at the test's SQLite file."""

    def factory(**overrides) -> DatabaseSettings:
        values = {
            "url": f"sqlite:///{db_path}",
            "pool_min_size": 1,
            "pool_max_size": 5,
            "acquire_timeout": 2.0,
        }
        values.update(overrides)
        return DatabaseSettings(**values)

    return factory


@pytest.fixture
def db(make_settings: Callable[..., DatabaseSettings]) -> Generator[Database, None, None]:
    """A SQLite ledger with every table, trigger and view installed."""
    database = Database(make_settings())
    database.create_schema()
    yield database
    database.close()


@pytest.fixture
def pg_db() -> Generator[Database, None, None]:
    """A PostgreSQL ledger; skipped unless ``FLOWLEDGER_TEST_POSTGRES_URL`` is set."""
    url = os.environ.get(POSTGRES_URL_ENV)
    if not url:
        pytest.skip(f"{POSTGRES_URL_ENV} not set")
    database = Database(DatabaseSettings(url=url, pool_min_size=1, pool_max_size=5, acquire_timeout=5.0))
    database.drop_schema()
    database.create_schema()
    yield database
    database.drop_schema()
    database.close()


# =============================================================================
# Sample Rows
# =============================================================================


@pytest.fixture
def workflow(db: Database) -> Workflow:
    return db.workflows.create("nightly-etl", description="Load and reconcile", tags=["etl"])


@pytest.fixture
def agent(db: Database, workflow: Workflow) -> Agent:
    return db.agents.create(workflow.id, "reader", "processing", capabilities=["parse"])
