"""Tests for the ``flowledger db`` CLI commands."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from flowledger import Database, __version__
from flowledger.cli.app import app

runner = CliRunner()


@pytest.fixture
def url(db_path) -> str:
    return f"sqlite:///{db_path}"


@pytest.fixture(autouse=True)
def _no_env_url(monkeypatch, tmp_path):
    monkeypatch.delenv("FLOWLEDGER_DB_URL", raising=False)
    monkeypatch.chdir(tmp_path)


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_db_group(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "db" in result.output


class TestInit:
    def test_creates_schema(self, url):
        result = runner.invoke(app, ["db", "init", "--url", url, "--json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["backend"] == "sqlite"
        assert "workflows" in payload["created"]

    def test_second_run_creates_nothing(self, url):
        runner.invoke(app, ["db", "init", "--url", url])
        result = runner.invoke(app, ["db", "init", "--url", url, "--json"])
        assert json.loads(result.stdout)["created"] == "-"


class TestHealth:
    def test_healthy(self, url):
        result = runner.invoke(app, ["db", "health", "--url", url, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["status"] == "healthy"

    def test_unhealthy_exits_one(self, tmp_path):
        bad = f"sqlite:///{tmp_path / 'no' / 'such' / 'dir.db'}"
        result = runner.invoke(app, ["db", "health", "--url", bad])
        assert result.exit_code == 1
        assert "unhealthy" in result.output


class TestTables:
    def test_counts(self, url):
        runner.invoke(app, ["db", "init", "--url", url])
        with Database.from_url(url, pool_min_size=1, pool_max_size=2) as db:
            db.workflows.create("counted")
        result = runner.invoke(app, ["db", "tables", "--url", url, "--json"])
        assert result.exit_code == 0
        counts = {row["table"]: row["total"] for row in json.loads(result.stdout)}
        assert counts["workflows"] == 1

    def test_missing_schema_fails_cleanly(self, url):
        result = runner.invoke(app, ["db", "tables", "--url", url])
        assert result.exit_code == 1
        assert "SyntaxOrTypeError" in result.output


class TestPurge:
    def test_dry_run(self, url):
        runner.invoke(app, ["db", "init", "--url", url])
        result = runner.invoke(app, ["db", "purge", "--url", url, "--dry-run", "--json"])
        assert result.exit_code == 0
        tables = [row["table"] for row in json.loads(result.stdout)]
        assert tables == ["agents", "workflows", "log_entries", "agent_results"]


class TestDrop:
    def test_requires_confirmation(self, url):
        runner.invoke(app, ["db", "init", "--url", url])
        result = runner.invoke(app, ["db", "drop", "--url", url], input="n\n")
        assert result.exit_code == 1

    def test_drop_with_yes(self, url):
        runner.invoke(app, ["db", "init", "--url", url])
        result = runner.invoke(app, ["db", "drop", "--url", url, "--yes"])
        assert result.exit_code == 0
        assert "dropped" in result.output
