"""Tests for the operator CLI."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from lcl_scraper import __version__
from lcl_scraper.cli.main import app
from lcl_scraper.core.exceptions import ConfigurationError
from lcl_scraper.core.storage import InMemoryStore

runner = CliRunner()


@pytest.fixture
def cli_store(make_source) -> InMemoryStore:
    return InMemoryStore(
        [
            make_source(id="src-1", name="Uit in Breda"),
            make_source(id="src-2", name="Poppodium", auto_disabled=True, consecutive_failures=5),
        ]
    )


@pytest.fixture
def patched_store(cli_store):
    with patch("lcl_scraper.cli.main.load_store", return_value=cli_store):
        yield cli_store


class TestBasics:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_missing_credentials_exit_code(self):
        error = ConfigurationError("Missing persistence credentials: SUPABASE_URL")
        with patch("lcl_scraper.cli.main.create_store", side_effect=error):
            result = runner.invoke(app, ["sources", "list"])

        assert result.exit_code == 1
        assert "Missing persistence credentials" in result.stdout


class TestRunCommand:
    def test_sources_file_run_writes_report(self, tmp_path):
        sources_file = tmp_path / "sources.json"
        sources_file.write_text("[]", encoding="utf-8")
        report_file = tmp_path / "report.json"

        result = runner.invoke(
            app, ["run", "--sources-file", str(sources_file), "--report-file", str(report_file)]
        )

        assert result.exit_code == 0, result.stdout
        assert "TOTALS" in result.stdout
        report = json.loads(report_file.read_text(encoding="utf-8"))
        assert report["dry_run"] is True
        assert report["summary"]["total_sources"] == 0


class TestSourcesCommands:
    def test_list(self, patched_store):
        result = runner.invoke(app, ["sources", "list"])

        assert result.exit_code == 0
        assert "Uit in Breda" in result.stdout
        assert "auto-disabled" in result.stdout
        assert "Total: 2 sources" in result.stdout

    def test_reset(self, patched_store):
        result = runner.invoke(app, ["sources", "reset", "src-2"])

        assert result.exit_code == 0
        assert patched_store.sources["src-2"].auto_disabled is False

    def test_reset_unknown(self, patched_store):
        assert runner.invoke(app, ["sources", "reset", "nope"]).exit_code == 1


class TestJobsCommands:
    def test_enqueue_and_list(self, patched_store):
        enqueued = runner.invoke(app, ["jobs", "enqueue"])
        listed = runner.invoke(app, ["jobs", "list", "--status", "pending"])

        assert enqueued.exit_code == 0
        assert "Enqueued 1 jobs" in enqueued.stdout
        assert listed.exit_code == 0
        assert "pending" in listed.stdout

    def test_list_rejects_unknown_status(self, patched_store):
        assert runner.invoke(app, ["jobs", "list", "--status", "sleeping"]).exit_code != 0

    def test_retry_with_nothing_failed(self, patched_store):
        result = runner.invoke(app, ["jobs", "retry"])
        assert "Requeued 0 jobs" in result.stdout


class TestEventCommands:
    def test_reset_events_needs_confirmation(self, patched_store):
        result = runner.invoke(app, ["reset-events"], input="n\n")
        assert result.exit_code == 0
        assert "Deleted" not in result.stdout

    def test_prune(self, patched_store):
        result = runner.invoke(app, ["prune", "--before", "2026-07-12"])

        assert result.exit_code == 0
        assert "Deleted 0 events before 2026-07-12" in result.stdout
