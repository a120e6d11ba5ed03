"""Tests for run and source reports."""

from datetime import datetime, timezone

from lcl_scraper.core.report import RunReport, SourceReport, SourceStatus, new_run_id


class TestRunId:
    def test_runs_in_the_same_second_get_distinct_ids(self):
        now = datetime(2026, 7, 12, 8, 0, tzinfo=timezone.utc)

        first, second = new_run_id(now), new_run_id(now)

        assert first != second
        assert first.startswith("run_2026-07-12T08:00:00+00:00_")
        assert len(first.rsplit("_", 1)[1]) == 8

    def test_report_default_ids_are_unique(self):
        assert len({RunReport().run_id for _ in range(20)}) == 20


class TestFinalize:
    def test_frozen_report_ignores_later_errors(self):
        report = SourceReport("src-1", "Example").finalize()
        report.add_error("late")

        assert report.status == SourceStatus.FAILED
        assert report.errors == []
