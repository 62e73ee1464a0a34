"""Tests for CLI commands."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from clinic_os.cli.commands import app


runner = CliRunner()


def _period(start, end, *, staff_id="staff-1", duration=30, period_id=None):
    body = {
        "staff_id": staff_id,
        "clinic_id": "clinic-1",
        "day_of_week": 1,
        "start_time": start,
        "end_time": end,
        "slot_duration_minutes": duration,
    }
    if period_id:
        body["id"] = period_id
    return body


@pytest.fixture
def periods_file(tmp_path):
    path = tmp_path / "periods.json"
    path.write_text(json.dumps([_period("09:00", "12:00", period_id="A")]))
    return path


@pytest.fixture
def conflicting_file(tmp_path):
    path = tmp_path / "conflicting.json"
    path.write_text(
        json.dumps(
            {
                "periods": [
                    _period("09:00", "13:00", period_id="A"),
                    _period("12:30", "16:00", period_id="B"),
                ]
            }
        )
    )
    return path


class TestSlotsCommand:
    def test_table_output(self, periods_file):
        result = runner.invoke(app, ["slots", str(periods_file), "--booked", "10:00"])

        assert result.exit_code == 0
        assert "9:00 AM" in result.stdout
        assert "10:00 AM (Booked)" in result.stdout

    def test_booked_time_normalized(self, periods_file):
        result = runner.invoke(app, ["slots", str(periods_file), "-b", "9:00", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [s["time"] for s in data if not s["available"]] == ["09:00"]

    def test_malformed_booked_time(self, periods_file):
        result = runner.invoke(app, ["slots", str(periods_file), "--booked", "abc"])

        assert result.exit_code == 1
        assert "Invalid time" in result.stdout

    def test_json_output(self, periods_file):
        result = runner.invoke(app, ["slots", str(periods_file), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [s["time"] for s in data] == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["slots", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_invalid_periods(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps([_period("13:00", "09:00")]))

        result = runner.invoke(app, ["slots", str(path)])

        assert result.exit_code == 1
        assert "Invalid work periods" in result.stdout


class TestConflictsCommand:
    def test_reports_overlap(self, conflicting_file):
        result = runner.invoke(app, ["conflicts", str(conflicting_file)])

        assert result.exit_code == 0
        assert "high" in result.stdout
        assert "Overlapping schedules" in result.stdout

    def test_json_output(self, conflicting_file):
        result = runner.invoke(app, ["conflicts", str(conflicting_file), "--json"])

        data = json.loads(result.stdout)
        assert len(data) == 1
        assert data[0]["id"] == "A-B-overlap"
        assert data[0]["severity"] == "high"

    def test_no_conflicts(self, periods_file):
        result = runner.invoke(app, ["conflicts", str(periods_file)])

        assert result.exit_code == 0
        assert "No scheduling conflicts" in result.stdout

    def test_invalid_strategy(self, periods_file):
        result = runner.invoke(app, ["conflicts", str(periods_file), "--strategy", "pairwise"])

        assert result.exit_code == 1
        assert "Invalid strategy" in result.stdout


class TestFirstAvailableCommand:
    def test_assignment(self, tmp_path):
        periods = tmp_path / "periods.json"
        periods.write_text(
            json.dumps(
                [
                    _period("09:00", "12:00", staff_id="staff-b"),
                    _period("09:00", "12:00", staff_id="staff-a"),
                ]
            )
        )
        booked = tmp_path / "booked.json"
        booked.write_text(json.dumps({"staff-a": ["09:00"]}))

        result = runner.invoke(
            app, ["first-available", str(periods), "--booked-file", str(booked), "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["staff_id"] == "staff-b"
        assert data["slot"]["time"] == "09:00"

    def test_booked_file_times_normalized(self, periods_file, tmp_path):
        booked = tmp_path / "booked.json"
        booked.write_text(json.dumps({"staff-1": ["9:00"]}))

        result = runner.invoke(
            app, ["first-available", str(periods_file), "--booked-file", str(booked), "--json"]
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["slot"]["time"] == "09:30"

    @pytest.mark.parametrize("content", ['{"staff-1": ["abc"]}', '["09:00"]', "{not json"])
    def test_bad_booked_file(self, periods_file, tmp_path, content):
        booked = tmp_path / "booked.json"
        booked.write_text(content)

        result = runner.invoke(
            app, ["first-available", str(periods_file), "--booked-file", str(booked)]
        )

        assert result.exit_code == 1
        assert "Invalid booked times" in result.stdout

    def test_panel_output(self, periods_file):
        result = runner.invoke(app, ["first-available", str(periods_file)])

        assert result.exit_code == 0
        assert "staff-1" in result.stdout
        assert "9:00 AM" in result.stdout


class TestMiscCommands:
    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "Clinic OS v" in result.stdout

    def test_stats(self, obs_logger):
        obs_logger.log_fetch_short_circuited(
            clinic_id="c1", date="2026-03-02", signature="sig", failure_count=3
        )
        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0
        assert "fetch" in result.stdout

    def test_serve_uses_factory(self):
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--port", "9000"])

        assert result.exit_code == 0
        args, kwargs = mock_run.call_args
        assert args[0] == "clinic_os.api.app:create_app"
        assert kwargs["port"] == 9000
        assert kwargs["factory"] is True
