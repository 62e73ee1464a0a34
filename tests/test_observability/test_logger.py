"""Tests for observability logger."""

import asyncio
import json

import pytest

from clinic_os.observability import (
    EventType,
    FetchEvent,
    ObservabilityLogger,
    get_observability_logger,
)
from clinic_os.scheduling.conflicts import detect_conflicts
from clinic_os.scheduling.models import WorkPeriod


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "obs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def obs(temp_log_dir):
    """Create observability logger with temp directory."""
    return ObservabilityLogger(log_dir=temp_log_dir, enabled=True)


def read_events(path):
    return [json.loads(line) for line in path.read_text().strip().split("\n")]


class TestObservabilityLogger:
    """Tests for ObservabilityLogger."""

    def test_init_creates_log_directory(self, tmp_path):
        """Test that init creates log directory if needed."""
        log_dir = tmp_path / "new_logs"
        ObservabilityLogger(log_dir=log_dir)

        assert log_dir.exists()

    def test_disabled_logger_writes_nothing(self, tmp_path):
        """Test that disabled logger doesn't write."""
        log_dir = tmp_path / "disabled"
        logger = ObservabilityLogger(log_dir=log_dir, enabled=False)

        with logger.fetch_request(clinic_id="c1", date="2026-03-02", signature="sig") as event:
            event.slots_count = 4

        assert not log_dir.exists()

    def test_fetch_success(self, obs, temp_log_dir):
        """Test logging a successful availability request."""
        with obs.fetch_request(
            clinic_id="clinic-1",
            date="2026-03-02",
            signature="2026-03-02|default|clinic-1|any",
            request_id="7",
        ) as event:
            event.slots_count = 6
            event.available_count = 5

        events = read_events(temp_log_dir / "availability_fetch.jsonl")
        assert len(events) == 1
        assert events[0]["event_type"] == "fetch_success"
        assert events[0]["clinic_id"] == "clinic-1"
        assert events[0]["request_id"] == "7"
        assert events[0]["slots_count"] == 6
        assert events[0]["duration_ms"] is not None

    def test_fetch_error(self, obs, temp_log_dir):
        """Test logging a failed availability request."""
        with pytest.raises(ValueError):
            with obs.fetch_request(clinic_id="c1", date="2026-03-02", signature="sig") as event:
                raise ValueError("Backend said no")

        events = read_events(temp_log_dir / "availability_fetch.jsonl")
        assert events[0]["event_type"] == "fetch_error"
        assert events[0]["error_type"] == "ValueError"
        assert "Backend said no" in events[0]["error_message"]

    def test_fetch_cancelled(self, obs, temp_log_dir):
        """Test that cancellation is recorded and propagated."""
        with pytest.raises(asyncio.CancelledError):
            with obs.fetch_request(clinic_id="c1", date="2026-03-02", signature="sig"):
                raise asyncio.CancelledError()

        events = read_events(temp_log_dir / "availability_fetch.jsonl")
        assert events[0]["event_type"] == "fetch_cancelled"

    def test_error_message_truncated(self, temp_log_dir):
        logger = ObservabilityLogger(log_dir=temp_log_dir, max_message_length=20)
        with pytest.raises(RuntimeError):
            with logger.fetch_request(clinic_id="c1", date="2026-03-02", signature="sig"):
                raise RuntimeError("x" * 100)

        events = read_events(temp_log_dir / "availability_fetch.jsonl")
        assert len(events[0]["error_message"]) == 20

    def test_breaker_events(self, obs, temp_log_dir):
        obs.log_circuit_opened(clinic_id="c1", date="2026-03-02", signature="sig", failure_count=3)
        obs.log_fetch_short_circuited(clinic_id="c1", date="2026-03-02", signature="sig", failure_count=3)

        events = read_events(temp_log_dir / "availability_fetch.jsonl")
        assert [e["event_type"] for e in events] == ["circuit_opened", "fetch_short_circuited"]
        assert all(e["circuit_open"] for e in events)

    def test_conflict_scan(self, obs, temp_log_dir):
        periods = [
            WorkPeriod(staff_id="s1", clinic_id="c1", day_of_week=1, start_time="09:00", end_time="13:00"),
            WorkPeriod(staff_id="s1", clinic_id="c1", day_of_week=1, start_time="12:00", end_time="15:00"),
            WorkPeriod(staff_id="s1", clinic_id="c1", day_of_week=1, start_time="15:10", end_time="18:00"),
        ]
        conflicts = detect_conflicts(periods)
        obs.log_conflict_scan(
            strategy="sweep", periods_count=3, staff_count=1, conflicts=conflicts, duration_ms=1.5
        )

        events = read_events(temp_log_dir / "conflict_scans.jsonl")
        assert events[0]["event_type"] == "conflict_scan"
        assert events[0]["conflicts_count"] == 2
        assert events[0]["overlap_count"] == 1
        assert events[0]["break_count"] == 1

    def test_session_id_applied(self, obs):
        obs.set_session_id("session-42")
        with obs.fetch_request(clinic_id="c1", date="2026-03-02", signature="sig"):
            pass

        assert obs.get_recent_events("fetch")[0]["session_id"] == "session-42"

    def test_callbacks(self, obs):
        seen = []
        obs.add_callback(seen.append)
        obs.add_callback(lambda event: 1 / 0)

        obs.log_circuit_opened(clinic_id="c1", date="2026-03-02", signature="sig", failure_count=3)

        assert len(seen) == 1
        assert isinstance(seen[0], FetchEvent)
        assert seen[0].event_type == EventType.CIRCUIT_OPENED

    def test_stats(self, obs):
        assert obs.get_stats("fetch") == {"total": 0}

        with obs.fetch_request(clinic_id="c1", date="2026-03-02", signature="sig"):
            pass
        with pytest.raises(RuntimeError):
            with obs.fetch_request(clinic_id="c1", date="2026-03-02", signature="sig"):
                raise RuntimeError("down")
        obs.log_fetch_short_circuited(clinic_id="c1", date="2026-03-02", signature="sig", failure_count=3)

        stats = obs.get_stats("fetch")
        assert stats["total"] == 3
        assert stats["errors"] == 1
        assert stats["short_circuited"] == 1

    def test_recent_events_limit(self, obs):
        for i in range(5):
            obs.log_fetch_short_circuited(
                clinic_id="c1", date="2026-03-02", signature=f"sig-{i}", failure_count=3
            )
        recent = obs.get_recent_events("fetch", limit=2)
        assert [e["signature"] for e in recent] == ["sig-3", "sig-4"]


class TestGlobalLogger:
    def test_returns_installed_instance(self, obs_logger):
        assert get_observability_logger() is obs_logger
