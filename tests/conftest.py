"""Pytest configuration and fixtures."""

import pytest

from clinic_os.config import get_settings
from clinic_os.observability import ObservabilityLogger
from clinic_os.scheduling.models import WorkPeriod


# ---------------------------------------------------------------------------
# Observability isolation: every test writes telemetry into its own tmp dir
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def obs_logger(tmp_path):
    """Install a temp-dir observability logger as the global instance."""
    logger = ObservabilityLogger(log_dir=tmp_path / "logs", enabled=True)
    ObservabilityLogger._instance = logger
    yield logger
    ObservabilityLogger._instance = None


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Work periods
# ---------------------------------------------------------------------------

def make_period(
    start: str,
    end: str,
    *,
    staff_id: str = "staff-1",
    period_id: str | None = None,
    duration: int = 30,
    day_of_week: int | None = 1,
    date: str | None = None,
    **extra,
) -> WorkPeriod:
    fields = dict(
        staff_id=staff_id,
        clinic_id="clinic-1",
        day_of_week=day_of_week,
        date=date,
        start_time=start,
        end_time=end,
        slot_duration_minutes=duration,
        **extra,
    )
    if period_id:
        fields["id"] = period_id
    return WorkPeriod(**fields)


@pytest.fixture
def morning_period():
    """Monday 09:00-12:00, 30-minute slots."""
    return make_period("09:00", "12:00", period_id="morning")


@pytest.fixture
def evening_period():
    """Monday 16:30-18:30, 60-minute slots."""
    return make_period("16:30", "18:30", period_id="evening", duration=60)


@pytest.fixture
def period_factory():
    """Build WorkPeriods with clinic/staff defaults filled in."""
    return make_period
