"""Tests for slot generation and time helpers."""

import pytest

from clinic_os.scheduling.errors import SchedulingValidationError
from clinic_os.scheduling.models import PeakHours, TimeSlot
from clinic_os.scheduling.slots import (
    format_slot_label,
    generate_period_slots,
    generate_slots,
    group_slots_by_period,
    is_time_in_period,
)
from clinic_os.scheduling.timeutils import (
    add_minutes,
    duration_between,
    format_time_12h,
    normalize_time,
    to_minutes,
)


# --------------------------------------------------------- single period

class TestGeneratePeriodSlots:
    def test_morning_thirty_minute_slots(self, morning_period):
        slots = generate_period_slots(morning_period)
        assert [s.time for s in slots] == [
            "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
        ]
        assert all(s.available for s in slots)
        assert not any(s.is_peak for s in slots)

    def test_hour_slots_crossing_peak_window(self, evening_period):
        slots = generate_period_slots(evening_period)
        assert [s.time for s in slots] == ["16:30", "17:30"]
        # Peak is decided by the slot's start hour.
        assert [s.is_peak for s in slots] == [False, True]

    def test_trailing_remainder_dropped(self, period_factory):
        period = period_factory("09:00", "10:45", duration=30)
        slots = generate_period_slots(period)
        assert [s.time for s in slots] == ["09:00", "09:30", "10:00"]
        assert slots[-1].time == "10:00"

    def test_window_shorter_than_duration(self, period_factory):
        period = period_factory("09:00", "09:20", duration=30)
        assert generate_period_slots(period) == []

    def test_booked_slot_marked_unavailable(self, morning_period):
        slots = generate_period_slots(morning_period, {"10:00"})
        booked = [s for s in slots if not s.available]
        assert [s.time for s in booked] == ["10:00"]
        assert len(slots) == 6

    def test_slots_carry_period_and_staff(self, morning_period):
        slot = generate_period_slots(morning_period)[0]
        assert slot.period_id == "morning"
        assert slot.staff_id == "staff-1"

    def test_override_duration(self, morning_period):
        slots = generate_period_slots(morning_period, slot_minutes=60)
        assert [s.time for s in slots] == ["09:00", "10:00", "11:00"]

    def test_zero_duration_rejected(self, period_factory):
        period = period_factory("09:00", "12:00", duration=0)
        with pytest.raises(SchedulingValidationError):
            generate_period_slots(period)

    def test_negative_override_rejected(self, morning_period):
        with pytest.raises(SchedulingValidationError):
            generate_period_slots(morning_period, slot_minutes=-15)

    def test_custom_peak_hours(self, morning_period):
        slots = generate_period_slots(morning_period, peak_hours=PeakHours(start_hour=9, end_hour=10))
        assert [s.time for s in slots if s.is_peak] == ["09:00", "09:30"]


# --------------------------------------------------------- multiple periods

class TestGenerateSlots:
    def test_empty_input(self):
        assert generate_slots([]) == []

    def test_merged_and_sorted(self, period_factory):
        afternoon = period_factory("14:00", "15:00", period_id="pm")
        morning = period_factory("09:00", "10:00", period_id="am")
        slots = generate_slots([afternoon, morning])
        assert [s.time for s in slots] == ["09:00", "09:30", "14:00", "14:30"]

    def test_duplicate_times_first_period_wins(self, period_factory):
        a = period_factory("09:00", "10:00", staff_id="staff-a", period_id="a")
        b = period_factory("09:30", "10:30", staff_id="staff-b", period_id="b")
        slots = generate_slots([a, b])

        times = [s.time for s in slots]
        assert times == ["09:00", "09:30", "10:00"]
        assert len(times) == len(set(times))
        owner = {s.time: s.period_id for s in slots}
        assert owner["09:30"] == "a"
        assert owner["10:00"] == "b"

    def test_booked_applies_across_periods(self, period_factory):
        a = period_factory("09:00", "10:00", period_id="a")
        b = period_factory("14:00", "15:00", period_id="b")
        slots = generate_slots([a, b], ["09:30", "14:00"])
        assert [s.time for s in slots if not s.available] == ["09:30", "14:00"]

    def test_every_slot_fits_its_period(self, period_factory):
        periods = [
            period_factory("08:15", "11:50", duration=25, period_id="a"),
            period_factory("13:05", "18:00", duration=40, period_id="b"),
        ]
        by_id = {p.id: p for p in periods}
        for slot in generate_slots(periods):
            period = by_id[slot.period_id]
            start = to_minutes(slot.time)
            assert start >= period.start_minutes
            assert start + period.slot_duration_minutes <= period.end_minutes


# --------------------------------------------------------- presentation helpers

class TestSlotHelpers:
    def test_group_by_time_of_day(self):
        slots = [TimeSlot(time=t) for t in ("08:00", "11:30", "12:00", "16:30", "17:00", "20:00")]
        groups = group_slots_by_period(slots)
        assert [s.time for s in groups["morning"]] == ["08:00", "11:30"]
        assert [s.time for s in groups["afternoon"]] == ["12:00", "16:30"]
        assert [s.time for s in groups["evening"]] == ["17:00", "20:00"]

    def test_labels(self):
        assert format_slot_label(TimeSlot(time="09:30")) == "9:30 AM"
        assert format_slot_label(TimeSlot(time="09:30", available=False)) == "9:30 AM (Booked)"
        assert format_slot_label(TimeSlot(time="18:00", is_peak=True)) == "6:00 PM (Peak)"

    def test_is_time_in_period(self, morning_period):
        assert is_time_in_period("09:00", morning_period)
        assert is_time_in_period("11:59", morning_period)
        assert not is_time_in_period("12:00", morning_period)
        assert not is_time_in_period("08:59", morning_period)


class TestTimeUtils:
    def test_normalize_single_digit_hour(self):
        assert normalize_time("9:05") == "09:05"

    @pytest.mark.parametrize("value", ["24:00", "9:5", "abc", "09:60"])
    def test_normalize_rejects_malformed(self, value):
        with pytest.raises(SchedulingValidationError):
            normalize_time(value)

    def test_format_12h(self):
        assert format_time_12h("00:15") == "12:15 AM"
        assert format_time_12h("12:00") == "12:00 PM"
        assert format_time_12h("14:30") == "2:30 PM"

    def test_duration_between(self):
        assert duration_between("09:00", "12:15") == 195
        assert duration_between("12:00", "09:00") == -180

    def test_add_minutes_wraps_midnight(self):
        assert add_minutes("09:45", 30) == "10:15"
        assert add_minutes("23:30", 45) == "00:15"
