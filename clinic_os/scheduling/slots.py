"""Slot generation from staff work periods."""

import logging
from typing import Iterable, Optional

from clinic_os.scheduling.errors import SchedulingValidationError
from clinic_os.scheduling.models import PeakHours, TimeSlot, WorkPeriod
from clinic_os.scheduling.timeutils import format_time_12h, from_minutes, to_minutes

logger = logging.getLogger(__name__)

DEFAULT_PEAK_HOURS = PeakHours()


def generate_period_slots(
    period: WorkPeriod,
    booked: Iterable[str] = (),
    *,
    peak_hours: Optional[PeakHours] = None,
    slot_minutes: Optional[int] = None,
) -> list[TimeSlot]:
    """Generate the slots of a single work period.

    A slot is emitted every ``slot_duration_minutes`` while it still fits
    completely inside the window; a trailing remainder is dropped.
    *slot_minutes* overrides the period's own duration.
    """
    duration = slot_minutes if slot_minutes is not None else period.slot_duration_minutes
    if duration is None or duration <= 0:
        raise SchedulingValidationError(
            f"Slot duration must be positive, got {duration!r} (period {period.id})"
        )

    peak_hours = peak_hours or DEFAULT_PEAK_HOURS
    booked_set = booked if isinstance(booked, (set, frozenset)) else set(booked)

    slots: list[TimeSlot] = []
    offset = period.start_minutes
    end = period.end_minutes
    while offset + duration <= end:
        time = from_minutes(offset)
        slots.append(
            TimeSlot(
                time=time,
                available=time not in booked_set,
                is_peak=peak_hours.contains(offset // 60),
                period_id=period.id,
                staff_id=period.staff_id,
            )
        )
        offset += duration
    return slots


def generate_slots(
    periods: list[WorkPeriod],
    booked: Iterable[str] = (),
    *,
    peak_hours: Optional[PeakHours] = None,
    slot_minutes: Optional[int] = None,
) -> list[TimeSlot]:
    """Generate the ordered, de-duplicated slot list for several periods.

    Slots of all periods are concatenated in the given order. When two
    periods produce the same time the first one wins, so callers that need
    a stable owner must order *periods* themselves. The result is sorted by
    the zero-padded "HH:MM" string, which is chronological within a day.
    """
    if not periods:
        return []

    booked_set = set(booked)
    seen: set[str] = set()
    merged: list[TimeSlot] = []
    for period in periods:
        for slot in generate_period_slots(
            period, booked_set, peak_hours=peak_hours, slot_minutes=slot_minutes
        ):
            if slot.time in seen:
                continue
            seen.add(slot.time)
            merged.append(slot)

    merged.sort(key=lambda s: s.time)
    logger.debug(
        f"Generated {len(merged)} slots from {len(periods)} periods ({len(booked_set)} booked)"
    )
    return merged


def group_slots_by_period(slots: list[TimeSlot]) -> dict[str, list[TimeSlot]]:
    """Split slots into morning (<12h), afternoon (<17h) and evening."""
    groups: dict[str, list[TimeSlot]] = {"morning": [], "afternoon": [], "evening": []}
    for slot in slots:
        if slot.hour < 12:
            groups["morning"].append(slot)
        elif slot.hour < 17:
            groups["afternoon"].append(slot)
        else:
            groups["evening"].append(slot)
    return groups


def format_slot_label(slot: TimeSlot) -> str:
    """Display label, e.g. "9:30 AM", "9:30 AM (Booked)" or "6:00 PM (Peak)"."""
    label = format_time_12h(slot.time)
    if not slot.available:
        return f"{label} (Booked)"
    if slot.is_peak:
        return f"{label} (Peak)"
    return label


def is_time_in_period(time: str, period: WorkPeriod) -> bool:
    """True when *time* falls inside [start_time, end_time) of *period*."""
    minutes = to_minutes(time)
    return period.start_minutes <= minutes < period.end_minutes
