"""Automatic slot assignment ("first available")."""

import logging
from typing import Mapping, Optional

from clinic_os.scheduling.models import PeakHours, StaffAssignment, TimeSlot, WorkPeriod
from clinic_os.scheduling.slots import generate_slots

logger = logging.getLogger(__name__)


def first_available(slots: list[TimeSlot]) -> Optional[TimeSlot]:
    """Return the earliest available slot, or ``None``."""
    available = [s for s in slots if s.available]
    if not available:
        return None
    return min(available, key=lambda s: s.time)


def next_available_slots(slots: list[TimeSlot], count: int = 5) -> list[TimeSlot]:
    """Return up to *count* available slots in time order."""
    return sorted((s for s in slots if s.available), key=lambda s: s.time)[:count]


def assign_first_available(
    periods: list[WorkPeriod],
    booked_by_staff: Optional[Mapping[str, set[str]]] = None,
    *,
    peak_hours: Optional[PeakHours] = None,
    slot_minutes: Optional[int] = None,
) -> Optional[StaffAssignment]:
    """Pick one slot across all eligible staff members.

    Each staff member's slots are generated against that member's own
    bookings. The earliest available time wins; when several staff members
    share it, the lowest staff id (string order) is chosen.
    """
    booked_by_staff = booked_by_staff or {}
    by_staff: dict[str, list[WorkPeriod]] = {}
    for period in periods:
        by_staff.setdefault(period.staff_id, []).append(period)

    best: Optional[StaffAssignment] = None
    for staff_id in sorted(by_staff):
        slots = generate_slots(
            by_staff[staff_id],
            booked_by_staff.get(staff_id, set()),
            peak_hours=peak_hours,
            slot_minutes=slot_minutes,
        )
        candidate = first_available(slots)
        if candidate is None:
            continue
        # Strict comparison keeps the lower staff id on equal times.
        if best is None or candidate.time < best.slot.time:
            best = StaffAssignment(staff_id=staff_id, slot=candidate)

    if best is None:
        logger.info(f"No available slot among {len(by_staff)} staff members")
    return best
