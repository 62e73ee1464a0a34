"""Scheduling API endpoints: slot generation, conflict review and auto-assignment."""

import time
from typing import Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field, field_validator

from clinic_os.config import get_settings
from clinic_os.observability import get_observability_logger
from clinic_os.scheduling.assignment import assign_first_available
from clinic_os.scheduling.conflicts import detect_conflicts, sort_conflicts_by_severity
from clinic_os.scheduling.models import (
    BookingRequest,
    Conflict,
    Severity,
    StaffAssignment,
    TimeSlot,
    WorkPeriod,
)
from clinic_os.scheduling.slots import generate_slots
from clinic_os.scheduling.timeutils import normalize_time

router = APIRouter(prefix="/scheduling")


# ---------------------------------------------------------------------------
# Request/response schemas
# ---------------------------------------------------------------------------

class SlotsRequest(BaseModel):
    periods: list[WorkPeriod]
    booked: list[str] = []
    slot_minutes: Optional[int] = Field(default=None, gt=0)

    @field_validator("booked")
    @classmethod
    def _normalize_booked(cls, value: list[str]) -> list[str]:
        return [normalize_time(t) for t in value]


class ConflictsRequest(BaseModel):
    periods: list[WorkPeriod]
    strategy: Literal["sweep", "adjacent"] = "sweep"
    sort_by_severity: bool = False


class ConflictsResponse(BaseModel):
    conflicts: list[Conflict] = []
    total: int = 0
    high: int = 0
    medium: int = 0


class FirstAvailableRequest(BaseModel):
    periods: list[WorkPeriod]
    booked_by_staff: dict[str, list[str]] = {}
    slot_minutes: Optional[int] = Field(default=None, gt=0)

    @field_validator("booked_by_staff")
    @classmethod
    def _normalize_booked(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {staff: [normalize_time(t) for t in times] for staff, times in value.items()}


class FirstAvailableResponse(BaseModel):
    assignment: Optional[StaffAssignment] = None


class BookingValidationResponse(BaseModel):
    valid: bool = True
    payload: dict


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/slots", response_model=list[TimeSlot])
async def compute_slots(body: SlotsRequest) -> list[TimeSlot]:
    """Generate the ordered slot list for the given work periods."""
    settings = get_settings()
    return generate_slots(
        body.periods,
        set(body.booked),
        peak_hours=settings.peak_hours,
        slot_minutes=body.slot_minutes,
    )


@router.post("/conflicts", response_model=ConflictsResponse)
async def review_conflicts(body: ConflictsRequest) -> ConflictsResponse:
    """Advisory conflict report for the staff-scheduling review screen."""
    settings = get_settings()
    started = time.time()
    conflicts = detect_conflicts(
        body.periods,
        min_break_minutes=settings.min_break_minutes,
        strategy=body.strategy,
    )
    get_observability_logger().log_conflict_scan(
        strategy=body.strategy,
        periods_count=len(body.periods),
        staff_count=len({p.staff_id for p in body.periods}),
        conflicts=conflicts,
        duration_ms=(time.time() - started) * 1000,
    )
    if body.sort_by_severity:
        conflicts = sort_conflicts_by_severity(conflicts)
    return ConflictsResponse(
        conflicts=conflicts,
        total=len(conflicts),
        high=sum(1 for c in conflicts if c.severity == Severity.HIGH),
        medium=sum(1 for c in conflicts if c.severity == Severity.MEDIUM),
    )


@router.post("/first-available", response_model=FirstAvailableResponse)
async def first_available_slot(body: FirstAvailableRequest) -> FirstAvailableResponse:
    """Pick the earliest open slot across staff (ties go to the lowest staff id)."""
    settings = get_settings()
    assignment = assign_first_available(
        body.periods,
        {staff: set(times) for staff, times in body.booked_by_staff.items()},
        peak_hours=settings.peak_hours,
        slot_minutes=body.slot_minutes,
    )
    return FirstAvailableResponse(assignment=assignment)


@router.post("/bookings/validate", response_model=BookingValidationResponse)
async def validate_booking(body: BookingRequest) -> BookingValidationResponse:
    """Check a booking payload locally and return its wire form."""
    return BookingValidationResponse(valid=True, payload=body.to_payload())
