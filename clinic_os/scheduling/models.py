"""Pydantic models for the scheduling core."""

import datetime as dt
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from clinic_os.scheduling.timeutils import (
    normalize_time,
    parse_date,
    to_minutes,
    validate_date_string,
)


def sunday_based_weekday(day: dt.date) -> int:
    """Weekday with 0 = Sunday, as the work-period store reports it."""
    return (day.weekday() + 1) % 7


class ConflictType(str, Enum):
    TIME_OVERLAP = "time_overlap"
    INSUFFICIENT_BREAK = "insufficient_break"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PeakHours(BaseModel):
    """Hour-of-day window [start_hour, end_hour) flagged as peak."""

    start_hour: int = Field(default=17, ge=0, le=23)
    end_hour: int = Field(default=21, ge=1, le=24)

    @model_validator(mode="after")
    def _check_order(self) -> "PeakHours":
        if self.start_hour >= self.end_hour:
            raise ValueError(
                f"Peak start hour {self.start_hour} must be before end hour {self.end_hour}"
            )
        return self

    def contains(self, hour: int) -> bool:
        return self.start_hour <= hour < self.end_hour


class WorkPeriod(BaseModel):
    """A recurring or date-specific availability window for one staff member."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    staff_id: str
    staff_name: Optional[str] = None
    clinic_id: str
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description="0=Sunday .. 6=Saturday")
    date: Optional[dt.date] = None
    start_time: str
    end_time: str
    slot_duration_minutes: int = 30
    is_active: bool = True
    effective_from: Optional[dt.date] = None
    effective_until: Optional[dt.date] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_time(value)

    @model_validator(mode="after")
    def _check_window(self) -> "WorkPeriod":
        if self.day_of_week is None and self.date is None:
            raise ValueError("Work period needs either day_of_week or date")
        if to_minutes(self.start_time) >= to_minutes(self.end_time):
            raise ValueError(
                f"start_time {self.start_time} must be before end_time {self.end_time}"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)

    @property
    def schedule_key(self) -> str:
        """Grouping key: the explicit date, or the weekday for recurring periods."""
        if self.date is not None:
            return self.date.isoformat()
        return f"dow-{self.day_of_week}"

    def is_effective_on(self, day: dt.date) -> bool:
        """True when the period is active and applies to *day*."""
        if not self.is_active:
            return False
        if self.effective_from and day < self.effective_from:
            return False
        if self.effective_until and day > self.effective_until:
            return False
        if self.date is not None:
            return self.date == day
        return self.day_of_week == sunday_based_weekday(day)


class BookedInterval(BaseModel):
    """A slot already consumed by a confirmed appointment."""

    date: dt.date
    time: str

    @field_validator("time", mode="before")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_time(value)


class TimeSlot(BaseModel):
    """A generated, bookable slot. Never persisted."""

    time: str
    available: bool = True
    is_peak: bool = False
    period_id: Optional[str] = None
    staff_id: Optional[str] = None

    @property
    def hour(self) -> int:
        return int(self.time.split(":")[0])


class Conflict(BaseModel):
    """A scheduling defect between two work periods of the same staff member."""

    id: str
    staff_id: str
    staff_name: Optional[str] = None
    date: Optional[dt.date] = None
    day_of_week: Optional[int] = None
    type: ConflictType
    severity: Severity
    first: WorkPeriod
    second: WorkPeriod
    description: str
    gap_minutes: Optional[int] = None


class CircuitBreakerState(BaseModel):
    failure_count: int = 0
    last_failure_time: Optional[float] = None
    is_open: bool = False


class AvailabilityQuery(BaseModel):
    """Parameters of one availability lookup."""

    clinic_id: str = Field(min_length=1)
    date: str
    duration: Optional[int] = Field(default=None, gt=0)
    staff_id: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        return validate_date_string(value)

    @property
    def day(self) -> dt.date:
        return parse_date(self.date)

    def signature(self) -> str:
        """Identity of the request used for duplicate suppression."""
        return f"{self.date}|{self.duration or 'default'}|{self.clinic_id}|{self.staff_id or 'any'}"


class BookingRequest(BaseModel):
    """Payload for the appointment-creation collaborator."""

    clinic_id: str = Field(min_length=1)
    patient_id: str = Field(min_length=1)
    service_type: str = Field(min_length=1)
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    time_slot: str = Field(pattern=r"^\d{2}:\d{2}$")
    staff_id: Optional[str] = None
    notes: Optional[str] = None
    emergency: bool = False

    def to_payload(self) -> dict:
        """Wire format expected by the clinic backend."""
        payload = {
            "clinicId": self.clinic_id,
            "patientId": self.patient_id,
            "serviceType": self.service_type,
            "date": self.date,
            "timeSlot": self.time_slot,
            "notes": self.notes or "",
            "emergency": self.emergency,
        }
        if self.staff_id:
            payload["staffId"] = self.staff_id
        return payload


class StaffAssignment(BaseModel):
    """Result of automatic first-available assignment."""

    staff_id: str
    slot: TimeSlot


class BookingDraft(BaseModel):
    """Partially completed booking form, saved between visits."""

    step: str = "clinic"
    clinic_id: Optional[str] = None
    patient_id: Optional[str] = None
    service_type: Optional[str] = None
    date: Optional[str] = None
    time_slot: Optional[str] = None
    staff_id: Optional[str] = None
    notes: Optional[str] = None
    emergency: bool = False
    updated_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
