"""Scheduling core for Clinic OS."""

from clinic_os.scheduling.assignment import (
    assign_first_available,
    first_available,
    next_available_slots,
)
from clinic_os.scheduling.breaker import CircuitBreaker
from clinic_os.scheduling.conflicts import detect_conflicts, sort_conflicts_by_severity
from clinic_os.scheduling.controller import (
    AvailabilityFetchController,
    AvailabilityResult,
    FetchState,
    ResultStatus,
)
from clinic_os.scheduling.errors import (
    BackendError,
    ClassifiedError,
    ErrorKind,
    RequestTimeoutError,
    SchedulingError,
    SchedulingValidationError,
    SessionExpiredError,
    StaffUnavailableError,
    classify_error,
)
from clinic_os.scheduling.models import (
    AvailabilityQuery,
    BookedInterval,
    BookingDraft,
    BookingRequest,
    CircuitBreakerState,
    Conflict,
    ConflictType,
    PeakHours,
    Severity,
    StaffAssignment,
    TimeSlot,
    WorkPeriod,
)
from clinic_os.scheduling.slots import generate_period_slots, generate_slots

__all__ = [
    "AvailabilityFetchController",
    "AvailabilityQuery",
    "AvailabilityResult",
    "BackendError",
    "BookedInterval",
    "BookingDraft",
    "BookingRequest",
    "CircuitBreaker",
    "CircuitBreakerState",
    "ClassifiedError",
    "Conflict",
    "ConflictType",
    "ErrorKind",
    "FetchState",
    "PeakHours",
    "RequestTimeoutError",
    "ResultStatus",
    "SchedulingError",
    "SchedulingValidationError",
    "SessionExpiredError",
    "Severity",
    "StaffAssignment",
    "StaffUnavailableError",
    "TimeSlot",
    "WorkPeriod",
    "assign_first_available",
    "classify_error",
    "detect_conflicts",
    "first_available",
    "generate_period_slots",
    "generate_slots",
    "next_available_slots",
    "sort_conflicts_by_severity",
]
