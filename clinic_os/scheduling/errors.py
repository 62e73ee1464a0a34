"""Scheduling error taxonomy and classification."""

import asyncio
from dataclasses import dataclass
from enum import Enum

import httpx


class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    pass


class SchedulingValidationError(SchedulingError, ValueError):
    """Malformed local input (dates, times, durations, identifiers)."""

    pass


class BackendError(SchedulingError):
    """Transient backend failure: network error or 5xx response."""

    pass


class RequestTimeoutError(BackendError):
    """Availability request exceeded its time budget."""

    pass


class StaffUnavailableError(SchedulingError):
    """The backend reported no staff or schedule for the request."""

    pass


class SessionExpiredError(SchedulingError):
    """Authentication or session is no longer valid."""

    pass


class ErrorKind(str, Enum):
    """Buckets every failure path resolves to."""

    VALIDATION = "validation"
    TRANSIENT = "transient"
    UNAVAILABLE = "unavailable"
    SESSION = "session"


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Please check the selected date, time and clinic.",
    ErrorKind.TRANSIENT: "Unable to load available times right now. Please try again shortly.",
    ErrorKind.UNAVAILABLE: "No staff are available for the selected date.",
    ErrorKind.SESSION: "Your session has expired. Please sign in again.",
}

_SEVERITIES: dict[ErrorKind, ErrorSeverity] = {
    ErrorKind.VALIDATION: ErrorSeverity.WARNING,
    ErrorKind.TRANSIENT: ErrorSeverity.ERROR,
    ErrorKind.UNAVAILABLE: ErrorSeverity.INFO,
    ErrorKind.SESSION: ErrorSeverity.ERROR,
}


@dataclass
class ClassifiedError:
    """A failure as presented to the UI layer."""

    kind: ErrorKind
    message: str
    severity: ErrorSeverity
    detail: str = ""
    notify: bool = True

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    @property
    def counts_as_failure(self) -> bool:
        """Whether the circuit breaker should count this failure."""
        return self.kind == ErrorKind.TRANSIENT


def _kind_for(exc: BaseException) -> ErrorKind:
    if isinstance(exc, SchedulingValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, SessionExpiredError):
        return ErrorKind.SESSION
    if isinstance(exc, StaffUnavailableError):
        return ErrorKind.UNAVAILABLE
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in (401, 403):
            return ErrorKind.SESSION
        if status in (404, 409):
            return ErrorKind.UNAVAILABLE
    return ErrorKind.TRANSIENT


def classify_error(exc: BaseException) -> ClassifiedError:
    """Map any exception to one of the four error buckets.

    Anything not recognised (including ``httpx.TransportError`` and
    ``asyncio.TimeoutError``) is treated as transient.
    """
    kind = _kind_for(exc)
    if isinstance(exc, asyncio.TimeoutError) and not isinstance(exc, RequestTimeoutError):
        detail = "Request timed out"
    else:
        detail = str(exc)[:200]
    message = _MESSAGES[kind]
    if kind == ErrorKind.UNAVAILABLE and isinstance(exc, StaffUnavailableError) and str(exc):
        message = str(exc)
    return ClassifiedError(
        kind=kind,
        message=message,
        severity=_SEVERITIES[kind],
        detail=detail,
    )
