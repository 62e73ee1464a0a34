"""Structured observability events for availability fetches and conflict scans."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    FETCH_START = "fetch_start"
    FETCH_SUCCESS = "fetch_success"
    FETCH_ERROR = "fetch_error"
    FETCH_CANCELLED = "fetch_cancelled"
    FETCH_SHORT_CIRCUITED = "fetch_short_circuited"
    CIRCUIT_OPENED = "circuit_opened"
    CONFLICT_SCAN = "conflict_scan"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class FetchEvent(ObservabilityEvent):
    """Event for one availability request."""

    clinic_id: str
    date: str
    signature: str
    staff_id: Optional[str] = None

    # Populated on success
    slots_count: Optional[int] = None
    available_count: Optional[int] = None

    # Populated on error
    error_type: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    # Breaker snapshot
    failure_count: int = 0
    circuit_open: bool = False


class ConflictScanEvent(ObservabilityEvent):
    """Event for a conflict-detection pass."""

    event_type: EventType = EventType.CONFLICT_SCAN
    strategy: str = "sweep"
    periods_count: int = 0
    staff_count: int = 0
    conflicts_count: int = 0
    overlap_count: int = 0
    break_count: int = 0
