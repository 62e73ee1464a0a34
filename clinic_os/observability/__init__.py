"""Observability module for scheduling telemetry."""

from clinic_os.observability.events import (
    ConflictScanEvent,
    EventType,
    FetchEvent,
    ObservabilityEvent,
)
from clinic_os.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "ConflictScanEvent",
    "EventType",
    "FetchEvent",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "get_observability_logger",
]
