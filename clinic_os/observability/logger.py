"""Observability logger for structured scheduling telemetry."""

import asyncio
import json
import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from clinic_os.observability.events import (
    ConflictScanEvent,
    EventType,
    FetchEvent,
    ObservabilityEvent,
)

logger = logging.getLogger(__name__)


class ObservabilityLogger:
    """Central logger for availability-fetch and conflict-scan events.

    Writes structured events to JSON Lines files for later analysis.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
        max_message_length: int = 200,
    ):
        """Initialize observability logger.

        Args:
            log_dir: Directory for log files (default: data/logs)
            enabled: Whether logging is enabled
            max_message_length: Max length for error messages
        """
        self.enabled = enabled
        self.max_message_length = max_message_length

        if log_dir is None:
            log_dir = Path("data/logs")
        self.log_dir = log_dir
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._log_files: dict[str, Path] = {
            "fetch": self.log_dir / "availability_fetch.jsonl",
            "conflicts": self.log_dir / "conflict_scans.jsonl",
        }

        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []
        self._current_session_id: Optional[str] = None

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        """Get or create singleton instance from settings."""
        if cls._instance is None:
            from clinic_os.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.observability_log_dir,
                enabled=settings.observability_enabled,
            )
        return cls._instance

    def set_session_id(self, session_id: str) -> None:
        """Set current session ID for event correlation."""
        self._current_session_id = session_id

    def generate_request_id(self) -> str:
        """Generate a unique request ID."""
        return str(uuid.uuid4())[:8]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: ObservabilityEvent, log_type: str) -> None:
        """Write event to appropriate log file."""
        if not self.enabled:
            return

        if self._current_session_id and not event.session_id:
            event.session_id = self._current_session_id

        try:
            log_file = self._log_files.get(log_type)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(event.model_dump_json() + "\n")

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Observability callback failed: {e}")

        except OSError as e:
            logger.warning(f"Failed to write observability event: {e}")

    # Availability fetches

    @contextmanager
    def fetch_request(
        self,
        clinic_id: str,
        date: str,
        signature: str,
        staff_id: Optional[str] = None,
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        """Context manager for logging one availability request.

        Usage:
            with obs.fetch_request(clinic_id, date, signature) as event:
                slots = await fetcher(query)
                event.slots_count = len(slots)
        """
        start_time = time.time()
        event = FetchEvent(
            event_type=EventType.FETCH_START,
            clinic_id=clinic_id,
            date=date,
            signature=signature,
            staff_id=staff_id,
            session_id=session_id,
            request_id=request_id or self.generate_request_id(),
        )

        try:
            yield event
            event.event_type = EventType.FETCH_SUCCESS

        except asyncio.CancelledError:
            event.event_type = EventType.FETCH_CANCELLED
            raise

        except Exception as e:
            event.event_type = EventType.FETCH_ERROR
            event.error_type = type(e).__name__
            event.error_message = str(e)[: self.max_message_length]
            raise

        finally:
            event.duration_ms = (time.time() - start_time) * 1000
            self._write_event(event, "fetch")

    def log_fetch_short_circuited(
        self,
        clinic_id: str,
        date: str,
        signature: str,
        failure_count: int,
        session_id: Optional[str] = None,
    ) -> None:
        """Log a request suppressed by the open circuit."""
        event = FetchEvent(
            event_type=EventType.FETCH_SHORT_CIRCUITED,
            clinic_id=clinic_id,
            date=date,
            signature=signature,
            session_id=session_id,
            failure_count=failure_count,
            circuit_open=True,
        )
        self._write_event(event, "fetch")

    def log_circuit_opened(
        self,
        clinic_id: str,
        date: str,
        signature: str,
        failure_count: int,
        session_id: Optional[str] = None,
    ) -> None:
        event = FetchEvent(
            event_type=EventType.CIRCUIT_OPENED,
            clinic_id=clinic_id,
            date=date,
            signature=signature,
            session_id=session_id,
            failure_count=failure_count,
            circuit_open=True,
        )
        self._write_event(event, "fetch")

    # Conflict scans

    def log_conflict_scan(
        self,
        strategy: str,
        periods_count: int,
        staff_count: int,
        conflicts: list[Any],
        duration_ms: Optional[float] = None,
    ) -> None:
        """Log a conflict-detection pass."""
        types = [getattr(c.type, "value", c.type) for c in conflicts]
        event = ConflictScanEvent(
            strategy=strategy,
            periods_count=periods_count,
            staff_count=staff_count,
            conflicts_count=len(conflicts),
            overlap_count=types.count("time_overlap"),
            break_count=types.count("insufficient_break"),
            duration_ms=duration_ms,
        )
        self._write_event(event, "conflicts")

    # Utility methods

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Read recent events from a log file."""
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def get_stats(self, log_type: str) -> dict[str, Any]:
        """Get basic statistics for a log type."""
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(1 for e in events if "error" in e.get("event_type", ""))
        short_circuited = sum(
            1 for e in events if e.get("event_type") == EventType.FETCH_SHORT_CIRCUITED.value
        )
        avg_duration = sum(e.get("duration_ms") or 0 for e in events) / total

        return {
            "total": total,
            "errors": errors,
            "short_circuited": short_circuited,
            "error_rate": errors / total if total > 0 else 0,
            "avg_duration_ms": avg_duration,
        }


def get_observability_logger() -> ObservabilityLogger:
    """Get the global observability logger instance."""
    return ObservabilityLogger.get_instance()
