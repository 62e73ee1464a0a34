"""Async client for the clinic backend's schedule and booking stores.

Wire payloads use the backend's camelCase field names and may be wrapped in
a ``{"data": ...}`` envelope.
"""

import logging
import time
from datetime import date as Date
from typing import Any, Callable, Optional, Union

import httpx
from pydantic import ValidationError

from clinic_os.scheduling.errors import (
    BackendError,
    RequestTimeoutError,
    SchedulingValidationError,
    SessionExpiredError,
    StaffUnavailableError,
)
from clinic_os.scheduling.models import (
    AvailabilityQuery,
    BookingRequest,
    PeakHours,
    TimeSlot,
    WorkPeriod,
)
from clinic_os.scheduling.slots import generate_slots
from clinic_os.scheduling.timeutils import normalize_time, validate_date_string

logger = logging.getLogger(__name__)

_NO_STAFF_MARKERS = ("no staff", "no dentist", "no doctor", "not available")


def _unwrap(payload: Any, key: Optional[str] = None) -> Any:
    """Strip the ``{"data": ...}`` envelope and optionally pick *key*."""
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if key and isinstance(payload, dict):
        payload = payload.get(key, [])
    return payload


def _ref_id(value: Any) -> Optional[str]:
    """Return an id from either a plain id or a populated reference object."""
    if isinstance(value, dict):
        return value.get("_id") or value.get("id")
    return str(value) if value is not None else None


def _ref_name(value: Any) -> Optional[str]:
    if isinstance(value, dict) and value.get("firstName"):
        return f"{value['firstName']} {value.get('lastName', '')}".strip()
    return None


def _iso_date(value: Any) -> Optional[str]:
    """Keep the date part of "2026-03-02" or "2026-03-02T00:00:00.000Z"."""
    return str(value)[:10] if value else None


def work_period_from_payload(payload: dict) -> WorkPeriod:
    """Build a WorkPeriod from a backend schedule record."""
    staff = payload.get("staffId") or payload.get("doctorId")
    fields: dict[str, Any] = {
        "staff_id": _ref_id(staff),
        "staff_name": payload.get("staffName") or _ref_name(staff),
        "clinic_id": _ref_id(payload.get("clinicId")),
        "day_of_week": payload.get("dayOfWeek"),
        "date": _iso_date(payload.get("date")),
        "start_time": payload.get("startTime"),
        "end_time": payload.get("endTime"),
        "slot_duration_minutes": payload.get("slotDurationMinutes", payload.get("slotDuration", 30)),
        "is_active": payload.get("isActive", True),
        "effective_from": _iso_date(payload.get("effectiveFrom")),
        "effective_until": _iso_date(payload.get("effectiveUntil")),
    }
    record_id = payload.get("_id") or payload.get("id")
    if record_id:
        fields["id"] = str(record_id)
    return WorkPeriod.model_validate(fields)


class SchedulingClient:
    """HTTP adapter for the work-period store, booking store and booking submission."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Clinic backend root URL
            token: Bearer token for the current session
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=5.0),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings=None) -> "SchedulingClient":
        from clinic_os.config import get_settings

        settings = settings or get_settings()
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SchedulingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Clinic backend timeout on {method} {url}: {e}")
            raise RequestTimeoutError(f"{method} {url} timed out") from e
        except httpx.TransportError as e:
            logger.error(f"Clinic backend connection error on {method} {url}: {e}")
            raise BackendError(f"Failed to reach clinic backend: {e}") from e

        if resp.status_code >= 400:
            self._raise_for_status(resp)
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON from {url}") from e

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        message = ""
        try:
            body = resp.json()
            if isinstance(body, dict):
                message = str(body.get("message") or body.get("error") or "")
        except ValueError:
            message = resp.text[:200]

        status = resp.status_code
        if status in (401, 403):
            raise SessionExpiredError(message or "Session expired")
        # Rate limiting and server-side request timeouts clear up on their own.
        if status in (408, 429):
            raise BackendError(f"Clinic backend throttled request {status}: {message}")
        if status in (404, 409) or (
            status < 500 and any(m in message.lower() for m in _NO_STAFF_MARKERS)
        ):
            raise StaffUnavailableError(message or "No staff available")
        if status >= 500:
            raise BackendError(f"Clinic backend error {status}: {message}")
        raise SchedulingValidationError(message or f"Request rejected with status {status}")

    async def fetch_work_periods(
        self,
        clinic_id: str,
        *,
        date: Optional[Union[str, Date]] = None,
        day_of_week: Optional[int] = None,
        staff_id: Optional[str] = None,
    ) -> list[WorkPeriod]:
        """Query work periods for a clinic by date or weekday (0 = Sunday)."""
        if not clinic_id:
            raise SchedulingValidationError("clinic_id is required")
        params: dict[str, Any] = {"clinicId": clinic_id}
        if date is not None:
            params["date"] = validate_date_string(str(date))
        if day_of_week is not None:
            params["dayOfWeek"] = day_of_week
        if staff_id:
            params["staffId"] = staff_id

        records = _unwrap(await self._request("GET", "/api/v1/schedules", params=params))
        periods: list[WorkPeriod] = []
        for record in records or []:
            try:
                periods.append(work_period_from_payload(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed work period {record.get('_id')}: {e}")
        return periods

    async def fetch_booked_times(
        self,
        clinic_id: str,
        date: Union[str, Date],
        staff_id: Optional[str] = None,
    ) -> set[str]:
        """Return the "HH:MM" times already booked on *date*."""
        if not clinic_id:
            raise SchedulingValidationError("clinic_id is required")
        params: dict[str, Any] = {"clinicId": clinic_id, "date": validate_date_string(str(date))}
        if staff_id:
            params["staffId"] = staff_id

        times = _unwrap(
            await self._request("GET", "/api/v1/appointments/booked-slots", params=params),
            key="bookedSlots",
        )
        return {normalize_time(t) for t in times or []}

    async def create_appointment(self, request: Union[BookingRequest, dict]) -> dict:
        """Submit a booking. Malformed payloads are rejected before any network call."""
        if not isinstance(request, BookingRequest):
            try:
                request = BookingRequest.model_validate(request)
            except ValidationError as e:
                raise SchedulingValidationError(f"Invalid booking request: {e}") from e

        data = await self._request("POST", "/api/v1/appointments", json=request.to_payload())
        logger.info(f"Booked {request.date} {request.time_slot} at clinic {request.clinic_id}")
        return _unwrap(data)


class AvailabilityService:
    """Turns an availability query into slots using the client and slot generator.

    Results are cached per query signature for ``cache_ttl_seconds``. When the
    backend fails with a transient error, the last cached slots for that
    signature are served even if they have expired.

    Instances are callable so they can be handed to the fetch controller.
    """

    def __init__(
        self,
        client: SchedulingClient,
        peak_hours: Optional[PeakHours] = None,
        *,
        cache_ttl_seconds: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.peak_hours = peak_hours
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, AvailabilityQuery, list[TimeSlot]]] = {}

    @classmethod
    def from_settings(cls, client: SchedulingClient, settings=None) -> "AvailabilityService":
        from clinic_os.config import get_settings

        settings = settings or get_settings()
        return cls(
            client,
            peak_hours=settings.peak_hours,
            cache_ttl_seconds=settings.slot_cache_ttl_seconds,
        )

    async def __call__(self, query: AvailabilityQuery) -> list[TimeSlot]:
        return await self.fetch_slots(query)

    async def fetch_slots(self, query: AvailabilityQuery) -> list[TimeSlot]:
        key = query.signature()
        cached = self._cache.get(key)
        if cached and self._clock() - cached[0] < self.cache_ttl_seconds:
            logger.debug(f"Serving cached slots for {key}")
            return [slot.model_copy() for slot in cached[2]]

        try:
            slots = await self._load_slots(query)
        except BackendError as e:
            if cached is None:
                raise
            logger.warning(f"Serving stale slots for {key} after backend failure: {e}")
            return [slot.model_copy() for slot in cached[2]]

        if self.cache_ttl_seconds > 0:
            self._cache[key] = (self._clock(), query, slots)
        return [slot.model_copy() for slot in slots]

    def clear_cache(self, date: Optional[str] = None, clinic_id: Optional[str] = None) -> None:
        """Drop cached slots, optionally only those for *date* and/or *clinic_id*."""
        for key, (_, query, _) in list(self._cache.items()):
            if (date is None or query.date == date) and (
                clinic_id is None or query.clinic_id == clinic_id
            ):
                del self._cache[key]

    async def book(self, request: Union[BookingRequest, dict]) -> dict:
        """Create an appointment and drop the now outdated slots for that day."""
        result = await self.client.create_appointment(request)
        if isinstance(request, BookingRequest):
            self.clear_cache(date=request.date, clinic_id=request.clinic_id)
        else:
            self.clear_cache(date=request.get("date"), clinic_id=request.get("clinic_id"))
        return result

    async def _load_slots(self, query: AvailabilityQuery) -> list[TimeSlot]:
        day = query.day
        periods = await self.client.fetch_work_periods(
            query.clinic_id, date=query.date, staff_id=query.staff_id
        )
        effective = [
            p for p in periods
            if p.is_effective_on(day) and (query.staff_id is None or p.staff_id == query.staff_id)
        ]
        if not effective:
            raise StaffUnavailableError(
                f"No staff scheduled at clinic {query.clinic_id} on {query.date}"
            )

        # Stable owner for duplicate times.
        effective.sort(key=lambda p: (p.staff_id, p.start_minutes))
        booked = await self.client.fetch_booked_times(query.clinic_id, query.date, query.staff_id)
        return generate_slots(
            effective, booked, peak_hours=self.peak_hours, slot_minutes=query.duration
        )
