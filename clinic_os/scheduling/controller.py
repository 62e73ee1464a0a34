"""Availability fetch controller for one booking session.

All mutable state (debounce timer, in-flight request, request id, last
request signature, circuit breaker) is owned by a single actor task that
consumes messages from a queue:

    ParamsChanged  -> restart debounce timer
    TimerFired     -> dedupe / short-circuit / fire request
    ResponseReceived -> apply result if it belongs to the current request
    Shutdown       -> cancel everything and stop

Public methods only enqueue messages, so responses of superseded requests
can never be applied.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from clinic_os.observability import ObservabilityLogger, get_observability_logger
from clinic_os.scheduling.assignment import first_available
from clinic_os.scheduling.breaker import CircuitBreaker
from clinic_os.scheduling.errors import (
    ClassifiedError,
    ErrorKind,
    ErrorSeverity,
    RequestTimeoutError,
    classify_error,
)
from clinic_os.scheduling.models import AvailabilityQuery, TimeSlot

logger = logging.getLogger(__name__)

Fetcher = Callable[[AvailabilityQuery], Awaitable[list[TimeSlot]]]

SHORT_CIRCUIT_MESSAGE = (
    "Availability is temporarily unavailable after repeated errors. "
    "Please wait a moment before trying again."
)


class FetchState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ResultStatus(str, Enum):
    """What the booking form should show."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    NO_AVAILABILITY = "no_availability"
    ERROR = "error"


@dataclass
class AvailabilityResult:
    status: ResultStatus
    query: Optional[AvailabilityQuery] = None
    slots: list[TimeSlot] = field(default_factory=list)
    error: Optional[ClassifiedError] = None
    short_circuited: bool = False

    @property
    def first_available(self) -> Optional[TimeSlot]:
        return first_available(self.slots)


# Actor messages


@dataclass
class ParamsChanged:
    query: AvailabilityQuery


@dataclass
class TimerFired:
    generation: int


@dataclass
class ResponseReceived:
    request_id: int
    slots: Optional[list[TimeSlot]] = None
    error: Optional[BaseException] = None


@dataclass
class Shutdown:
    pass


Message = Union[ParamsChanged, TimerFired, ResponseReceived, Shutdown]


class AvailabilityFetchController:
    """Debounced, single-flight availability fetching guarded by a circuit breaker.

    One instance per open booking form. Use as an async context manager or
    call :meth:`close` when the form is torn down.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        debounce_seconds: float = 0.5,
        request_timeout: float = 10.0,
        breaker: Optional[CircuitBreaker] = None,
        obs: Optional[ObservabilityLogger] = None,
        session_id: Optional[str] = None,
    ):
        """Initialize the controller.

        Args:
            fetcher: Coroutine function returning the slots for a query
            debounce_seconds: Quiet period before a request fires
            request_timeout: Upper bound for one fetch, in seconds
            breaker: Circuit breaker (default: 3 failures, 30 s)
            obs: Observability logger (default: global instance)
            session_id: Correlation id written to telemetry
        """
        self._fetcher = fetcher
        self._debounce = debounce_seconds
        self._timeout = request_timeout
        self._breaker = breaker or CircuitBreaker()
        self._obs = obs or get_observability_logger()
        self.session_id = session_id

        self.state = FetchState.IDLE
        self.result = AvailabilityResult(status=ResultStatus.IDLE)
        self.requests_sent = 0

        self._queue: asyncio.Queue[Message] = asyncio.Queue()
        self._actor: Optional[asyncio.Task] = None
        self._closed = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._listeners: list[Callable[[AvailabilityResult], None]] = []

        # Actor-owned state
        self._pending_query: Optional[AvailabilityQuery] = None
        self._timer: Optional[asyncio.Task] = None
        self._timer_generation = 0
        self._in_flight: Optional[asyncio.Task] = None
        self._in_flight_query: Optional[AvailabilityQuery] = None
        self._request_id = 0
        self._last_signature: Optional[str] = None
        self._last_notified: Optional[tuple[ErrorKind, str]] = None

    @classmethod
    def from_settings(cls, fetcher: Fetcher, settings=None, **kwargs) -> "AvailabilityFetchController":
        """Create a controller configured from application settings."""
        from clinic_os.config import get_settings

        settings = settings or get_settings()
        breaker = CircuitBreaker(
            failure_threshold=settings.breaker_failure_threshold,
            reset_timeout=settings.breaker_reset_seconds,
        )
        return cls(
            fetcher,
            debounce_seconds=settings.debounce_seconds,
            request_timeout=settings.request_timeout_seconds,
            breaker=breaker,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the actor task. Called implicitly by :meth:`set_params`."""
        if self._closed:
            raise RuntimeError("Controller is closed")
        if self._actor is None:
            self._actor = asyncio.create_task(self._run())

    def set_params(self, query: AvailabilityQuery) -> None:
        """Report a parameter change (date, duration, clinic)."""
        self.start()
        self._idle.clear()
        self._queue.put_nowait(ParamsChanged(query))

    def subscribe(self, listener: Callable[[AvailabilityResult], None]) -> None:
        """Register a callback invoked with every applied result."""
        self._listeners.append(listener)

    async def wait_idle(self) -> None:
        """Wait until no timer is pending and no request is in flight."""
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel timers and requests; no result is applied afterwards."""
        if self._closed:
            return
        self._closed = True
        if self._actor is None:
            return
        self._queue.put_nowait(Shutdown())
        await self._actor

    async def __aenter__(self) -> "AvailabilityFetchController":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Actor
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            if isinstance(message, Shutdown):
                await self._teardown()
                return
            try:
                if isinstance(message, ParamsChanged):
                    self._on_params_changed(message)
                elif isinstance(message, TimerFired):
                    self._on_timer_fired(message)
                elif isinstance(message, ResponseReceived):
                    self._on_response(message)
            except Exception:
                logger.exception(f"Availability controller failed handling {type(message).__name__}")
                self._settle()
            self._update_idle()

    def _on_params_changed(self, message: ParamsChanged) -> None:
        query = message.query
        self._pending_query = query

        # A different in-flight request no longer reflects the latest input.
        if self._in_flight is not None and self._in_flight_query is not None:
            if self._in_flight_query.signature() != query.signature():
                self._cancel_in_flight("superseded")

        if self._timer is not None:
            self._timer.cancel()
        self._timer_generation += 1
        self._timer = asyncio.create_task(self._debounce_timer(self._timer_generation))
        self._set_state(FetchState.DEBOUNCING)

    def _on_timer_fired(self, message: TimerFired) -> None:
        if message.generation != self._timer_generation or self._pending_query is None:
            return
        self._timer = None
        query = self._pending_query
        signature = query.signature()

        if signature == self._last_signature:
            logger.debug(f"Skipping duplicate availability request {signature}")
            self._set_state(FetchState.REQUESTING if self._in_flight else FetchState.IDLE)
            return

        if not self._breaker.allow_request():
            self._short_circuit(query)
            return

        self._cancel_in_flight("replaced")
        self._request_id += 1
        self._last_signature = signature
        self._in_flight_query = query
        self._in_flight = asyncio.create_task(
            self._perform_request(self._request_id, query, self._breaker.state.failure_count)
        )
        self.requests_sent += 1
        self._set_state(FetchState.REQUESTING)
        self._apply(AvailabilityResult(status=ResultStatus.LOADING, query=query))

    def _on_response(self, message: ResponseReceived) -> None:
        if message.request_id != self._request_id or self._in_flight is None:
            logger.debug(f"Discarding stale response for request {message.request_id}")
            return

        query = self._in_flight_query
        self._in_flight = None
        self._in_flight_query = None

        if message.error is None:
            self._breaker.record_success()
            self._last_notified = None
            self._set_state(FetchState.SUCCEEDED)
            self._apply(
                AvailabilityResult(status=ResultStatus.READY, query=query, slots=message.slots or [])
            )
            self._settle()
            return

        classified = classify_error(message.error)
        self._mark_notification(classified)
        if classified.counts_as_failure:
            if self._breaker.record_failure() and query is not None:
                self._obs.log_circuit_opened(
                    clinic_id=query.clinic_id,
                    date=query.date,
                    signature=query.signature(),
                    failure_count=self._breaker.state.failure_count,
                    session_id=self.session_id,
                )
        if classified.kind != ErrorKind.UNAVAILABLE:
            # Let the same parameters be requested again.
            self._last_signature = None

        logger.warning(f"Availability request failed ({classified.kind.value}): {classified.detail}")

        status = (
            ResultStatus.NO_AVAILABILITY
            if classified.kind == ErrorKind.UNAVAILABLE
            else ResultStatus.ERROR
        )
        self._set_state(FetchState.FAILED)
        self._apply(AvailabilityResult(status=status, query=query, error=classified))
        self._settle()

    def _short_circuit(self, query: AvailabilityQuery) -> None:
        logger.info(f"Circuit open, short-circuiting availability request {query.signature()}")
        self._obs.log_fetch_short_circuited(
            clinic_id=query.clinic_id,
            date=query.date,
            signature=query.signature(),
            failure_count=self._breaker.state.failure_count,
            session_id=self.session_id,
        )
        classified = ClassifiedError(
            kind=ErrorKind.TRANSIENT,
            message=SHORT_CIRCUIT_MESSAGE,
            severity=ErrorSeverity.WARNING,
            detail="circuit open",
        )
        self._mark_notification(classified)
        self._set_state(FetchState.FAILED)
        self._apply(
            AvailabilityResult(
                status=ResultStatus.ERROR, query=query, error=classified, short_circuited=True
            )
        )
        self._settle()

    def _mark_notification(self, classified: ClassifiedError) -> None:
        """Suppress repeat notifications of one kind while the circuit is open."""
        key = (classified.kind, classified.message)
        if self._breaker.is_open and key == self._last_notified:
            classified.notify = False
        else:
            self._last_notified = key

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _debounce_timer(self, generation: int) -> None:
        await asyncio.sleep(self._debounce)
        self._queue.put_nowait(TimerFired(generation))

    async def _perform_request(
        self, request_id: int, query: AvailabilityQuery, failure_count: int
    ) -> None:
        try:
            with self._obs.fetch_request(
                clinic_id=query.clinic_id,
                date=query.date,
                signature=query.signature(),
                staff_id=query.staff_id,
                session_id=self.session_id,
                request_id=str(request_id),
            ) as event:
                event.failure_count = failure_count
                try:
                    slots = await asyncio.wait_for(self._fetcher(query), timeout=self._timeout)
                except asyncio.TimeoutError as e:
                    event.error_kind = ErrorKind.TRANSIENT.value
                    raise RequestTimeoutError(
                        f"Availability request timed out after {self._timeout}s"
                    ) from e
                except Exception as e:
                    event.error_kind = classify_error(e).kind.value
                    raise
                event.slots_count = len(slots)
                event.available_count = sum(1 for s in slots if s.available)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._queue.put_nowait(ResponseReceived(request_id, error=e))
            return
        self._queue.put_nowait(ResponseReceived(request_id, slots=slots))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _cancel_in_flight(self, reason: str) -> None:
        if self._in_flight is None:
            return
        logger.debug(f"Cancelling in-flight availability request ({reason})")
        self._in_flight.cancel()
        self._in_flight = None
        self._in_flight_query = None
        self._last_signature = None

    async def _teardown(self) -> None:
        tasks = [t for t in (self._timer, self._in_flight) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timer = None
        self._in_flight = None
        self._in_flight_query = None
        self._pending_query = None
        self._set_state(FetchState.IDLE)
        self._idle.set()
        logger.debug("Availability controller closed")

    def _set_state(self, state: FetchState) -> None:
        if state != self.state:
            logger.debug(f"Availability controller {self.state.value} -> {state.value}")
            self.state = state

    def _settle(self) -> None:
        """Leave a terminal state once its result has been applied."""
        self._set_state(FetchState.DEBOUNCING if self._timer is not None else FetchState.IDLE)

    def _update_idle(self) -> None:
        if self.state == FetchState.IDLE and self._timer is None and self._in_flight is None:
            self._idle.set()

    def _apply(self, result: AvailabilityResult) -> None:
        if self._closed:
            return
        self.result = result
        for listener in self._listeners:
            try:
                listener(result)
            except Exception as e:
                logger.warning(f"Availability listener failed: {e}")
