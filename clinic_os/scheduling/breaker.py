"""Failure-counting circuit breaker for availability fetches."""

import logging
import time
from typing import Callable

from clinic_os.scheduling.models import CircuitBreakerState

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Suppress requests after repeated consecutive failures.

    After ``failure_threshold`` consecutive failures the circuit opens and
    :meth:`allow_request` returns ``False`` until ``reset_timeout`` seconds
    have passed since the last failure. The next request is then let through
    as a trial request (half-open). A success closes the circuit; a failed
    trial request re-opens it with a fresh timestamp.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.state = CircuitBreakerState()

    @property
    def is_open(self) -> bool:
        return self.state.is_open

    @property
    def is_half_open(self) -> bool:
        """Open, but the reset timeout has elapsed."""
        return self.state.is_open and self._elapsed_since_failure() >= self.reset_timeout

    def _elapsed_since_failure(self) -> float:
        if self.state.last_failure_time is None:
            return float("inf")
        return self._clock() - self.state.last_failure_time

    def allow_request(self) -> bool:
        """Whether a request may go to the network now."""
        if not self.state.is_open:
            return True
        if self.is_half_open:
            logger.info("Circuit half-open, allowing trial request")
            return True
        return False

    def record_success(self) -> None:
        if self.state.is_open:
            logger.info("Circuit closed after successful request")
        self.state = CircuitBreakerState()

    def record_failure(self) -> bool:
        """Count a failure. Returns ``True`` when this failure opened the circuit."""
        was_open = self.state.is_open
        self.state.failure_count += 1
        self.state.last_failure_time = self._clock()
        if self.state.failure_count >= self.failure_threshold:
            self.state.is_open = True
            if not was_open:
                logger.warning(
                    f"Circuit opened after {self.state.failure_count} consecutive failures"
                )
                return True
        return False

    def reset(self) -> None:
        self.state = CircuitBreakerState()
