from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import pybreaker

from .errors import ServiceUnavailableError

logger = logging.getLogger("devday.admission")

CLOSED = pybreaker.STATE_CLOSED
OPEN = pybreaker.STATE_OPEN
HALF_OPEN = pybreaker.STATE_HALF_OPEN

UNAVAILABLE_MESSAGE = "Certificate generation temporarily unavailable due to system load"


class _RecordedFailure(Exception):
    """Carries an outcome the caller already observed into pybreaker."""


def _succeed() -> None:
    return None


def _fail(exc: BaseException | None) -> None:
    raise _RecordedFailure(str(exc) if exc else "certificate generation failed")


class _StateTracker(pybreaker.CircuitBreakerListener):
    """Keeps the cumulative counters pybreaker does not track itself."""

    def __init__(self, owner: "CircuitBreaker"):
        self.owner = owner

    def failure(self, cb, exc):
        owner = self.owner
        owner.failure_count += 1
        owner.consecutive_failures += 1
        owner.success_count = 0

    def success(self, cb):
        owner = self.owner
        owner.consecutive_failures = 0
        if cb.current_state == HALF_OPEN:
            owner.success_count += 1

    def state_change(self, cb, old_state, new_state):
        owner = self.owner
        new = new_state.name if new_state is not None else None
        if new == OPEN:
            owner.reset_time = owner._clock() + owner.reset_timeout
            owner.success_count = 0
            logger.warning(
                "[BREAKER] %s opened failures=%s consecutive=%s reset_in=%.0fs",
                owner.name,
                owner.failure_count,
                owner.consecutive_failures,
                owner.reset_timeout,
            )
        elif new == HALF_OPEN:
            owner.success_count = 0
            logger.info("[BREAKER] %s half-open; admitting trial request", owner.name)
        elif new == CLOSED:
            was_tripped = old_state is not None and old_state.name != CLOSED
            owner.failure_count = 0
            owner.consecutive_failures = 0
            owner.success_count = 0
            owner.reset_time = 0.0
            if was_tripped:
                logger.info("[BREAKER] %s closed after successful trials", owner.name)


class CircuitBreaker:
    """Closed/open/half-open breaker guarding certificate rendering.

    State transitions are driven by :mod:`pybreaker`: ``consecutive_failure_threshold``
    back to back failures trip it, and while half-open ``success_threshold``
    successes close it while a single failure reopens it. On top of that the
    breaker opens when ``failure_threshold`` failures accumulate since it last
    closed, even if successes were interleaved.

    The open period is measured on the injected ``clock`` so admission can be
    tested without sleeping; pybreaker is only consulted once the breaker is
    admitting requests again.
    """

    def __init__(
        self,
        name: str = "certificate_generator",
        *,
        failure_threshold: int = 5,
        consecutive_failure_threshold: int = 5,
        success_threshold: int = 3,
        reset_timeout: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = int(failure_threshold)
        self.consecutive_failure_threshold = int(consecutive_failure_threshold)
        self.success_threshold = int(success_threshold)
        self.reset_timeout = float(reset_timeout)
        self._clock = clock
        self._lock = threading.RLock()

        self.failure_count = 0
        self.consecutive_failures = 0
        self.success_count = 0
        self.total_requests = 0
        self.total_failures = 0
        self.reset_time = 0.0
        self.last_attempt_time: float | None = None

        self._breaker = pybreaker.CircuitBreaker(
            fail_max=self.consecutive_failure_threshold,
            reset_timeout=self.reset_timeout,
            success_threshold=self.success_threshold,
            listeners=[_StateTracker(self)],
            name=name,
        )

    @property
    def state(self) -> str:
        return self._breaker.current_state

    def allow(self) -> None:
        """Admit one request or raise :class:`ServiceUnavailableError`."""
        with self._lock:
            now = self._clock()
            if self.state == OPEN:
                if now <= self.reset_time:
                    retry_after = self.reset_time - now
                    logger.warning(
                        "[BREAKER] %s open; rejecting request retry_after=%.1f",
                        self.name,
                        retry_after,
                    )
                    raise ServiceUnavailableError(UNAVAILABLE_MESSAGE, retry_after=retry_after)
                self._breaker.half_open()
            self.total_requests += 1
            self.last_attempt_time = now

    def record_success(self) -> None:
        with self._lock:
            if self.state == OPEN:
                return
            self._breaker.call(_succeed)

    def record_failure(self, exc: BaseException | None = None) -> None:
        with self._lock:
            self.total_failures += 1
            if self.state == OPEN:
                # a request admitted before the trip finished after it
                self.failure_count += 1
                self.consecutive_failures += 1
                return
            try:
                self._breaker.call(_fail, exc)
            except pybreaker.CircuitBreakerError:
                return
            except _RecordedFailure:
                pass
            if self.failure_count >= self.failure_threshold:
                self._breaker.open()

    def reset(self) -> None:
        with self._lock:
            self._breaker.close()
            self.failure_count = 0
            self.consecutive_failures = 0
            self.success_count = 0
            self.reset_time = 0.0

    def snapshot(self) -> dict:
        with self._lock:
            retry_in = None
            if self.state == OPEN:
                retry_in = max(0.0, self.reset_time - self._clock())
            return {
                "name": self.name,
                "status": self.state,
                "failureCount": self.failure_count,
                "consecutiveFailures": self.consecutive_failures,
                "successCount": self.success_count,
                "totalRequests": self.total_requests,
                "totalFailures": self.total_failures,
                "resetInSeconds": retry_in,
            }
