"""Circuit breaker for the text-generation endpoint.

A site run fans out many provider calls at once. When the provider is
down every one of them would sit until its timeout; the breaker tracks
consecutive failures and short-circuits calls during an outage.

States:
  CLOSED    -- normal operation, calls pass through
  OPEN      -- endpoint is down, calls fail immediately
  HALF_OPEN -- cooldown expired, a single trial call in flight

All callers share one event loop and no state change spans an await, so
the state needs no lock. ``call`` wraps an awaitable with the bookkeeping.
"""

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAILURES_TO_OPEN = 3
COOLDOWN_SECONDS = 60


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """The provider is considered down; the call was not attempted."""

    def __init__(self, endpoint: str, retry_after: float):
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker OPEN for '{endpoint}'. Retry after {retry_after:.0f}s.")


class CircuitBreaker:
    """Consecutive-failure breaker for one model endpoint."""

    def __init__(
        self,
        endpoint: str,
        failure_threshold: int = FAILURES_TO_OPEN,
        cooldown_seconds: float = COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.endpoint = endpoint
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    def _move_to(self, state: CircuitState, why: str) -> None:
        if state is self._state:
            return
        level = logging.WARNING if state is CircuitState.OPEN else logging.INFO
        logger.log(
            level, "Circuit %s: %s -> %s (%s)",
            self.endpoint, self._state.name, state.name, why,
        )
        self._state = state

    def check(self) -> None:
        """Let the call through or raise ``CircuitBreakerOpen``.

        After the cooldown the first caller becomes the half-open trial call. Other
        callers are refused until the trial call reports back.
        """
        if self._state is CircuitState.CLOSED:
            return
        if self._state is CircuitState.OPEN:
            waited = self._clock() - self._opened_at
            if waited < self.cooldown_seconds:
                raise CircuitBreakerOpen(self.endpoint, self.cooldown_seconds - waited)
            self._move_to(CircuitState.HALF_OPEN, "cooldown expired")
        elif self._trial_in_flight:
            raise CircuitBreakerOpen(self.endpoint, 0.0)
        self._trial_in_flight = True

    def release_trial(self) -> None:
        """The trial call ended without an outcome (cancelled); admit another."""
        self._trial_in_flight = False

    def record_success(self) -> None:
        self._consecutive_failures = 0
        self._trial_in_flight = False
        self._move_to(CircuitState.CLOSED, "trial call succeeded")

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        self._trial_in_flight = False
        self._opened_at = self._clock()
        if self._state is CircuitState.HALF_OPEN:
            self._move_to(CircuitState.OPEN, "trial call failed")
        elif self._consecutive_failures >= self.failure_threshold:
            self._move_to(CircuitState.OPEN, f"{self._consecutive_failures} consecutive failures")

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Await *fn* if the circuit allows it, recording the outcome.

        Raises:
            CircuitBreakerOpen: without calling *fn* while the circuit is open.
            Exception: whatever *fn* raises, after counting it as a failure.
        """
        self.check()
        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        except BaseException:
            self.release_trial()
            raise
        self.record_success()
        return result


_breakers: dict[str, CircuitBreaker] = {}


def get_breaker(endpoint: str) -> CircuitBreaker:
    """The shared breaker for *endpoint*, created on first use."""
    breaker = _breakers.get(endpoint)
    if breaker is None:
        breaker = _breakers[endpoint] = CircuitBreaker(endpoint=endpoint)
    return breaker


def reset_all() -> None:
    _breakers.clear()
