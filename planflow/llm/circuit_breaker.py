"""
planflow - Circuit Breaker

One breaker per LLM provider, so a provider that keeps failing is skipped
by the fallback client instead of being hit on every step.

State machine:
    CLOSED    --[failures >= threshold in window]--> OPEN
    OPEN      --[open_timeout elapsed]-------------> HALF_OPEN
    HALF_OPEN --[success]--------------------------> CLOSED
    HALF_OPEN --[failure]--------------------------> OPEN
"""

import threading
import time
from enum import Enum
from typing import Callable, List, Optional


class CircuitState(Enum):
    CLOSED = "closed"         # requests pass through
    OPEN = "open"             # requests rejected without calling the provider
    HALF_OPEN = "half_open"   # one probe allowed


class CircuitOpenError(Exception):
    """Raised when a request is rejected because the circuit is OPEN."""

    def __init__(self, name: str):
        super().__init__(f"Circuit for {name} is open")
        self.name = name


class CircuitBreaker:
    """
    Sliding-window circuit breaker.

    Args:
        name: Label used in errors and logs.
        failure_threshold: Failures inside the window that trip the circuit.
        window_seconds: Sliding window for failure counting.
        open_timeout_seconds: Time spent OPEN before a probe is allowed.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        name: str = "provider",
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        open_timeout_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._threshold = failure_threshold
        self._window = window_seconds
        self._open_timeout = open_timeout_seconds
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures: List[float] = []
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    def allow_request(self) -> bool:
        """False only while OPEN and the open timeout has not elapsed."""
        with self._lock:
            return self._current_state() != CircuitState.OPEN

    def check(self) -> None:
        """Raise CircuitOpenError if the request must be rejected."""
        if not self.allow_request():
            raise CircuitOpenError(self.name)

    def record_success(self) -> None:
        with self._lock:
            if self._current_state() == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._failures.clear()
                self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._failures.append(now)
            cutoff = now - self._window
            self._failures = [t for t in self._failures if t > cutoff]

            if self._current_state() == CircuitState.HALF_OPEN:
                self._trip(now)
            elif len(self._failures) >= self._threshold:
                self._trip(now)

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._opened_at = None

    def _trip(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now

    def _current_state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self._open_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state
