# backend/portfolio_analytics/services/circuit_breaker.py
"""
Circuit breaker guarding calls to the market data provider.

When the provider keeps failing, the price store should fail fast instead of
stacking timeouts on every report request. The breaker counts failures and,
past a threshold, rejects calls for a recovery period before letting a few
probe calls through.

States:
    CLOSED    - calls pass through, failures are counted
    OPEN      - calls are rejected with CircuitBreakerOpen
    HALF_OPEN - a limited number of probe calls decide the next state

Transitions:
    CLOSED -> OPEN        failure count reaches the threshold (optionally
                          within a sliding window)
    OPEN -> HALF_OPEN     recovery timeout elapsed
    HALF_OPEN -> CLOSED   a probe succeeds
    HALF_OPEN -> OPEN     a probe fails

Usage:
    breaker = CircuitBreaker(name="yahoo-finance", failure_threshold=5)

    with breaker:
        frame = yf.Ticker("SPY").history(...)

    @breaker
    def fetch():
        ...

Exceptions listed in excluded_exceptions (e.g. TickerNotFoundError) are
business outcomes, not outages, and never trip the breaker.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until a probe call will be allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """Counters exposed to the readiness health check."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Price fetches run in a thread pool, so every state read and write
    happens under one re-entrant lock.

    Attributes:
        name: Identifier used in logs and in CircuitBreakerOpen
        failure_threshold: Failures that open the circuit
        recovery_timeout: Seconds the circuit stays open
        half_open_max_calls: Probe calls allowed while half-open
        failure_window: Sliding window in seconds for counting failures (0 = unbounded)
        excluded_exceptions: Exception types recorded as successes
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[Exception], ...] = field(default_factory=tuple)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_times: list[float] = field(default_factory=list, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.info(
            f"CircuitBreaker '{self.name}' initialized: "
            f"threshold={self.failure_threshold}, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    # =========================================================================
    # PUBLIC STATE
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Snapshot copy of the counters."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        with self._lock:
            self._prune_failures(time.time())
            return len(self._failure_times)

    # =========================================================================
    # STATE MACHINE (call with the lock held)
    # =========================================================================

    def _maybe_half_open(self) -> None:
        if self._state == CircuitState.OPEN and self._seconds_until_probe() <= 0:
            self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = time.time()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        elif new_state == CircuitState.CLOSED:
            self._failure_times.clear()

        logger.info(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )

    def _prune_failures(self, now: float) -> None:
        if self.failure_window > 0:
            cutoff = now - self.failure_window
            self._failure_times = [t for t in self._failure_times if t > cutoff]

    def _seconds_until_probe(self) -> float:
        return max(0.0, self.recovery_timeout - (time.time() - self._opened_at))

    def _on_success(self) -> None:
        self._stats.successful_calls += 1
        self._stats.last_success_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        now = time.time()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
            return

        if self._state == CircuitState.CLOSED:
            self._failure_times.append(now)
            self._prune_failures(now)
            if len(self._failure_times) >= self.failure_threshold:
                logger.warning(
                    f"CircuitBreaker '{self.name}' opening after "
                    f"{len(self._failure_times)} failures"
                )
                self._transition_to(CircuitState.OPEN)

    def _admit(self) -> bool:
        self._maybe_half_open()

        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls < self.half_open_max_calls:
            self._half_open_calls += 1
            return True
        return False

    # =========================================================================
    # CONTEXT MANAGER / DECORATOR
    # =========================================================================

    def __enter__(self) -> "CircuitBreaker":
        """
        Admit or reject a call.

        Raises:
            CircuitBreakerOpen: If the circuit is open (or half-open and saturated)
        """
        with self._lock:
            self._stats.total_calls += 1
            if not self._admit():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._seconds_until_probe())
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None or isinstance(exc_val, self.excluded_exceptions):
                self._on_success()
            else:
                self._on_failure()
        return False

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with self:
                return func(*args, **kwargs)
        return wrapper

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def reset(self) -> None:
        """Force the circuit closed and forget recorded failures."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            logger.info(f"CircuitBreaker '{self.name}' manually reset")

    def force_open(self) -> None:
        """Force the circuit open (e.g., provider known to be down)."""
        with self._lock:
            self._transition_to(CircuitState.OPEN)
            logger.warning(f"CircuitBreaker '{self.name}' manually opened")
