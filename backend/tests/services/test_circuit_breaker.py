# backend/tests/services/test_circuit_breaker.py
"""
Tests for the provider circuit breaker.

Recovery timeouts are kept tiny (or zero) so the OPEN -> HALF_OPEN
transition can be observed without sleeping for long.
"""

import threading
import time

import pytest

from portfolio_analytics.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    CircuitState,
)
from portfolio_analytics.services.exceptions import (
    ProviderUnavailableError,
    TickerNotFoundError,
)


def fail(breaker: CircuitBreaker, times: int = 1, error: Exception | None = None) -> None:
    for _ in range(times):
        with pytest.raises(Exception):
            with breaker:
                raise error or ProviderUnavailableError("yahoo", "timeout")


def trip(breaker: CircuitBreaker) -> None:
    fail(breaker, breaker.failure_threshold)
    assert breaker._state == CircuitState.OPEN


# =============================================================================
# CONFIGURATION
# =============================================================================

class TestConfiguration:

    def test_defaults(self):
        breaker = CircuitBreaker(name="yahoo-finance")

        assert breaker.failure_threshold == 5
        assert breaker.recovery_timeout == 60.0
        assert breaker.half_open_max_calls == 3
        assert breaker.is_closed

    @pytest.mark.parametrize("kwargs,message", [
        ({"failure_threshold": 0}, "failure_threshold"),
        ({"recovery_timeout": -1}, "recovery_timeout"),
        ({"half_open_max_calls": 0}, "half_open_max_calls"),
    ])
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            CircuitBreaker(name="bad", **kwargs)


# =============================================================================
# CLOSED
# =============================================================================

class TestClosed:

    def test_successful_calls_pass_through(self):
        breaker = CircuitBreaker(name="prices")

        with breaker:
            value = 42

        assert value == 42
        assert breaker.stats.successful_calls == 1
        assert breaker.stats.total_calls == 1

    def test_opens_at_threshold(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=3)

        fail(breaker, 2)
        assert breaker.is_closed
        assert breaker.failure_count == 2

        fail(breaker)
        assert breaker.is_open
        assert breaker.stats.failed_calls == 3

    def test_unknown_ticker_does_not_trip(self):
        breaker = CircuitBreaker(
            name="prices",
            failure_threshold=2,
            excluded_exceptions=(TickerNotFoundError,),
        )

        fail(breaker, 5, TickerNotFoundError("NOPE", "yahoo"))

        assert breaker.is_closed
        assert breaker.stats.failed_calls == 0
        assert breaker.stats.successful_calls == 5

    def test_exceptions_are_not_swallowed(self):
        breaker = CircuitBreaker(name="prices")

        with pytest.raises(ProviderUnavailableError):
            with breaker:
                raise ProviderUnavailableError("yahoo", "503")

    def test_failure_window_forgets_old_failures(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=2, failure_window=0.05)

        fail(breaker)
        time.sleep(0.1)
        fail(breaker)

        assert breaker.is_closed
        assert breaker.failure_count == 1


# =============================================================================
# OPEN / HALF_OPEN
# =============================================================================

class TestOpen:

    def test_rejects_with_time_remaining(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=30)
        trip(breaker)

        with pytest.raises(CircuitBreakerOpen) as exc_info:
            with breaker:
                pass

        assert exc_info.value.breaker_name == "prices"
        assert 0 < exc_info.value.time_remaining <= 30
        assert breaker.stats.rejected_calls == 1

    def test_half_open_after_timeout(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=0.05)
        trip(breaker)

        time.sleep(0.1)

        assert breaker.state == CircuitState.HALF_OPEN

    def test_probe_success_closes(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=0)
        trip(breaker)

        with breaker:
            pass

        assert breaker.is_closed
        assert breaker.failure_count == 0

    def test_probe_failure_reopens(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=0.05)
        trip(breaker)
        time.sleep(0.1)

        fail(breaker)

        assert breaker._state == CircuitState.OPEN

    def test_probe_budget(self):
        breaker = CircuitBreaker(
            name="prices", failure_threshold=1, recovery_timeout=0.05, half_open_max_calls=2
        )
        trip(breaker)
        time.sleep(0.1)

        # Hold two probes open without finishing them
        breaker.__enter__()
        breaker.__enter__()
        with pytest.raises(CircuitBreakerOpen):
            breaker.__enter__()


# =============================================================================
# DECORATOR / ADMINISTRATION
# =============================================================================

class TestDecorator:

    def test_wraps_function(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1)

        @breaker
        def fetch(ticker):
            """Fetch one ticker."""
            if ticker == "DOWN":
                raise ProviderUnavailableError("yahoo", "down")
            return ticker.lower()

        assert fetch("SPY") == "spy"
        assert fetch.__name__ == "fetch"

        with pytest.raises(ProviderUnavailableError):
            fetch("DOWN")
        with pytest.raises(CircuitBreakerOpen):
            fetch("SPY")


class TestAdministration:

    def test_reset(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1)
        trip(breaker)

        breaker.reset()

        assert breaker.is_closed
        assert breaker.failure_count == 0

    def test_force_open(self):
        breaker = CircuitBreaker(name="prices", recovery_timeout=30)
        breaker.force_open()

        with pytest.raises(CircuitBreakerOpen):
            with breaker:
                pass

    def test_stats_is_a_copy(self):
        breaker = CircuitBreaker(name="prices")
        snapshot = breaker.stats
        snapshot.total_calls = 100

        assert breaker.stats.total_calls == 0

    def test_state_changes_counted(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=0)
        trip(breaker)
        with breaker:
            pass

        # CLOSED -> OPEN -> HALF_OPEN -> CLOSED
        assert breaker.stats.state_changes == 3

    def test_concurrent_failures_counted_once_each(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1000)

        def worker():
            for _ in range(50):
                try:
                    with breaker:
                        raise ProviderUnavailableError("yahoo", "flaky")
                except ProviderUnavailableError:
                    pass

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert breaker.stats.failed_calls == 400
        assert breaker.is_closed
