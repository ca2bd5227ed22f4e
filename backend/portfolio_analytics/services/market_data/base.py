# backend/portfolio_analytics/services/market_data/base.py
"""
Abstract interface for market data providers.

The performance engine only needs end-of-day closes and one current quote
per ticker, so that is the whole contract. Using an abstract base class
allows for:
- Swapping Yahoo Finance for another source without touching the price store
- Mock implementations for testing
- Consistent retry behavior across all providers

Retry logic (tenacity, exponential backoff) lives here once; the circuit
breaker is owned by each concrete provider because it guards that
provider's transport.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TypeVar, Callable, Any

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from portfolio_analytics.services.circuit_breaker import CircuitBreaker
from portfolio_analytics.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

# Type variable for generic return type in retry method
T = TypeVar('T')


# =============================================================================
# DATA CLASSES - PRICE DATA
# =============================================================================

@dataclass(frozen=True)
class DailyClose:
    """
    One trading day's close for a ticker.

    Attributes:
        date: Trading date (no time component)
        close: Closing price, the valuation price
        adjusted_close: Close adjusted for splits/dividends (informational)
    """

    date: date
    close: Decimal
    adjusted_close: Decimal | None = None

    def __post_init__(self) -> None:
        if self.close <= 0:
            raise ValueError(f"close price must be positive, got {self.close}")


@dataclass
class HistoricalPricesResult:
    """
    Result of fetching historical closes for one ticker.

    Attributes:
        ticker: The ticker symbol requested
        prices: Closes in date order (empty if none or failed)
        success: Whether the fetch was successful
        error: Error message if fetch failed
        from_date: Requested start date
        to_date: Requested end date
        actual_from_date: Earliest date in returned data
        actual_to_date: Latest date in returned data
    """

    ticker: str
    prices: list[DailyClose] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    from_date: date | None = None
    to_date: date | None = None
    actual_from_date: date | None = None
    actual_to_date: date | None = None

    def __post_init__(self) -> None:
        """Set actual date range from prices if not provided."""
        if self.prices and self.actual_from_date is None:
            self.actual_from_date = min(p.date for p in self.prices)
        if self.prices and self.actual_to_date is None:
            self.actual_to_date = max(p.date for p in self.prices)

    @property
    def days_fetched(self) -> int:
        """Number of trading days fetched."""
        return len(self.prices)


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class MarketDataProvider(ABC):
    """
    Abstract base class for market data providers.

    Retry Behavior:
        `_execute_with_retry` implements exponential backoff. Subclasses can
        tune it through class attributes:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)

    Retryable Exceptions:
        - ProviderUnavailableError: Network issues, timeouts, server errors
        - RateLimitError: API rate limit exceeded

    Non-Retryable Exceptions:
        - TickerNotFoundError: Permanent failure (ticker doesn't exist)
        - CircuitBreakerOpen: The provider is known to be down
    """

    # =========================================================================
    # RETRY CONFIGURATION (can be overridden by subclasses)
    # =========================================================================

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 10
    RETRY_MULTIPLIER: int = 1

    # =========================================================================
    # ABSTRACT PROPERTIES AND METHODS
    # =========================================================================

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this provider.

        Used for logging, error messages, and the provider column of the
        price cache.
        """
        pass

    @abstractmethod
    def get_historical_prices(
            self,
            ticker: str,
            start_date: date,
            end_date: date,
    ) -> HistoricalPricesResult:
        """
        Fetch daily closes for a single ticker.

        Args:
            ticker: Trading symbol (e.g., "SPY", "VTI")
            start_date: Start date (inclusive)
            end_date: End date (inclusive)

        Returns:
            HistoricalPricesResult with the closes

        Raises:
            TickerNotFoundError: Ticker unknown to the provider
            ProviderUnavailableError: Network or API error (retryable)
            RateLimitError: Rate limit exceeded (retryable)
            CircuitBreakerOpen: Provider circuit is open
        """
        pass

    @abstractmethod
    def get_latest_price(self, ticker: str) -> Decimal | None:
        """
        Fetch the freshest available quote for a ticker.

        Returns:
            Latest price, or None if the provider has none

        Raises:
            Same as get_historical_prices
        """
        pass

    # =========================================================================
    # RETRY HELPER METHOD
    # =========================================================================

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute a function with retry logic for transient failures.

        Uses exponential backoff for retryable exceptions:
        - ProviderUnavailableError
        - RateLimitError

        Does NOT retry on:
        - TickerNotFoundError (permanent failure)
        - CircuitBreakerOpen (fail fast)
        - Other exceptions

        Returns:
            Return value of func

        Raises:
            The last exception if all retries fail
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()

    # =========================================================================
    # OPTIONAL METHODS (with default implementations)
    # =========================================================================

    @property
    def circuit_breaker(self) -> CircuitBreaker | None:
        """Breaker guarding this provider, None when it has none."""
        return None

    def is_available(self) -> bool:
        """
        Check if the provider is currently available.

        Default implementation reports the circuit state; providers without
        a breaker are always available.
        """
        breaker = self.circuit_breaker
        return breaker is None or not breaker.is_open
