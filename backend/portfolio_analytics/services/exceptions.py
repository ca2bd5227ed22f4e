# backend/portfolio_analytics/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
main.py maps them to HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InvalidLensError
    │   ├── InvalidPeriodError
    │   ├── InvalidGranularityError
    │   ├── InvalidDateRangeError
    │   └── UnknownBenchmarkError
    ├── NotFoundError
    ├── AuthenticationError
    └── MarketDataError
        ├── ProviderUnavailableError
        ├── TickerNotFoundError
        └── RateLimitError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when the provider circuit is open and blocking requests

Data-quality problems met while computing a report (missing prices,
oversold lots) are NOT exceptions: they are returned as warnings and
missing-price lists so an interactive dashboard keeps working.
"""

from datetime import date


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when request options fail validation.

    Attributes:
        field: The option that failed validation (optional)
        valid_options: Accepted values, when the option is an enumeration
    """

    def __init__(
            self,
            message: str,
            field: str | None = None,
            valid_options: list[str] | None = None,
    ) -> None:
        self.field = field
        self.valid_options = valid_options
        super().__init__(message)


class InvalidLensError(ValidationError):
    """Raised when the grouping lens is not one of the recognized lenses."""

    def __init__(self, lens: str, valid_options: list[str]) -> None:
        self.lens = lens
        super().__init__(
            f"Invalid lens: '{lens}'. Valid options: {', '.join(valid_options)}",
            field="lens",
            valid_options=valid_options,
        )


class InvalidPeriodError(ValidationError):
    """Raised when a named period is not recognized."""

    def __init__(self, period: str, valid_options: list[str]) -> None:
        self.period = period
        super().__init__(
            f"Invalid period: '{period}'. Valid options: {', '.join(valid_options)}",
            field="period",
            valid_options=valid_options,
        )


class InvalidGranularityError(ValidationError):
    """Raised when the date grid granularity is not daily or monthly."""

    def __init__(self, granularity: str) -> None:
        self.granularity = granularity
        super().__init__(
            f"Invalid granularity: '{granularity}'. Valid options: daily, monthly",
            field="granularity",
            valid_options=["daily", "monthly"],
        )


class InvalidDateRangeError(ValidationError):
    """Raised when a requested range starts after it ends."""

    def __init__(self, start_date: date, end_date: date) -> None:
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Invalid date range: start {start_date} is after end {end_date}",
            field="start_date",
        )


class UnknownBenchmarkError(ValidationError):
    """Raised when a benchmark identifier has no price mapping."""

    def __init__(self, benchmark: str, valid_options: list[str]) -> None:
        self.benchmark = benchmark
        super().__init__(
            f"Unknown benchmark: '{benchmark}'. Valid options: {', '.join(valid_options)}",
            field="benchmarks",
            valid_options=valid_options,
        )


# =============================================================================
# NOT FOUND / AUTHENTICATION
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "User", "Account")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class AuthenticationError(ServiceError):
    """Raised when a request carries no usable user context."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


# =============================================================================
# MARKET DATA ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for market data provider errors.

    Attributes:
        provider: Name of the provider that failed (optional)
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when the provider cannot be reached (network, timeout, 5xx).

    Retryable. Reaching the engine means retries were exhausted.
    """

    def __init__(self, provider: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Market data provider '{provider}' unavailable: {reason}", provider)


class TickerNotFoundError(MarketDataError):
    """
    Raised when the provider does not know a ticker.

    Not retryable. The price store turns it into a missing price.
    """

    def __init__(self, ticker: str, provider: str) -> None:
        self.ticker = ticker
        super().__init__(f"Ticker '{ticker}' not found on provider '{provider}'", provider)


class RateLimitError(MarketDataError):
    """
    Raised when the provider rate-limits us.

    Attributes:
        retry_after: Seconds to wait before retrying (if known)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f". Retry after {retry_after} seconds"
        super().__init__(message, provider)


# Re-exported so callers can catch every service-level failure from one module
from portfolio_analytics.services.circuit_breaker import CircuitBreakerOpen  # noqa: E402
