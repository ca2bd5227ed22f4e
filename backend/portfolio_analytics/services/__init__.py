# backend/portfolio_analytics/services/__init__.py
"""
Service layer for business logic.

This package contains the service layer which encapsulates business logic
separate from the API (router) layer. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)
- Are easily testable via dependency injection

Usage:
    from portfolio_analytics.services import PerformanceService
    from portfolio_analytics.services import SqlLedgerStore, CachedPriceStore
    from portfolio_analytics.services import (
        ValidationError,
        MarketDataError,
        CircuitBreakerOpen,
    )

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Tolerances, vocabularies, rate limits
    ├── protocols.py                 # Store interfaces (Protocol classes)
    ├── circuit_breaker.py           # Circuit breaker for external APIs
    ├── ledger_store.py              # SQLAlchemy ledger store
    ├── market_data/                 # Market data package
    │   ├── base.py                  # Abstract provider interface
    │   ├── yahoo.py                 # Yahoo Finance implementation
    │   └── price_store.py           # Cached price store
    └── performance/                 # Performance engine
        ├── service.py               # Orchestrator
        ├── types.py                 # Engine data types
        ├── cash_flows.py            # Sign normalization, flow scopes
        ├── positions.py             # FIFO lot replay
        ├── prices.py                # Forward-fill price resolver
        ├── valuation.py             # Point-in-time valuation
        ├── returns.py               # IRR solver, TWR, annualization
        ├── grouping.py              # Lenses and group slices
        ├── time_series.py           # Rolling series builder
        └── benchmarks.py            # Benchmark overlay
"""

from portfolio_analytics.services.circuit_breaker import CircuitBreaker
# Exceptions
from portfolio_analytics.services.exceptions import (
    # Base exceptions
    ServiceError,
    # Validation exceptions
    ValidationError,
    InvalidLensError,
    InvalidPeriodError,
    InvalidGranularityError,
    InvalidDateRangeError,
    UnknownBenchmarkError,
    NotFoundError,
    AuthenticationError,
    # Market data exceptions
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
    CircuitBreakerOpen,
)
# Stores
from portfolio_analytics.services.ledger_store import SqlLedgerStore
from portfolio_analytics.services.market_data import (
    MarketDataProvider,
    YahooFinanceProvider,
    CachedPriceStore,
)
# Performance engine
from portfolio_analytics.services.performance import (
    PerformanceService,
    PerformanceRequest,
)

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "PerformanceService",
    "PerformanceRequest",
    "SqlLedgerStore",
    "CachedPriceStore",
    "MarketDataProvider",
    "YahooFinanceProvider",
    "CircuitBreaker",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    # Base
    "ServiceError",
    # Validation
    "ValidationError",
    "InvalidLensError",
    "InvalidPeriodError",
    "InvalidGranularityError",
    "InvalidDateRangeError",
    "UnknownBenchmarkError",
    "NotFoundError",
    "AuthenticationError",
    # Market data
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "CircuitBreakerOpen",
]
